"""Right-aligned padding of numbers, used for line numbers in code blocks."""

from __future__ import annotations


class NumberPadder:
    """Pads numbers on the left so they all take as many columns as the largest one."""

    def __init__(self, upper_bound: int) -> None:
        if upper_bound < 0:
            raise ValueError("upper bound must not be negative")
        self.width = len(str(upper_bound)) if upper_bound > 0 else 0

    def pad_right(self, number: int) -> str:
        """Render ``number`` right aligned within the padder's width."""
        if number <= 0:
            raise ValueError(f"only positive numbers can be padded, got {number}")
        rendered = str(number)
        padding = self.width - len(rendered)
        if padding < 0:
            raise ValueError(f"{number} does not fit in {self.width} columns")
        return " " * padding + rendered