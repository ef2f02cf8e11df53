"""Commands that drive a running presentation."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class CommandKind(enum.Enum):
    """The kinds of command a presentation understands."""

    REDRAW = "Redraw"
    NEXT = "Next"
    NEXT_FAST = "NextFast"
    PREVIOUS = "Previous"
    PREVIOUS_FAST = "PreviousFast"
    FIRST_SLIDE = "FirstSlide"
    LAST_SLIDE = "LastSlide"
    GO_TO_SLIDE = "GoToSlide"
    RENDER_ASYNC_OPERATIONS = "RenderAsyncOperations"
    EXIT = "Exit"
    SUSPEND = "Suspend"
    RELOAD = "Reload"
    HARD_RELOAD = "HardReload"
    TOGGLE_SLIDE_INDEX = "ToggleSlideIndex"
    TOGGLE_KEY_BINDINGS_CONFIG = "ToggleKeyBindingsConfig"
    CLOSE_MODAL = "CloseModal"


_MAX_SLIDE = 2**32 - 1


@dataclass(frozen=True)
class Command:
    """A command; ``slide`` is set only for :attr:`CommandKind.GO_TO_SLIDE`."""

    kind: CommandKind
    slide: int | None = None

    def __post_init__(self) -> None:
        if self.kind is CommandKind.GO_TO_SLIDE:
            if isinstance(self.slide, bool) or not isinstance(self.slide, int):
                raise ValueError("going to a slide requires a slide number")
            if not 0 <= self.slide <= _MAX_SLIDE:
                raise ValueError(f"slide number out of range: {self.slide}")
        elif self.slide is not None:
            raise ValueError(f"{self.kind.value} does not take a slide number")

    def __str__(self) -> str:
        if self.kind is CommandKind.GO_TO_SLIDE:
            return f"{self.kind.value}({self.slide})"
        return self.kind.value