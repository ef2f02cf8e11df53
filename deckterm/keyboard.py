"""Key bindings: parsing, matching key event sequences and turning them into commands."""

from __future__ import annotations

import enum
import re
import string
from dataclasses import dataclass, field
from typing import Iterable, Sequence, Union

from deckterm.commands import Command, CommandKind

_MAX_NUMBER = 2**32 - 1
_MAX_FUNCTION_KEY = 12

# Relative order of key kinds, used only to sort bindings when looking for conflicts.
_KEY_ORDER = {
    "Backspace": 0,
    "Enter": 1,
    "Left": 2,
    "Right": 3,
    "Up": 4,
    "Down": 5,
    "Home": 6,
    "End": 7,
    "PageUp": 8,
    "PageDown": 9,
    "Tab": 10,
    "F": 14,
    "Char": 15,
    "Esc": 17,
}


@dataclass(frozen=True)
class KeyCode:
    """A key on the keyboard: a named key, a function key ``F(n)`` or a character."""

    name: str
    value: Union[str, int, None] = None

    def __post_init__(self) -> None:
        if self.name not in _KEY_ORDER:
            raise ValueError(f"unknown key: {self.name}")
        if self.name == "Char":
            if not isinstance(self.value, str) or len(self.value) != 1:
                raise ValueError("a character key needs exactly one character")
        elif self.name == "F":
            if isinstance(self.value, bool) or not isinstance(self.value, int) or not 0 <= self.value <= 255:
                raise ValueError("a function key needs a number")
        elif self.value is not None:
            raise ValueError(f"{self.name} takes no value")

    @classmethod
    def char(cls, c: str) -> KeyCode:
        return cls("Char", c)

    @classmethod
    def function(cls, number: int) -> KeyCode:
        return cls("F", number)

    def _sort_key(self) -> tuple:
        return (_KEY_ORDER[self.name], "" if self.value is None else self.value)

    def __str__(self) -> str:
        if self.name == "Char":
            return f"Char({self.value!r})"
        if self.name == "F":
            return f"F({self.value})"
        return self.name


KeyCode.BACKSPACE = KeyCode("Backspace")
KeyCode.ENTER = KeyCode("Enter")
KeyCode.LEFT = KeyCode("Left")
KeyCode.RIGHT = KeyCode("Right")
KeyCode.UP = KeyCode("Up")
KeyCode.DOWN = KeyCode("Down")
KeyCode.HOME = KeyCode("Home")
KeyCode.END = KeyCode("End")
KeyCode.PAGE_UP = KeyCode("PageUp")
KeyCode.PAGE_DOWN = KeyCode("PageDown")
KeyCode.TAB = KeyCode("Tab")
KeyCode.ESC = KeyCode("Esc")


@dataclass(frozen=True)
class KeyEvent:
    """A key press (or release) with its modifiers."""

    code: KeyCode
    control: bool = False
    alt: bool = False
    shift: bool = False
    release: bool = False

    @property
    def is_control_only(self) -> bool:
        return self.control and not self.alt and not self.shift


@dataclass(frozen=True)
class KeyCombination:
    """A key, optionally pressed together with control."""

    key: KeyCode
    control: bool = False

    def _sort_key(self) -> tuple:
        return (0, self.key._sort_key(), self.control)

    def _match(self, events: Sequence[KeyEvent]) -> tuple[int | None, Sequence[KeyEvent]] | None:
        if not events:
            return None
        event = events[0]
        if self.key == event.code and self.control == event.is_control_only:
            return None, events[1:]
        return None

    def __str__(self) -> str:
        if self.key.name == "Char":
            body = "' '" if self.key.value == " " else str(self.key.value)
        else:
            body = f"<{self.key}>"
        return f"<c-{body}>" if self.control else body


@dataclass(frozen=True)
class NumberMatcher:
    """Matches a run of digits, capturing the number they form."""

    def _sort_key(self) -> tuple:
        return (1,)

    def _match(self, events: Sequence[KeyEvent]) -> tuple[int | None, Sequence[KeyEvent]] | None:
        number: int | None = None
        position = 0
        for event in events:
            value = event.code.value
            if event.code.name != "Char" or value not in string.digits:
                break
            number = (number or 0) * 10 + int(value)
            if number > _MAX_NUMBER:
                return None
            position += 1
        if number is None:
            return None
        return number, events[position:]

    def __str__(self) -> str:
        return "<number>"


KeyMatcher = Union[KeyCombination, NumberMatcher]


class MatchKind(enum.Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


@dataclass(frozen=True)
class BindingMatch:
    """The outcome of matching events against a binding; ``number`` is set on numeric full matches."""

    kind: MatchKind
    number: int | None = None


class KeyBindingParseError(ValueError):
    """A key binding string could not be parsed."""


class KeyBindingsValidationError(ValueError):
    """A set of key bindings is invalid or ambiguous."""


@dataclass(frozen=True)
class KeyBinding:
    """A sequence of key matchers, such as ``gg`` or ``<number>G``."""

    matchers: tuple = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "matchers", tuple(self.matchers))

    def match_events(self, events: Sequence[KeyEvent]) -> BindingMatch:
        """Match the events against this binding."""
        number: int | None = None
        remaining: Sequence[KeyEvent] = tuple(events)
        last = len(self.matchers) - 1
        for index, matcher in enumerate(self.matchers):
            result = matcher._match(remaining)
            if result is None:
                return BindingMatch(MatchKind.NONE)
            captured, remaining = result
            if captured is not None:
                number = captured
            if index != last and not remaining:
                return BindingMatch(MatchKind.PARTIAL)
        return BindingMatch(MatchKind.FULL, number)

    def expects_number(self) -> bool:
        return any(isinstance(matcher, NumberMatcher) for matcher in self.matchers)

    def __str__(self) -> str:
        return "".join(str(matcher) for matcher in self.matchers)


_NAMED_KEYS = (
    (("<PageUp>", "<page_up>"), KeyCode.PAGE_UP),
    (("<PageDown>", "<page_down>"), KeyCode.PAGE_DOWN),
    (("<cr>", "<CR>", "<Enter>", "<enter>"), KeyCode.ENTER),
    (("<Home>", "<home>"), KeyCode.HOME),
    (("<End>", "<end>"), KeyCode.END),
    (("<Left>", "<left>"), KeyCode.LEFT),
    (("<Right>", "<right>"), KeyCode.RIGHT),
    (("<Up>", "<up>"), KeyCode.UP),
    (("<Down>", "<down>"), KeyCode.DOWN),
    (("<Esc>", "<esc>"), KeyCode.ESC),
    (("<Tab>", "<tab>"), KeyCode.TAB),
    (("<Backspace>", "<backspace>"), KeyCode.BACKSPACE),
)

_UNSIGNED_BYTE = re.compile(r"\+?[0-9]+")


def _strip_any(text: str, prefixes: Iterable[str]) -> str | None:
    for prefix in prefixes:
        if text.startswith(prefix):
            return text[len(prefix):]
    return None


def _parse_key_code(text: str) -> tuple[KeyCode, str]:
    for aliases, code in _NAMED_KEYS:
        rest = _strip_any(text, aliases)
        if rest is not None:
            return code, rest
    rest = _strip_any(text, ("<F", "<f"))
    if rest is not None:
        number_text, separator, rest = rest.partition(">")
        if not separator or not _UNSIGNED_BYTE.fullmatch(number_text):
            raise KeyBindingParseError("invalid control sequence")
        number = int(number_text)
        if number > _MAX_FUNCTION_KEY:
            raise KeyBindingParseError("invalid control sequence")
        return KeyCode.function(number), rest
    if not text:
        raise KeyBindingParseError("no input")
    first = text[0]
    # These would make bindings ambiguous.
    if first in "<>":
        raise KeyBindingParseError(f"not a valid key: {first}")
    if first.isalnum() or first in string.punctuation or first == " ":
        return KeyCode.char(first), text[1:]
    raise KeyBindingParseError(f"not a valid key: {first}")


def _parse_matcher(text: str) -> tuple[KeyMatcher, str]:
    if text.startswith("<number>"):
        return NumberMatcher(), text[len("<number>"):]
    rest = _strip_any(text, ("<c-", "<C-"))
    if rest is not None:
        key, rest = _parse_key_code(rest)
        if not rest.startswith(">"):
            raise KeyBindingParseError("invalid control sequence")
        return KeyCombination(key, control=True), rest[1:]
    key, rest = _parse_key_code(text)
    return KeyCombination(key), rest


def parse_key_binding(text: str) -> KeyBinding:
    """Parse a binding such as ``<c-w>``, ``gg`` or ``<number>G``."""
    matchers: list[KeyMatcher] = []
    has_number = False
    while text:
        matcher, text = _parse_matcher(text)
        is_number = isinstance(matcher, NumberMatcher)
        if has_number and is_number:
            raise KeyBindingParseError("too many number placeholders")
        has_number = has_number or is_number
        matchers.append(matcher)
    return KeyBinding(tuple(matchers))


def validate_conflicts(bindings: Iterable[KeyBinding]) -> None:
    """Raise if any binding is a prefix of (or equal to) another one."""
    ordered = sorted(bindings, key=lambda b: [m._sort_key() for m in b.matchers])
    for first, second in zip(ordered, ordered[1:]):
        length = len(first.matchers)
        if length <= len(second.matchers) and second.matchers[:length] == first.matchers:
            raise KeyBindingsValidationError(f"conflicting keybindings: {first} and {second}")


@dataclass(frozen=True)
class InputAction:
    """What to do with the buffered events: ``"buffer"``, ``"reset"`` or ``"emit"`` a command."""

    kind: str
    command: Command | None = None


class CommandKeyBindings:
    """Key bindings mapped to the commands they trigger."""

    def __init__(self, bindings: Iterable[tuple[KeyBinding, CommandKind]]) -> None:
        pairs = tuple(bindings)
        for binding, kind in pairs:
            if kind is CommandKind.GO_TO_SLIDE and not binding.expects_number():
                raise KeyBindingsValidationError("invalid binding for go_to_slide: <number> matcher required")
        validate_conflicts(binding for binding, _ in pairs)
        self._bindings = pairs

    def apply(self, events: Sequence[KeyEvent]) -> InputAction:
        """Decide what the pending events amount to."""
        any_partials = False
        for binding, kind in self._bindings:
            result = binding.match_events(events)
            if result.kind is MatchKind.FULL:
                return self._instantiate(kind, result.number)
            if result.kind is MatchKind.PARTIAL:
                any_partials = True
        return InputAction("buffer") if any_partials else InputAction("reset")

    @staticmethod
    def _instantiate(kind: CommandKind, number: int | None) -> InputAction:
        if kind is CommandKind.GO_TO_SLIDE:
            if number is None:
                return InputAction("reset")
            return InputAction("emit", Command(kind, number))
        return InputAction("emit", Command(kind))


class KeyboardListener:
    """Accumulates key events and emits commands when they complete a binding."""

    def __init__(self, bindings: CommandKeyBindings) -> None:
        self._bindings = bindings
        self._events: list[KeyEvent] = []

    def feed(self, event: KeyEvent) -> Command | None:
        """Process one key event, returning a command if one was completed."""
        if event.release:
            return None
        events = [*self._events, event]
        action = self._bindings.apply(events)
        if action.kind == "emit":
            self._events = []
            return action.command
        self._events = events if action.kind == "buffer" else []
        return None

    def resize(self) -> Command:
        """The terminal was resized; the presentation needs a redraw."""
        return Command(CommandKind.REDRAW)