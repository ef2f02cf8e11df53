"""Presentation configuration: the sections of the YAML config file and their defaults."""

from __future__ import annotations

import enum
import ipaddress
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Union

import yaml

from deckterm.commands import CommandKind
from deckterm.keyboard import (
    CommandKeyBindings,
    KeyBinding,
    KeyBindingParseError,
    parse_key_binding,
)

PathLike = Union[str, "os.PathLike[str]"]
Address = tuple

_U8_MAX = 2**8 - 1
_U16_MAX = 2**16 - 1
_U32_MAX = 2**32 - 1
_USIZE_MAX = 2**64 - 1
_SPEAKER_NOTES_PORT = 59418


class ConfigLoadError(Exception):
    """The configuration could not be loaded."""


class ConfigNotFoundError(ConfigLoadError):
    """The configuration file does not exist."""

    def __init__(self) -> None:
        super().__init__("config file not found")


class InvalidConfigError(ConfigLoadError):
    """The configuration file exists but its contents are not valid."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"invalid configuration: {reason}")
        self.reason = reason


# Helpers that check YAML values the way a strict schema would.


def _mapping(value: Any, where: str, allowed: set[str] | None) -> dict:
    if value is None:
        raise InvalidConfigError(f"{where}: expected a mapping, found null")
    if not isinstance(value, dict):
        raise InvalidConfigError(f"{where}: expected a mapping")
    for key in value:
        if not isinstance(key, str):
            raise InvalidConfigError(f"{where}: keys must be strings, found {key!r}")
        if allowed is not None and key not in allowed:
            expected = ", ".join(f"`{name}`" for name in sorted(allowed))
            raise InvalidConfigError(f"{where}: unknown field `{key}`, expected one of {expected}")
    return value


def _join(where: str, key: str) -> str:
    return f"{where}.{key}" if where else key


def _int(value: Any, where: str, minimum: int, maximum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigError(f"{where}: expected an integer")
    if not minimum <= value <= maximum:
        raise InvalidConfigError(f"{where}: {value} is not within {minimum}..={maximum}")
    return value


def _bool(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidConfigError(f"{where}: expected a boolean")
    return value


def _opt_bool(value: Any, where: str) -> bool | None:
    return None if value is None else _bool(value, where)


def _str(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise InvalidConfigError(f"{where}: expected a string")
    return value


def _opt_str(value: Any, where: str) -> str | None:
    return None if value is None else _str(value, where)


def _str_list(value: Any, where: str) -> list[str]:
    if not isinstance(value, list):
        raise InvalidConfigError(f"{where}: expected a list")
    return [_str(item, f"{where}[{index}]") for index, item in enumerate(value)]


class _YamlEnum(enum.Enum):
    @classmethod
    def _parse(cls, value: Any, where: str) -> Any:
        text = _str(value, where)
        try:
            return cls(text)
        except ValueError:
            variants = ", ".join(f"`{member.value}`" for member in cls)
            raise InvalidConfigError(f"{where}: unknown variant `{text}`, expected one of {variants}") from None


class MaxColumnsAlignment(_YamlEnum):
    """Where to place the presentation when it is capped to ``max_columns``."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class ValidateOverflows(_YamlEnum):
    """When to check that the presentation does not overflow the terminal."""

    NEVER = "never"
    ALWAYS = "always"
    WHEN_PRESENTING = "when_presenting"
    WHEN_DEVELOPING = "when_developing"


class ImageProtocol(_YamlEnum):
    """The protocol used to draw images."""

    AUTO = "auto"
    ITERM2 = "iterm2"
    KITTY_LOCAL = "kitty-local"
    KITTY_REMOTE = "kitty-remote"
    SIXEL = "sixel"
    ASCII_BLOCKS = "ascii-blocks"


@dataclass
class IncrementalListsConfig:
    """How lists behave when incremental lists are enabled."""

    pause_before: bool | None = None
    pause_after: bool | None = None

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> IncrementalListsConfig:
        data = _mapping(data, where, {"pause_before", "pause_after"})
        return cls(
            pause_before=_opt_bool(data.get("pause_before"), _join(where, "pause_before")),
            pause_after=_opt_bool(data.get("pause_after"), _join(where, "pause_after")),
        )


@dataclass
class DefaultsConfig:
    """Defaults applied to every presentation."""

    theme: str | None = None
    terminal_font_size: int = 16
    image_protocol: ImageProtocol = ImageProtocol.AUTO
    validate_overflows: ValidateOverflows = ValidateOverflows.NEVER
    max_columns: int = _U16_MAX
    max_columns_alignment: MaxColumnsAlignment = MaxColumnsAlignment.CENTER
    incremental_lists: IncrementalListsConfig = field(default_factory=IncrementalListsConfig)

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> DefaultsConfig:
        fields = {
            "theme",
            "terminal_font_size",
            "image_protocol",
            "validate_overflows",
            "max_columns",
            "max_columns_alignment",
            "incremental_lists",
        }
        data = _mapping(data, where, fields)
        config = cls(theme=_opt_str(data.get("theme"), _join(where, "theme")))
        if "terminal_font_size" in data:
            config.terminal_font_size = _int(
                data["terminal_font_size"], _join(where, "terminal_font_size"), 1, _U8_MAX
            )
        if "image_protocol" in data:
            config.image_protocol = ImageProtocol._parse(data["image_protocol"], _join(where, "image_protocol"))
        if "validate_overflows" in data:
            config.validate_overflows = ValidateOverflows._parse(
                data["validate_overflows"], _join(where, "validate_overflows")
            )
        if "max_columns" in data:
            config.max_columns = _int(data["max_columns"], _join(where, "max_columns"), 0, _U16_MAX)
        if "max_columns_alignment" in data:
            config.max_columns_alignment = MaxColumnsAlignment._parse(
                data["max_columns_alignment"], _join(where, "max_columns_alignment")
            )
        if "incremental_lists" in data:
            config.incremental_lists = IncrementalListsConfig._from_yaml(
                data["incremental_lists"], _join(where, "incremental_lists")
            )
        return config


@dataclass
class OptionsConfig:
    """Presentation options that can also be set in a presentation's front matter."""

    implicit_slide_ends: bool | None = None
    command_prefix: str | None = None
    image_attributes_prefix: str | None = None
    incremental_lists: bool | None = None
    end_slide_shorthand: bool | None = None
    strict_front_matter_parsing: bool | None = None
    auto_render_languages: list[str] = field(default_factory=list)

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> OptionsConfig:
        booleans = (
            "implicit_slide_ends",
            "incremental_lists",
            "end_slide_shorthand",
            "strict_front_matter_parsing",
        )
        strings = ("command_prefix", "image_attributes_prefix")
        data = _mapping(data, where, {*booleans, *strings, "auto_render_languages"})
        values: dict[str, Any] = {name: _opt_bool(data.get(name), _join(where, name)) for name in booleans}
        values.update({name: _opt_str(data.get(name), _join(where, name)) for name in strings})
        if "auto_render_languages" in data:
            values["auto_render_languages"] = _str_list(
                data["auto_render_languages"], _join(where, "auto_render_languages")
            )
        return cls(**values)


@dataclass
class LanguageSnippetExecutionConfig:
    """How to execute snippets of one language."""

    filename: str
    commands: list[list[str]]
    environment: dict[str, str] = field(default_factory=dict)
    hidden_line_prefix: str | None = None

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> LanguageSnippetExecutionConfig:
        data = _mapping(data, where, None)
        for required in ("filename", "commands"):
            if required not in data:
                raise InvalidConfigError(f"{where}: missing field `{required}`")
        commands_where = _join(where, "commands")
        raw_commands = data["commands"]
        if not isinstance(raw_commands, list):
            raise InvalidConfigError(f"{commands_where}: expected a list")
        commands = [_str_list(command, f"{commands_where}[{index}]") for index, command in enumerate(raw_commands)]
        environment: dict[str, str] = {}
        if "environment" in data:
            env_where = _join(where, "environment")
            raw_env = _mapping(data["environment"], env_where, None)
            environment = {key: _str(value, _join(env_where, key)) for key, value in raw_env.items()}
        return cls(
            filename=_str(data["filename"], _join(where, "filename")),
            commands=commands,
            environment=environment,
            hidden_line_prefix=_opt_str(data.get("hidden_line_prefix"), _join(where, "hidden_line_prefix")),
        )


@dataclass
class SnippetExecConfig:
    """Snippet execution settings."""

    enable: bool = False
    custom: dict[str, LanguageSnippetExecutionConfig] = field(default_factory=dict)

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> SnippetExecConfig:
        data = _mapping(data, where, {"enable", "custom"})
        if "enable" not in data:
            raise InvalidConfigError(f"{where}: missing field `enable`")
        custom: dict[str, LanguageSnippetExecutionConfig] = {}
        if "custom" in data:
            custom_where = _join(where, "custom")
            raw = _mapping(data["custom"], custom_where, None)
            custom = {
                language: LanguageSnippetExecutionConfig._from_yaml(value, _join(custom_where, language))
                for language, value in raw.items()
            }
        return cls(enable=_bool(data["enable"], _join(where, "enable")), custom=custom)


@dataclass
class SnippetExecReplaceConfig:
    """Settings for snippets that are replaced by their output automatically."""

    enable: bool = False

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> SnippetExecReplaceConfig:
        data = _mapping(data, where, {"enable"})
        if "enable" not in data:
            raise InvalidConfigError(f"{where}: missing field `enable`")
        return cls(enable=_bool(data["enable"], _join(where, "enable")))


@dataclass
class SnippetRenderConfig:
    """Settings for rendering snippets automatically."""

    threads: int = 2

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> SnippetRenderConfig:
        data = _mapping(data, where, {"threads"})
        config = cls()
        if "threads" in data:
            config.threads = _int(data["threads"], _join(where, "threads"), 0, _USIZE_MAX)
        return config


@dataclass
class SnippetConfig:
    """All snippet related settings."""

    exec: SnippetExecConfig = field(default_factory=SnippetExecConfig)
    exec_replace: SnippetExecReplaceConfig = field(default_factory=SnippetExecReplaceConfig)
    render: SnippetRenderConfig = field(default_factory=SnippetRenderConfig)

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> SnippetConfig:
        data = _mapping(data, where, {"exec", "exec_replace", "render"})
        config = cls()
        if "exec" in data:
            config.exec = SnippetExecConfig._from_yaml(data["exec"], _join(where, "exec"))
        if "exec_replace" in data:
            config.exec_replace = SnippetExecReplaceConfig._from_yaml(
                data["exec_replace"], _join(where, "exec_replace")
            )
        if "render" in data:
            config.render = SnippetRenderConfig._from_yaml(data["render"], _join(where, "render"))
        return config


@dataclass
class TypstConfig:
    """Formula rendering settings."""

    ppi: int = 300

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> TypstConfig:
        data = _mapping(data, where, {"ppi"})
        config = cls()
        if "ppi" in data:
            config.ppi = _int(data["ppi"], _join(where, "ppi"), 0, _U32_MAX)
        return config


@dataclass
class MermaidConfig:
    """Diagram rendering settings."""

    scale: int = 2

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> MermaidConfig:
        data = _mapping(data, where, {"scale"})
        config = cls()
        if "scale" in data:
            config.scale = _int(data["scale"], _join(where, "scale"), 0, _U32_MAX)
        return config


def _bindings(*patterns: str) -> Callable[[], list[KeyBinding]]:
    return lambda: [parse_key_binding(pattern) for pattern in patterns]


# Field name, default patterns, and the command each binding triggers, in matching order.
_BINDING_FIELDS: tuple[tuple[str, CommandKind], ...] = (
    ("next", CommandKind.NEXT),
    ("next_fast", CommandKind.NEXT_FAST),
    ("previous", CommandKind.PREVIOUS),
    ("previous_fast", CommandKind.PREVIOUS_FAST),
    ("first_slide", CommandKind.FIRST_SLIDE),
    ("last_slide", CommandKind.LAST_SLIDE),
    ("go_to_slide", CommandKind.GO_TO_SLIDE),
    ("exit", CommandKind.EXIT),
    ("suspend", CommandKind.SUSPEND),
    ("reload", CommandKind.HARD_RELOAD),
    ("toggle_slide_index", CommandKind.TOGGLE_SLIDE_INDEX),
    ("toggle_bindings", CommandKind.TOGGLE_KEY_BINDINGS_CONFIG),
    ("execute_code", CommandKind.RENDER_ASYNC_OPERATIONS),
    ("close_modal", CommandKind.CLOSE_MODAL),
)


@dataclass
class KeyBindingsConfig:
    """The key bindings for every presentation command."""

    next: list[KeyBinding] = field(default_factory=_bindings("l", "j", "<right>", "<page_down>", "<down>", " "))
    next_fast: list[KeyBinding] = field(default_factory=_bindings("n"))
    previous: list[KeyBinding] = field(default_factory=_bindings("h", "k", "<left>", "<page_up>", "<up>"))
    previous_fast: list[KeyBinding] = field(default_factory=_bindings("p"))
    first_slide: list[KeyBinding] = field(default_factory=_bindings("gg"))
    last_slide: list[KeyBinding] = field(default_factory=_bindings("G"))
    go_to_slide: list[KeyBinding] = field(default_factory=_bindings("<number>G"))
    execute_code: list[KeyBinding] = field(default_factory=_bindings("<c-e>"))
    reload: list[KeyBinding] = field(default_factory=_bindings("<c-r>"))
    toggle_slide_index: list[KeyBinding] = field(default_factory=_bindings("<c-p>"))
    toggle_bindings: list[KeyBinding] = field(default_factory=_bindings("?"))
    close_modal: list[KeyBinding] = field(default_factory=_bindings("<esc>"))
    exit: list[KeyBinding] = field(default_factory=_bindings("<c-c>", "q"))
    suspend: list[KeyBinding] = field(default_factory=_bindings("<c-z>"))

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> KeyBindingsConfig:
        names = {name for name, _ in _BINDING_FIELDS}
        data = _mapping(data, where, names)
        config = cls()
        for name, raw in data.items():
            field_where = _join(where, name)
            bindings = []
            for index, pattern in enumerate(_str_list(raw, field_where)):
                try:
                    bindings.append(parse_key_binding(pattern))
                except KeyBindingParseError as error:
                    raise InvalidConfigError(f"{field_where}[{index}]: {error}") from error
            setattr(config, name, bindings)
        return config

    def to_command_bindings(self) -> CommandKeyBindings:
        """Validate the bindings and map each of them to its command."""
        pairs = [(binding, kind) for name, kind in _BINDING_FIELDS for binding in getattr(self, name)]
        return CommandKeyBindings(pairs)


def _parse_address(value: Any, where: str) -> Address:
    text = _str(value, where)
    host, separator, port_text = text.rpartition(":")
    if not separator or not port_text.isdigit():
        raise InvalidConfigError(f"{where}: invalid socket address syntax")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
        version = 6
    else:
        version = 4
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        raise InvalidConfigError(f"{where}: invalid socket address syntax") from None
    if address.version != version:
        raise InvalidConfigError(f"{where}: invalid socket address syntax")
    port = int(port_text)
    if port > _U16_MAX:
        raise InvalidConfigError(f"{where}: invalid socket address syntax")
    return (str(address), port)


def default_speaker_notes_listen_address() -> Address:
    """The address speaker notes listeners bind to by default."""
    host = "127.255.255.255" if sys.platform.startswith("linux") else "127.0.0.1"
    return (host, _SPEAKER_NOTES_PORT)


def default_speaker_notes_publish_address() -> Address:
    """The address speaker notes events are published to by default."""
    host = "127.0.0.1" if sys.platform == "darwin" else "127.255.255.255"
    return (host, _SPEAKER_NOTES_PORT)


@dataclass
class SpeakerNotesConfig:
    """Where speaker notes events are exchanged."""

    listen_address: Address = field(default_factory=default_speaker_notes_listen_address)
    publish_address: Address = field(default_factory=default_speaker_notes_publish_address)
    always_publish: bool = False

    @classmethod
    def _from_yaml(cls, data: Any, where: str) -> SpeakerNotesConfig:
        data = _mapping(data, where, {"listen_address", "publish_address", "always_publish"})
        config = cls()
        if "listen_address" in data:
            config.listen_address = _parse_address(data["listen_address"], _join(where, "listen_address"))
        if "publish_address" in data:
            config.publish_address = _parse_address(data["publish_address"], _join(where, "publish_address"))
        if "always_publish" in data:
            config.always_publish = _bool(data["always_publish"], _join(where, "always_publish"))
        return config


_SECTIONS: dict[str, Any] = {
    "defaults": DefaultsConfig,
    "typst": TypstConfig,
    "mermaid": MermaidConfig,
    "options": OptionsConfig,
    "bindings": KeyBindingsConfig,
    "snippet": SnippetConfig,
    "speaker_notes": SpeakerNotesConfig,
}


@dataclass
class Config:
    """The whole configuration file."""

    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    typst: TypstConfig = field(default_factory=TypstConfig)
    mermaid: MermaidConfig = field(default_factory=MermaidConfig)
    options: OptionsConfig = field(default_factory=OptionsConfig)
    bindings: KeyBindingsConfig = field(default_factory=KeyBindingsConfig)
    snippet: SnippetConfig = field(default_factory=SnippetConfig)
    speaker_notes: SpeakerNotesConfig = field(default_factory=SpeakerNotesConfig)


def parse_config(text: str) -> Config:
    """Parse the YAML text of a configuration file."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as error:
        raise InvalidConfigError(str(error)) from error
    if document is None:
        return Config()
    data = _mapping(document, "config", set(_SECTIONS))
    sections = {name: _SECTIONS[name]._from_yaml(value, name) for name, value in data.items()}
    return Config(**sections)


def load_config(path: PathLike) -> Config:
    """Load the configuration file at ``path``."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise ConfigNotFoundError() from error
    except (OSError, UnicodeDecodeError) as error:
        raise ConfigLoadError(f"io: {error}") from error
    return parse_config(text)