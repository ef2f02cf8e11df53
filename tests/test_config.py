import sys

import pytest

from deckterm.commands import Command, CommandKind
from deckterm.config import (
    Config,
    ConfigLoadError,
    ConfigNotFoundError,
    DefaultsConfig,
    ImageProtocol,
    InvalidConfigError,
    KeyBindingsConfig,
    MaxColumnsAlignment,
    SpeakerNotesConfig,
    ValidateOverflows,
    default_speaker_notes_listen_address,
    default_speaker_notes_publish_address,
    load_config,
    parse_config,
)
from deckterm.keyboard import (
    KeyBindingsValidationError,
    KeyCode,
    KeyEvent,
    KeyboardListener,
    parse_key_binding,
)


def _press(listener, *events):
    results = [listener.feed(event) for event in events]
    return results[-1]


def test_default_bindings_build_command_bindings():
    bindings = KeyBindingsConfig().to_command_bindings()
    listener = KeyboardListener(bindings)
    assert listener.feed(KeyEvent(KeyCode.char("l"))) == Command(CommandKind.NEXT)
    assert listener.feed(KeyEvent(KeyCode.char(" "))) == Command(CommandKind.NEXT)
    assert listener.feed(KeyEvent(KeyCode.LEFT)) == Command(CommandKind.PREVIOUS)


def test_default_bindings_multi_key_commands():
    listener = KeyboardListener(KeyBindingsConfig().to_command_bindings())
    assert _press(listener, KeyEvent(KeyCode.char("g")), KeyEvent(KeyCode.char("g"))) == Command(
        CommandKind.FIRST_SLIDE
    )
    assert _press(
        listener, KeyEvent(KeyCode.char("4")), KeyEvent(KeyCode.char("2")), KeyEvent(KeyCode.char("G"))
    ) == Command(CommandKind.GO_TO_SLIDE, 42)
    assert listener.feed(KeyEvent(KeyCode.char("e"), control=True)) == Command(CommandKind.RENDER_ASYNC_OPERATIONS)
    assert listener.feed(KeyEvent(KeyCode.char("r"), control=True)) == Command(CommandKind.HARD_RELOAD)


def test_default_options_serde():
    config = parse_config("options:\n  implicit_slide_ends: true\n")
    assert config.options.implicit_slide_ends is True
    assert config.options.command_prefix is None
    assert config.options.auto_render_languages == []


def test_defaults():
    config = Config()
    assert config.defaults.terminal_font_size == 16
    assert config.defaults.max_columns == 65535
    assert config.defaults.max_columns_alignment is MaxColumnsAlignment.CENTER
    assert config.defaults.image_protocol is ImageProtocol.AUTO
    assert config.defaults.validate_overflows is ValidateOverflows.NEVER
    assert config.typst.ppi == 300
    assert config.mermaid.scale == 2
    assert config.snippet.render.threads == 2
    assert config.snippet.exec.enable is False
    assert config.speaker_notes.always_publish is False


def test_empty_document_gives_defaults():
    assert parse_config("") == Config()


def test_parse_defaults_section():
    config = parse_config(
        "defaults:\n"
        "  theme: light\n"
        "  terminal_font_size: 20\n"
        "  image_protocol: kitty-local\n"
        "  validate_overflows: when_presenting\n"
        "  max_columns: 100\n"
        "  max_columns_alignment: left\n"
        "  incremental_lists:\n"
        "    pause_before: false\n"
    )
    assert config.defaults == DefaultsConfig(
        theme="light",
        terminal_font_size=20,
        image_protocol=ImageProtocol.KITTY_LOCAL,
        validate_overflows=ValidateOverflows.WHEN_PRESENTING,
        max_columns=100,
        max_columns_alignment=MaxColumnsAlignment.LEFT,
        incremental_lists=config.defaults.incremental_lists,
    )
    assert config.defaults.incremental_lists.pause_before is False
    assert config.defaults.incremental_lists.pause_after is None


@pytest.mark.parametrize(
    "text",
    [
        "unknown: 1\n",
        "defaults:\n  bogus: 1\n",
        "defaults:\n  terminal_font_size: 0\n",
        "defaults:\n  terminal_font_size: 256\n",
        "defaults:\n  image_protocol: png\n",
        "defaults:\n  max_columns: 70000\n",
        "typst:\n  ppi: -1\n",
        "snippet:\n  exec:\n    custom: {}\n",
        "snippet:\n  exec_replace: {}\n",
        "bindings:\n  next: ['<hi>']\n",
        "bindings:\n  unknown: ['a']\n",
        "speaker_notes:\n  listen_address: 'localhost'\n",
        "- a list\n",
        "defaults: [\n",
    ],
)
def test_invalid_configs(text):
    with pytest.raises(InvalidConfigError):
        parse_config(text)


def test_custom_executor():
    config = parse_config(
        "snippet:\n"
        "  exec:\n"
        "    enable: true\n"
        "    custom:\n"
        "      python:\n"
        "        filename: snippet.py\n"
        "        environment:\n"
        "          FOO: bar\n"
        "        commands: [[python3, '$pwd/snippet.py']]\n"
        "        hidden_line_prefix: '/// '\n"
    )
    executor = config.snippet.exec.custom["python"]
    assert config.snippet.exec.enable is True
    assert executor.filename == "snippet.py"
    assert executor.environment == {"FOO": "bar"}
    assert executor.commands == [["python3", "$pwd/snippet.py"]]
    assert executor.hidden_line_prefix == "/// "


def test_custom_executor_requires_filename():
    with pytest.raises(InvalidConfigError, match="filename"):
        parse_config("snippet:\n  exec:\n    enable: true\n    custom:\n      python:\n        commands: [[a]]\n")


def test_custom_bindings():
    config = parse_config("bindings:\n  next: ['x', '<c-n>']\n")
    assert config.bindings.next == [parse_key_binding("x"), parse_key_binding("<c-n>")]
    assert config.bindings.previous == KeyBindingsConfig().previous
    listener = KeyboardListener(config.bindings.to_command_bindings())
    assert listener.feed(KeyEvent(KeyCode.char("x"))) == Command(CommandKind.NEXT)


def test_go_to_slide_requires_number():
    config = parse_config("bindings:\n  go_to_slide: ['z']\n")
    with pytest.raises(KeyBindingsValidationError, match="go_to_slide"):
        config.bindings.to_command_bindings()


def test_conflicting_bindings():
    config = parse_config("bindings:\n  next: ['q']\n")
    with pytest.raises(KeyBindingsValidationError, match="conflicting"):
        config.bindings.to_command_bindings()


def test_speaker_notes_addresses():
    config = parse_config(
        "speaker_notes:\n"
        "  listen_address: '127.0.0.1:1234'\n"
        "  publish_address: '[::1]:80'\n"
        "  always_publish: true\n"
    )
    assert config.speaker_notes == SpeakerNotesConfig(
        listen_address=("127.0.0.1", 1234), publish_address=("::1", 80), always_publish=True
    )


def test_default_addresses_on_linux(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    assert default_speaker_notes_listen_address() == ("127.255.255.255", 59418)
    assert default_speaker_notes_publish_address() == ("127.255.255.255", 59418)


def test_default_addresses_on_macos(monkeypatch):
    monkeypatch.setattr(sys, "platform", "darwin")
    assert default_speaker_notes_listen_address() == ("127.0.0.1", 59418)
    assert default_speaker_notes_publish_address() == ("127.0.0.1", 59418)


def test_load_config_missing(tmp_path):
    with pytest.raises(ConfigNotFoundError, match="config file not found"):
        load_config(tmp_path / "missing.yaml")


def test_load_config_from_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("mermaid:\n  scale: 4\ntypst:\n  ppi: 150\n", encoding="utf-8")
    config = load_config(path)
    assert config.mermaid.scale == 4
    assert config.typst.ppi == 150


def test_load_config_directory_is_io_error(tmp_path):
    with pytest.raises(ConfigLoadError) as info:
        load_config(tmp_path)
    assert not isinstance(info.value, (ConfigNotFoundError, InvalidConfigError))
    assert str(info.value).startswith("io: ")


def test_invalid_error_message():
    with pytest.raises(InvalidConfigError) as info:
        parse_config("defaults:\n  validate_overflows: sometimes\n")
    assert str(info.value).startswith("invalid configuration: ")
    assert "sometimes" in str(info.value)