# deckterm

Building blocks for a terminal slideshow tool. It is a library and has no
command-line program. It provides:

- **Commands** (`deckterm.commands`). `CommandKind` and `Command` describe what
  a running presentation is asked to do: next, previous, go to slide and so on.
- **Key bindings** (`deckterm.keyboard`). It parses vim-style binding strings
  such as `gg`, `<c-e>`, `<PageDown>`, `<f5>` or `<number>G`. It matches them
  against key events, checks a set of bindings for conflicts, and turns a
  stream of key events into commands.
- **Configuration** (`deckterm.config`). It loads a YAML configuration file
  into typed settings dataclasses, with defaults for every field.
- **Speaker notes** (`deckterm.speaker_notes`). It sends and receives
  slide-change and exit events over UDP.
- **Snippet execution** (`deckterm.execute`). It runs code snippets through
  per-language executor configurations, in the foreground or in the
  background.
- **Line-number padding** (`deckterm.padding`).

## Installation

```
pip install .
```

## Usage

### Key bindings

```python
from deckterm.config import Config
from deckterm.keyboard import KeyboardListener, KeyCode, KeyEvent, parse_key_binding

binding = parse_key_binding("<number>G")
print(binding)                    # <number>G
print(binding.expects_number())   # True

bindings = Config().bindings.to_command_bindings()
listener = KeyboardListener(bindings)
listener.feed(KeyEvent(KeyCode.char("4")))               # None, still buffering
listener.feed(KeyEvent(KeyCode.char("2")))               # None
command = listener.feed(KeyEvent(KeyCode.char("G")))
print(command)                    # GoToSlide(42)

listener.feed(KeyEvent(KeyCode.char("c"), control=True))  # Command(kind=CommandKind.EXIT)
```

`parse_key_binding` raises `KeyBindingParseError` for input it cannot parse,
such as `<hi>`, `<f13>` or `<number><number>`. `CommandKeyBindings` raises
`KeyBindingsValidationError` in two cases: when one binding is a prefix of
another, and when a go-to-slide binding has no `<number>`.

### Configuration

```python
from deckterm.config import ConfigNotFoundError, load_config, parse_config

config = parse_config("options:\n  implicit_slide_ends: true\n")
print(config.options.implicit_slide_ends)    # True
print(config.defaults.terminal_font_size)    # 16

try:
    config = load_config("config.yaml")
except ConfigNotFoundError:
    config = parse_config("")
```

The configuration is read strictly. An unknown key, a value of the wrong type
or a value out of range raises `InvalidConfigError`. Both `ConfigNotFoundError`
and `InvalidConfigError` are subclasses of `ConfigLoadError`.

### Speaker notes

```python
from deckterm.config import (
    default_speaker_notes_listen_address,
    default_speaker_notes_publish_address,
)
from deckterm.speaker_notes import (
    SpeakerNotesEvent,
    SpeakerNotesEventListener,
    SpeakerNotesEventPublisher,
    event_to_command,
)

with SpeakerNotesEventListener(default_speaker_notes_listen_address(), "/tmp/talk.md") as listener, \
     SpeakerNotesEventPublisher(default_speaker_notes_publish_address(), "/tmp/talk.md") as publisher:
    publisher.send(SpeakerNotesEvent("GoToSlide", 3))
    event = listener.try_recv()   # None when nothing has arrived yet
    if event is not None:
        print(event_to_command(event))   # GoToSlide(3)
```

`try_recv` never blocks. A listener ignores events sent for a different
presentation path, and it ignores data that is not a valid envelope.
`encode_envelope` and `decode_envelope` expose the JSON wire format.

### Snippet execution

The package has no built-in executors. Each language you want to run needs
its own configuration. `$pwd` in a command stands for the temporary directory
that holds the snippet file.

```python
from deckterm.config import LanguageSnippetExecutionConfig
from deckterm.execute import SnippetExecutor

executor = SnippetExecutor({
    "bash": LanguageSnippetExecutionConfig(
        filename="snippet.sh",
        commands=[["bash", "$pwd/snippet.sh"]],
        hidden_line_prefix="/// ",
    ),
})
handle = executor.execute_async("bash", "echo hello")
state = handle.wait(5)
print(state.status, state.output)   # ProcessStatus.SUCCESS b'hello\n'

executor.execute_sync("bash", "exit 0")   # raises CodeExecuteError on failure
```

The executor takes its configurations from `config.snippet.exec.custom` in a
loaded `Config`. An invalid configuration raises `InvalidSnippetConfig`: an
empty filename, no commands, or an empty command. Executing a language that
has no configuration raises `CodeExecuteError`.

### Number padding

```python
from deckterm.padding import NumberPadder

padder = NumberPadder(100)
padder.pad_right(7)   # '  7'
```

## What this package does not do

This package does not parse markdown or render slides, and it does not draw
images. It does not read key events from a terminal; you pass it `KeyEvent`
values yourself. It has no themes, no syntax highlighting and no PDF export,
and there is no command to run.

## Running the tests

```
pip install ".[test]"
pytest
```