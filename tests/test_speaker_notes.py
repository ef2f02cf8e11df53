import json
import socket
import time
from pathlib import Path

import pytest

from deckterm.commands import Command, CommandKind
from deckterm.speaker_notes import (
    SpeakerNotesEvent,
    SpeakerNotesEventListener,
    SpeakerNotesEventPublisher,
    decode_envelope,
    encode_envelope,
    event_to_command,
)


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _receive(listener, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        event = listener.try_recv()
        if event is not None:
            return event
        time.sleep(0.01)
    return None


def test_encode_exit_wire_format():
    data = encode_envelope(SpeakerNotesEvent("Exit"), "/tmp/test.md")
    assert data == b'{"presentation_path":"/tmp/test.md","event":{"command":"Exit"}}'


def test_encode_go_to_slide_wire_format():
    data = encode_envelope(SpeakerNotesEvent("GoToSlide", 3), "/tmp/test.md")
    assert json.loads(data) == {
        "presentation_path": "/tmp/test.md",
        "event": {"command": "GoToSlide", "slide": 3},
    }


@pytest.mark.parametrize("event", [SpeakerNotesEvent("Exit"), SpeakerNotesEvent("GoToSlide", 7)])
def test_envelope_round_trip(event):
    path, decoded = decode_envelope(encode_envelope(event, "/tmp/test.md"))
    assert path == Path("/tmp/test.md")
    assert decoded == event


@pytest.mark.parametrize(
    "data",
    [
        b"garbage",
        b"[]",
        b'{"event":{"command":"Exit"}}',
        b'{"presentation_path":"/a","event":{"command":"Jump"}}',
        b'{"presentation_path":"/a","event":{"command":"GoToSlide"}}',
        b'{"presentation_path":"/a","event":{"command":"GoToSlide","slide":-1}}',
        b"\xff\xfe",
    ],
)
def test_decode_invalid(data):
    with pytest.raises(ValueError):
        decode_envelope(data)


def test_invalid_events():
    with pytest.raises(ValueError):
        SpeakerNotesEvent("GoToSlide")
    with pytest.raises(ValueError):
        SpeakerNotesEvent("Exit", 1)
    with pytest.raises(ValueError):
        SpeakerNotesEvent("Other")


def test_event_to_command():
    assert event_to_command(SpeakerNotesEvent("GoToSlide", 4)) == Command(CommandKind.GO_TO_SLIDE, 4)
    assert event_to_command(SpeakerNotesEvent("Exit")) == Command(CommandKind.EXIT)


def test_bind_multiple():
    address = ("127.0.0.1", _free_port())
    with SpeakerNotesEventListener(address, "") as l1, SpeakerNotesEventListener(address, "") as l2:
        assert l1.try_recv() is None
        assert l2.try_recv() is None


def test_publish_and_receive():
    path = Path("/tmp/test.md")
    address = ("127.0.0.1", _free_port())
    with SpeakerNotesEventListener(address, path) as listener, SpeakerNotesEventPublisher(
        address, path
    ) as publisher:
        event = SpeakerNotesEvent("Exit")
        publisher.send(event)
        assert _receive(listener) == event
        publisher.send(SpeakerNotesEvent("GoToSlide", 2))
        assert _receive(listener) == SpeakerNotesEvent("GoToSlide", 2)


def test_other_presentation_ignored():
    address = ("127.0.0.1", _free_port())
    with SpeakerNotesEventListener(address, "/tmp/mine.md") as listener, SpeakerNotesEventPublisher(
        address, "/tmp/other.md"
    ) as publisher:
        publisher.send(SpeakerNotesEvent("Exit"))
        time.sleep(0.1)
        assert listener.try_recv() is None


def test_garbage_ignored():
    address = ("127.0.0.1", _free_port())
    with SpeakerNotesEventListener(address, "/tmp/test.md") as listener:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sender:
            sender.sendto(b"not json", address)
        time.sleep(0.1)
        assert listener.try_recv() is None


def test_send_without_listener_does_not_fail():
    address = ("127.0.0.1", _free_port())
    with SpeakerNotesEventPublisher(address, "/tmp/test.md") as publisher:
        assert publisher.send(SpeakerNotesEvent("Exit")) is None
        assert publisher.send(SpeakerNotesEvent("Exit")) is None