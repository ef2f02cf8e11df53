"""Speaker notes events exchanged between presentation instances over UDP."""

from __future__ import annotations

import json
import os
import socket
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from deckterm.commands import Command, CommandKind

PathLike = Union[str, "os.PathLike[str]"]
Address = tuple

_GO_TO_SLIDE = "GoToSlide"
_EXIT = "Exit"
_MAX_SLIDE = 2**32 - 1
_BUFFER_SIZE = 1024


@dataclass(frozen=True)
class SpeakerNotesEvent:
    """An event: ``command`` is ``"GoToSlide"`` (with ``slide``) or ``"Exit"``."""

    command: str
    slide: int | None = None

    def __post_init__(self) -> None:
        if self.command == _GO_TO_SLIDE:
            if isinstance(self.slide, bool) or not isinstance(self.slide, int):
                raise ValueError("GoToSlide requires an integer slide")
            if not 0 <= self.slide <= _MAX_SLIDE:
                raise ValueError(f"slide out of range: {self.slide}")
        elif self.command == _EXIT:
            if self.slide is not None:
                raise ValueError("Exit does not take a slide")
        else:
            raise ValueError(f"unknown speaker notes command: {self.command!r}")

    def _to_json(self) -> dict:
        if self.command == _GO_TO_SLIDE:
            return {"command": self.command, "slide": self.slide}
        return {"command": self.command}


def encode_envelope(event: SpeakerNotesEvent, presentation_path: PathLike) -> bytes:
    """Serialize an event along with the presentation it belongs to."""
    envelope = {"presentation_path": os.fspath(presentation_path), "event": event._to_json()}
    return json.dumps(envelope, separators=(",", ":")).encode("utf-8")


def decode_envelope(data: bytes) -> tuple[Path, SpeakerNotesEvent]:
    """Parse an envelope, returning the presentation path and the event.

    Raises ValueError if the data is not a valid envelope.
    """
    envelope = json.loads(data.decode("utf-8"))
    if not isinstance(envelope, dict):
        raise ValueError("envelope is not an object")
    path = envelope.get("presentation_path")
    event = envelope.get("event")
    if not isinstance(path, str):
        raise ValueError("missing presentation path")
    if not isinstance(event, dict):
        raise ValueError("missing event")
    command = event.get("command")
    if not isinstance(command, str):
        raise ValueError("missing event command")
    if command == _GO_TO_SLIDE:
        if "slide" not in event:
            raise ValueError("missing slide")
        return Path(path), SpeakerNotesEvent(command, event["slide"])
    return Path(path), SpeakerNotesEvent(command)


def event_to_command(event: SpeakerNotesEvent) -> Command:
    """Translate a speaker notes event into a presentation command."""
    if event.command == _GO_TO_SLIDE:
        return Command(CommandKind.GO_TO_SLIDE, event.slide)
    return Command(CommandKind.EXIT)


class SpeakerNotesEventPublisher:
    """Sends speaker notes events to listeners at an address."""

    def __init__(self, address: Address, presentation_path: PathLike) -> None:
        self._presentation_path = os.fspath(presentation_path)
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self._socket.bind(("127.0.0.1", 0))
            self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            self._socket.connect(address)
        except OSError:
            self._socket.close()
            raise

    def send(self, event: SpeakerNotesEvent) -> None:
        """Publish an event; nobody listening is not an error."""
        data = encode_envelope(event, self._presentation_path)
        try:
            self._socket.send(data)
        except ConnectionRefusedError:
            pass

    def close(self) -> None:
        self._socket.close()

    def __enter__(self) -> SpeakerNotesEventPublisher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class SpeakerNotesEventListener:
    """Receives speaker notes events for one presentation without blocking."""

    def __init__(self, address: Address, presentation_path: PathLike) -> None:
        self._presentation_path = Path(presentation_path)
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            # Allows several listeners on the same port.
            if sys.platform != "darwin":
                self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._socket.setblocking(False)
            self._socket.bind(address)
        except OSError:
            self._socket.close()
            raise

    def try_recv(self) -> SpeakerNotesEvent | None:
        """Return the next event for this presentation, or None if there is none."""
        try:
            data = self._socket.recv(_BUFFER_SIZE)
        except BlockingIOError:
            return None
        try:
            path, event = decode_envelope(data)
        except ValueError:
            # Garbage from someone else; ignore it.
            return None
        return event if path == self._presentation_path else None

    def close(self) -> None:
        self._socket.close()

    def __enter__(self) -> SpeakerNotesEventListener:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()