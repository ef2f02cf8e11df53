"""Execution of code snippets through per-language command configurations."""

from __future__ import annotations

import enum
import os
import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence, Union

from deckterm.config import LanguageSnippetExecutionConfig

PathLike = Union[str, "os.PathLike[str]"]

_PWD_PLACEHOLDER = "$pwd"
_TEMP_PREFIX = ".deckterm"


class InvalidSnippetConfig(ValueError):
    """An executor configuration for some language is invalid."""

    def __init__(self, language: str, reason: str) -> None:
        super().__init__(f"invalid snippet execution for '{language}': {reason}")
        self.language = language
        self.reason = reason


class CodeExecuteError(Exception):
    """A snippet could not be executed."""


class ProcessStatus(enum.Enum):
    """The status of a snippet's execution."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"

    def is_finished(self) -> bool:
        """Whether the execution has ended, successfully or not."""
        return self in (ProcessStatus.SUCCESS, ProcessStatus.FAILURE)


@dataclass
class ExecutionState:
    """The output gathered so far and the status of an execution."""

    output: bytes = b""
    status: ProcessStatus = ProcessStatus.RUNNING


@dataclass
class _SharedState:
    lock: threading.Lock = field(default_factory=threading.Lock)
    output: bytearray = field(default_factory=bytearray)
    status: ProcessStatus = ProcessStatus.RUNNING

    def append(self, data: bytes) -> None:
        with self.lock:
            self.output.extend(data)

    def finish(self, status: ProcessStatus, message: bytes = b"") -> None:
        with self.lock:
            self.output.extend(message)
            self.status = status

    def snapshot(self) -> ExecutionState:
        with self.lock:
            return ExecutionState(bytes(self.output), self.status)


class ExecutionHandle:
    """A handle on a snippet running in the background."""

    def __init__(self, state: _SharedState, thread: threading.Thread) -> None:
        self._state = state
        self._thread = thread

    def snapshot(self) -> ExecutionState:
        """A copy of the current output and status."""
        return self._state.snapshot()

    def wait(self, timeout: float | None = None) -> ExecutionState:
        """Wait for the execution to end and return its final state.

        Raises TimeoutError if it has not ended within ``timeout`` seconds.
        """
        self._thread.join(timeout)
        if self._thread.is_alive():
            raise TimeoutError("snippet execution did not finish in time")
        return self._state.snapshot()


def _executable_contents(code: str, hidden_line_prefix: str | None) -> str:
    if not hidden_line_prefix:
        return code
    lines = code.split("\n")
    return "\n".join(
        line[len(hidden_line_prefix):] if line.startswith(hidden_line_prefix) else line for line in lines
    )


def _substitute(command: Sequence[str], directory: str) -> list[str]:
    return [part.replace(_PWD_PLACEHOLDER, directory) for part in command]


class _CommandsRunner:
    """Runs a language's commands one after another, collecting their output."""

    def __init__(
        self,
        state: _SharedState,
        script_dir: tempfile.TemporaryDirectory,
        commands: list[list[str]],
        environment: dict[str, str],
        cwd: Path,
        binary: bool,
    ) -> None:
        self._state = state
        self._script_dir = script_dir
        self._commands = commands
        self._environment = environment
        self._cwd = cwd
        self._binary = binary

    def run(self) -> None:
        try:
            succeeded = all(self._run_command(command) for command in self._commands)
            if self._state.snapshot().status is ProcessStatus.RUNNING or succeeded:
                self._state.finish(ProcessStatus.SUCCESS if succeeded else ProcessStatus.FAILURE)
            else:
                self._state.finish(ProcessStatus.FAILURE)
        finally:
            self._script_dir.cleanup()

    def _run_command(self, command: list[str]) -> bool:
        args = _substitute(command, self._script_dir.name)
        try:
            process = subprocess.Popen(
                args,
                env={**os.environ, **self._environment},
                cwd=self._cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as error:
            message = f"error spawning process '{args[0]}': {error}"
            self._state.finish(ProcessStatus.FAILURE, message.encode("utf-8"))
            return False
        with process:
            assert process.stdout is not None
            if self._binary:
                self._state.append(process.stdout.read())
            else:
                for line in process.stdout:
                    self._state.append(line.rstrip(b"\n").rstrip(b"\r") + b"\n")
            return process.wait() == 0


class SnippetExecutor:
    """Executes snippets using the configured commands for each language."""

    def __init__(
        self,
        executors: Mapping[str, LanguageSnippetExecutionConfig] | None = None,
        cwd: PathLike = ".",
    ) -> None:
        executors = dict(executors or {})
        for language, config in executors.items():
            if not config.filename:
                raise InvalidSnippetConfig(language, "filename is empty")
            if not config.commands:
                raise InvalidSnippetConfig(language, "no commands given")
            if any(not command for command in config.commands):
                raise InvalidSnippetConfig(language, "empty command given")
        self._executors = executors
        self._cwd = Path(cwd)

    def is_execution_supported(self, language: str) -> bool:
        return language in self._executors

    def hidden_line_prefix(self, language: str) -> str | None:
        config = self._executors.get(language)
        return config.hidden_line_prefix if config else None

    def execute_async(self, language: str, code: str, binary: bool = False) -> ExecutionHandle:
        """Start executing a snippet in the background.

        With ``binary`` the output is collected as is; otherwise line by line.
        """
        config = self._language_config(language)
        script_dir = self._write_snippet(code, config)
        state = _SharedState()
        runner = _CommandsRunner(
            state,
            script_dir,
            [list(command) for command in config.commands],
            dict(config.environment),
            self._cwd,
            binary,
        )
        thread = threading.Thread(target=runner.run, daemon=True)
        thread.start()
        return ExecutionHandle(state, thread)

    def execute_sync(self, language: str, code: str) -> None:
        """Execute a snippet and wait for it, raising if any command fails."""
        config = self._language_config(language)
        script_dir = self._write_snippet(code, config)
        with script_dir:
            for command in config.commands:
                args = _substitute(command, script_dir.name)
                try:
                    result = subprocess.run(
                        args,
                        env={**os.environ, **config.environment},
                        cwd=self._cwd,
                        stderr=subprocess.PIPE,
                        check=False,
                    )
                except OSError as error:
                    raise CodeExecuteError(f"error spawning process '{args[0]}': {error}") from error
                if result.returncode != 0:
                    stderr = result.stderr.decode("utf-8", errors="replace")
                    raise CodeExecuteError(f"error running process: {stderr}")

    def _language_config(self, language: str) -> LanguageSnippetExecutionConfig:
        try:
            return self._executors[language]
        except KeyError:
            raise CodeExecuteError("code language doesn't support execution") from None

    @staticmethod
    def _write_snippet(code: str, config: LanguageSnippetExecutionConfig) -> tempfile.TemporaryDirectory:
        contents = _executable_contents(code, config.hidden_line_prefix)
        try:
            script_dir = tempfile.TemporaryDirectory(prefix=_TEMP_PREFIX)
        except OSError as error:
            raise CodeExecuteError(f"error creating temporary directory: {error}") from error
        try:
            Path(script_dir.name, config.filename).write_text(contents, encoding="utf-8")
        except OSError as error:
            script_dir.cleanup()
            raise CodeExecuteError(f"error creating temporary directory: {error}") from error
        return script_dir

    def __repr__(self) -> str:
        return "SnippetExecutor { .. }"