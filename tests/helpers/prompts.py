"""Prompt helpers: a real pipe-backed session and a scripted stand-in."""

from __future__ import annotations

import contextlib
from collections.abc import Iterable, Iterator

from prompt_toolkit import PromptSession
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput


@contextlib.contextmanager
def pipe_session() -> Iterator[tuple[object, PromptSession]]:
    with create_pipe_input() as pipe:
        sess = PromptSession(input=pipe, output=DummyOutput())
        yield pipe, sess


class ScriptedSession:
    """Answers ``prompt()`` calls from a list of lines, then raises ``EOFError``."""

    def __init__(self, lines: Iterable[str]) -> None:
        self._lines = list(lines)
        self.prompts: list[str] = []

    def prompt(self, message: str = "", **_kwargs) -> str:
        self.prompts.append(message)
        if not self._lines:
            raise EOFError
        return self._lines.pop(0)
