"""Line-oriented console output."""

from __future__ import annotations

import sys
from typing import Protocol

import typer


class OutputWriter(Protocol):
    is_redirected: bool

    def line(self, text: str = "") -> None:
        ...

    def write(self, text: str) -> None:
        ...

    def error(self, text: str) -> None:
        ...

    def clear(self) -> None:
        ...


class ConsoleOutput:
    def __init__(self, *, is_redirected: bool | None = None) -> None:
        if is_redirected is None:
            is_redirected = not sys.stdout.isatty()
        self.is_redirected = is_redirected

    def line(self, text: str = "") -> None:
        typer.echo(text)

    def write(self, text: str) -> None:
        typer.echo(text, nl=False)

    def error(self, text: str) -> None:
        typer.echo(text, err=True)

    def clear(self) -> None:
        if not self.is_redirected:
            typer.clear()
