"""Library for formatting output."""

from collections.abc import Generator
from typing import Any, TextIO

import yaml

PADDING = 3


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Yield the rows aligned in columns as wide as their widest value."""
    data = [headers] + rows
    widths = [max(len(row[i]) for row in data) for i in range(len(headers))]
    for row in data:
        yield "".join(
            value.ljust(width + PADDING) for value, width in zip(row, widths)
        ).rstrip()


class PrintFormatter:
    """A formatter that prints human readable console output."""

    def __init__(self, keys: list[str]) -> None:
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        if not data:
            return
        rows = [[str(row.get(key, "")) for key in self._keys] for row in data]
        yield from format_columns([key.upper() for key in self._keys], rows)

    def print(self, data: list[dict[str, Any]], file: TextIO | None = None) -> None:
        """Print the formatted lines, to stdout unless a file is given."""
        for line in self.format(data):
            print(line, file=file)


class YamlFormatter:
    """A formatter that prints a stream of yaml documents."""

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        content = yaml.dump_all(data, sort_keys=False, explicit_start=True)
        yield from content.rstrip("\n").split("\n")

    def print(self, data: list[dict[str, Any]], file: TextIO | None = None) -> None:
        """Print the formatted lines, to stdout unless a file is given."""
        for line in self.format(data):
            print(line, file=file)
