"""Parse quoted, tab-delimited ladder program listings into ProgramLine / ProgramFile."""

import logging

from .types import ProgramFile, ProgramLine

logger = logging.getLogger(__name__)


def _tokenize(line: str) -> list[str]:
    """
    Split one line on tabs, honouring double quotes.

    - Empty fields between consecutive tabs are kept.
    - "" inside a quoted field is a literal quote.
    - An unterminated quote runs to the end of the line.
    """
    values: list[str] = []
    buf: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                buf.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == "\t" and not in_quotes:
            values.append("".join(buf))
            buf = []
        elif ch not in "\r\n":
            buf.append(ch)
        i += 1
    values.append("".join(buf))
    return values


def parse_program_line(line: str | None) -> ProgramLine:
    """Parse one listing line; never raises on odd quoting."""
    if line is None:
        return ProgramLine(raw="", columns=())
    return ProgramLine(raw=line, columns=tuple(_tokenize(line)))


class TabularProgramParser:
    """Line parser for tab-separated, quote-wrapped program exports."""

    def parse(self, line: str | None) -> ProgramLine:
        return parse_program_line(line)

    def parse_text(self, name: str, text: str) -> ProgramFile:
        return parse_program_text(name, text)


def parse_program_text(name: str, text: str) -> ProgramFile:
    """Build a ProgramFile from the full text of a listing (one ProgramLine per line)."""
    lines = tuple(parse_program_line(raw) for raw in (text or "").splitlines())
    logger.debug("Parsed program %s: %d lines", name, len(lines))
    return ProgramFile(name=name, lines=lines)
