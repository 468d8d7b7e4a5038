"""ProgramStore: comments, program listings and function blocks, published as one immutable snapshot."""

import csv
import io
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

from .address import normalize_device
from .normalize import normalize_text
from .parser import parse_program_text
from .types import FunctionBlock, ProgramFile

logger = logging.getLogger(__name__)

# Export tools write either UTF-8 or Shift-JIS; UTF-16 shows up from some spreadsheet saves
_ENCODINGS = ("utf-8-sig", "cp932", "utf-16")


def comment_key(token: str) -> str:
    """Lookup key for a comment: device display form (T0 -> TS0), else the normalized text."""
    text = normalize_text(token)
    return normalize_device(text) or text


@dataclass(frozen=True)
class StoreSnapshot:
    """Everything loaded for one PLC unit. Readers hold a snapshot for the duration of a query."""

    comments: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    programs: tuple[ProgramFile, ...] = ()
    function_blocks: tuple[FunctionBlock, ...] = ()

    def try_get_comment(self, token: str) -> str | None:
        if not token or not token.strip():
            return None
        return self.comments.get(comment_key(token))

    def get_program(self, name: str) -> ProgramFile | None:
        for program in self.programs:
            if program.name == name:
                return program
        return None

    def try_get_function_block(self, name: str) -> FunctionBlock | None:
        if not name or not name.strip():
            return None
        wanted = name.strip().lower()
        for block in self.function_blocks:
            if block.name.lower() == wanted or block.safe_name.lower() == wanted:
                return block
        return None

    @property
    def is_empty(self) -> bool:
        return not self.comments and not self.programs and not self.function_blocks


def _build_comments(comments: Mapping[str, str]) -> Mapping[str, str]:
    built: dict[str, str] = {}
    for device, text in comments.items():
        if device is None or not str(device).strip():
            continue
        built[comment_key(str(device))] = (text or "").strip()
    return MappingProxyType(built)


def _build_programs(programs: Iterable[ProgramFile]) -> tuple[ProgramFile, ...]:
    by_name: dict[str, ProgramFile] = {}
    for program in programs:
        if not program.name or not program.name.strip():
            continue
        # Same name replaces the earlier file but keeps its position
        by_name[program.name] = program
    return tuple(by_name.values())


class ProgramStore:
    """
    In-memory index of one PLC unit's exports.

    Every setter builds its collection off to the side and then swaps the whole
    snapshot, so a reader never sees two units' data mixed. There is no partial update.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = StoreSnapshot()

    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    def clear(self) -> None:
        with self._lock:
            self._snapshot = StoreSnapshot()
        logger.debug("ProgramStore cleared")

    def load(
        self,
        comments: Mapping[str, str] | None = None,
        programs: Iterable[ProgramFile] | None = None,
        function_blocks: Iterable[FunctionBlock] | None = None,
    ) -> None:
        """Replace comments, programs and function blocks together."""
        snapshot = StoreSnapshot(
            comments=_build_comments(comments or {}),
            programs=_build_programs(programs or ()),
            function_blocks=tuple(function_blocks or ()),
        )
        with self._lock:
            self._snapshot = snapshot
        logger.debug(
            "ProgramStore loaded: %d comments, %d programs, %d function blocks",
            len(snapshot.comments),
            len(snapshot.programs),
            len(snapshot.function_blocks),
        )

    def set_comments(self, comments: Mapping[str, str]) -> None:
        built = _build_comments(comments)
        with self._lock:
            s = self._snapshot
            self._snapshot = StoreSnapshot(built, s.programs, s.function_blocks)
        logger.debug("ProgramStore comments replaced: %d entries", len(built))

    def set_programs(self, programs: Iterable[ProgramFile]) -> None:
        built = _build_programs(programs)
        with self._lock:
            s = self._snapshot
            self._snapshot = StoreSnapshot(s.comments, built, s.function_blocks)
        logger.debug("ProgramStore programs replaced: %d files", len(built))

    def set_function_blocks(self, blocks: Iterable[FunctionBlock]) -> None:
        built = tuple(blocks)
        with self._lock:
            s = self._snapshot
            self._snapshot = StoreSnapshot(s.comments, s.programs, built)
        logger.debug("ProgramStore function blocks replaced: %d entries", len(built))

    def try_get_comment(self, token: str) -> str | None:
        """Comment for a device token (T0 and TS0 share an entry); None when absent."""
        return self._snapshot.try_get_comment(token)

    def try_get_function_block(self, name: str) -> FunctionBlock | None:
        return self._snapshot.try_get_function_block(name)

    @property
    def comments(self) -> Mapping[str, str]:
        return self._snapshot.comments

    @property
    def programs(self) -> tuple[ProgramFile, ...]:
        return self._snapshot.programs

    @property
    def function_blocks(self) -> tuple[FunctionBlock, ...]:
        return self._snapshot.function_blocks


# ============================================================================
# Loaders for the exported text formats
# ============================================================================


def read_export_text(path: Path) -> str:
    """Read an export file, trying the encodings engineering tools produce."""
    data = path.read_bytes()
    for encoding in _ENCODINGS:
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        if "\0" in text:
            continue
        return text
    return data.decode("utf-8", errors="replace")


def parse_comment_table(text: str) -> dict[str, str]:
    """
    Parse a device comment table into {device: comment}.

    Rows are comma- or tab-delimited (decided per row), values optionally quoted.
    A first non-blank row containing both "device" and "comment" is treated as a header.
    """
    comments: dict[str, str] = {}
    first = True
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        if first:
            first = False
            if "device" in line.lower() and "comment" in line.lower():
                continue
        delimiter = "\t" if "\t" in line else ","
        row = next(csv.reader(io.StringIO(line), delimiter=delimiter), [])
        if len(row) < 2:
            continue
        device = (row[0] or "").strip().strip('"')
        comment = (row[1] or "").strip().strip('"')
        if not device:
            continue
        comments[device] = comment
    return comments


def load_comment_file(path: str | Path) -> dict[str, str]:
    """Load a comment table from disk. A missing file yields an empty table."""
    p = Path(path)
    if not p.is_file():
        logger.info("Comment file not found: %s", p)
        return {}
    try:
        comments = parse_comment_table(read_export_text(p))
    except OSError as e:
        logger.warning("Failed to read comment file %s: %s", p, e)
        return {}
    logger.debug("Loaded %d comments from %s", len(comments), p)
    return comments


def load_program_files(paths: Iterable[str | Path]) -> list[ProgramFile]:
    """Load program listings; files that are missing or unreadable are skipped."""
    programs: list[ProgramFile] = []
    for path in paths:
        p = Path(path)
        if not p.is_file():
            logger.info("Program file not found: %s", p)
            continue
        try:
            programs.append(parse_program_text(p.name, read_export_text(p)))
        except OSError as e:
            logger.warning("Failed to read program file %s: %s", p, e)
    return programs


def load_function_block_dir(path: str | Path) -> list[FunctionBlock]:
    """
    Load function blocks from a directory of <safe_name>_Label.csv / <safe_name>_Program.csv pairs.

    A block needs at least one of the two files. Timestamps come from file modification times.
    """
    root = Path(path)
    if not root.is_dir():
        logger.info("Function block directory not found: %s", root)
        return []

    parts: dict[str, dict[str, Path]] = {}
    for f in sorted(root.iterdir()):
        if not f.is_file() or f.suffix.lower() != ".csv":
            continue
        stem = f.stem
        for kind in ("Label", "Program"):
            suffix = f"_{kind}"
            if stem.lower().endswith(suffix.lower()):
                parts.setdefault(stem[: -len(suffix)], {})[kind] = f
                break

    blocks: list[FunctionBlock] = []
    for safe_name, files in parts.items():
        try:
            label = read_export_text(files["Label"]) if "Label" in files else ""
            program = read_export_text(files["Program"]) if "Program" in files else ""
        except OSError as e:
            logger.warning("Failed to read function block %s: %s", safe_name, e)
            continue
        mtimes = [p.stat().st_mtime for p in files.values()]
        blocks.append(
            FunctionBlock(
                name=safe_name,
                safe_name=safe_name,
                label_content=label,
                program_content=program,
                created_at=datetime.fromtimestamp(min(mtimes), tz=timezone.utc),
                updated_at=datetime.fromtimestamp(max(mtimes), tz=timezone.utc),
            )
        )
    logger.debug("Loaded %d function blocks from %s", len(blocks), root)
    return blocks
