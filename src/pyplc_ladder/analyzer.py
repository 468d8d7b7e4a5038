"""ProgramAnalyzer: context windows, related devices, comments and data-type inference over a ProgramStore."""

import logging
import re
from functools import lru_cache

from .address import DeviceAddress, device_token, find_device_tokens
from .store import ProgramStore
from .types import DeviceDataType, DeviceType, ProgramFile, ProgramLine

logger = logging.getLogger(__name__)

# Digit-specified bit groups (K4M0) and index modifiers (D0Z1) hide the device from the scanner
_DIGIT_GROUP = re.compile(r"^K\d+(?=[A-Za-z])", re.IGNORECASE)
_INDEX_SUFFIX = re.compile(r"(?<=[0-9A-Fa-f])(Z\d+)$", re.IGNORECASE)

# 16-bit instructions that happen to start with D
_NOT_DOUBLE = frozenset({"DEC", "DECP", "DECO", "DECOP", "DIS", "DISP"})
# Operand-less instructions that happen to start with E
_NOT_FLOAT = frozenset({"END", "EI", "EGP", "EGF"})


def clean_operand(column: str) -> str:
    col = _DIGIT_GROUP.sub("", column.strip())
    return _INDEX_SUFFIX.sub(r" \1", col)


@lru_cache(maxsize=65536)
def line_devices(line: ProgramLine) -> tuple[str, ...]:
    """Device tokens on one line (the line number column is ignored), deduplicated in order."""
    seen: dict[str, None] = {}
    for column in line.columns[1:]:
        for token in find_device_tokens(clean_operand(column)):
            seen.setdefault(token, None)
    return tuple(seen)


def instruction_at(lines: tuple[ProgramLine, ...], index: int) -> str | None:
    """
    Mnemonic governing lines[index].

    Listings put extra operands of one instruction on continuation lines with an
    empty line-number and instruction column; those inherit the instruction above.
    """
    i = index
    while i >= 0:
        line = lines[i]
        mnemonic = line.instruction
        if mnemonic:
            return mnemonic.upper()
        step = line.columns[0].strip() if line.columns else ""
        if step:
            return None
        i -= 1
    return None


def classify_mnemonic(mnemonic: str | None) -> DeviceDataType | None:
    """DOUBLE_WORD for D-class mnemonics, FLOAT for E-class, None for anything else."""
    if not mnemonic:
        return None
    m = mnemonic.strip().upper()
    if len(m) >= 2 and m.startswith("D") and m not in _NOT_DOUBLE:
        return DeviceDataType.DOUBLE_WORD
    if m.endswith(".E") or (len(m) >= 2 and m.startswith("E") and m not in _NOT_FLOAT):
        return DeviceDataType.FLOAT
    return None


class ProgramAnalyzer:
    """Read-only queries over the programs and comments of a ProgramStore."""

    def __init__(self, store: ProgramStore) -> None:
        self._store = store

    def _hits(self, program: ProgramFile, token: str) -> list[int]:
        return [i for i, line in enumerate(program.lines) if token in line_devices(line)]

    def get_program_blocks(self, device_type: str | DeviceType, address: int, context_lines: int = 30) -> list[str]:
        """
        Lines around every occurrence of the device, one block per program file.

        Windows of context_lines before and after each hit are clamped to the file
        and merged when they touch; gaps between windows are marked with "...".
        """
        token = device_token(device_type, address)
        context_lines = max(0, context_lines)
        blocks: list[str] = []
        for program in self._store.snapshot().programs:
            hits = self._hits(program, token)
            if not hits:
                continue
            last = len(program.lines) - 1
            windows: list[list[int]] = []
            for i in hits:
                start, end = max(0, i - context_lines), min(last, i + context_lines)
                if windows and start <= windows[-1][1] + 1:
                    windows[-1][1] = max(windows[-1][1], end)
                else:
                    windows.append([start, end])
            out = [f"[{program.name}]"]
            for n, (start, end) in enumerate(windows):
                if n:
                    out.append("...")
                out.extend(program.lines[j].raw.rstrip("\r\n") for j in range(start, end + 1))
            blocks.append("\n".join(out))
        logger.debug("Program blocks for %s: %d", token, len(blocks))
        return blocks

    def get_related_devices(self, device_type: str | DeviceType, address: int) -> list[str]:
        """Other devices appearing on the same lines (rungs) as the target, sorted."""
        token = device_token(device_type, address)
        related: set[str] = set()
        for program in self._store.snapshot().programs:
            for line in program.lines:
                devices = line_devices(line)
                if token in devices:
                    related.update(d for d in devices if d != token)
        return sorted(related)

    def get_comment(self, device_type: str | DeviceType, address: int) -> str:
        """Comment text for the device, or "" when it has none."""
        return self._store.try_get_comment(device_token(device_type, address)) or ""

    def infer_device_data_type(self, device_type: str | DeviceType, address: int) -> DeviceDataType:
        """WORD unless an instruction using the device is double-word (wins) or float class."""
        token = device_token(device_type, address)
        seen_float = False
        for program in self._store.snapshot().programs:
            for i in self._hits(program, token):
                kind = classify_mnemonic(instruction_at(program.lines, i))
                if kind is DeviceDataType.DOUBLE_WORD:
                    return kind
                if kind is DeviceDataType.FLOAT:
                    seen_float = True
        return DeviceDataType.FLOAT if seen_float else DeviceDataType.WORD

    def resolve_read_address(self, address: DeviceAddress) -> DeviceAddress:
        """Widen a single-word read to two words when the program treats the device as 32-bit."""
        if address.length > 1 or not address.device_type.supports_double_word:
            return address
        length = self.infer_device_data_type(address.device_type, address.address).read_length
        return address.with_length(length) if length != address.length else address
