"""FaultTracer: find OUT coils on L devices whose comment names a fault, and the devices driving them."""

import logging
from typing import Iterable

from .address import DeviceAddress, find_device_tokens, normalize_device
from .analyzer import clean_operand, instruction_at, line_devices
from .normalize import normalize_text
from .store import ProgramStore, StoreSnapshot
from .types import DeviceType, FaultCoil, FaultTraceReport, ProgramFile

logger = logging.getLogger(__name__)

DEFAULT_FAULT_KEYWORDS: tuple[str, ...] = ("異常", "エラー", "ERR", "故障", "ALARM", "FAULT")

NOT_FOUND_MESSAGE = "No L coils with a fault comment were found"

# How far back a rung is followed when its start is not found
MAX_RUNG_LINES = 64

_OUTPUTS = frozenset({"OUT", "SET", "RST", "PLS", "PLF", "MC", "MCR", "END", "FEND", "RET"})


def _is_rung_start(mnemonic: str | None) -> bool:
    return bool(mnemonic) and mnemonic.upper().startswith("LD")


def _column_tokens(columns: Iterable[str]) -> list[str]:
    tokens: list[str] = []
    for column in columns:
        tokens.extend(find_device_tokens(clean_operand(column)))
    return tokens


class FaultTracer:
    """Traces fault-flagged output coils back to their rung conditions."""

    def __init__(self, store: ProgramStore, keywords: Iterable[str] = DEFAULT_FAULT_KEYWORDS) -> None:
        self._store = store
        self._keywords = tuple(k for k in (normalize_text(k) for k in keywords) if k)

    def is_fault_comment(self, comment: str | None) -> bool:
        text = normalize_text(comment)
        return bool(text) and any(k in text for k in self._keywords)

    def trace_error_coils(self) -> FaultTraceReport:
        snapshot = self._store.snapshot()
        candidates: list[FaultCoil] = []
        for program in snapshot.programs:
            for index in range(len(program.lines)):
                candidates.extend(self._trace_line(snapshot, program, index))
        if not candidates:
            return FaultTraceReport(status="not_found", message=NOT_FOUND_MESSAGE)
        logger.debug("Fault trace: %d candidate coils", len(candidates))
        return FaultTraceReport(status="success", candidates=tuple(candidates))

    def _trace_line(self, snapshot: StoreSnapshot, program: ProgramFile, index: int) -> list[FaultCoil]:
        """
        Coils set by OUT on this line. The OUT may be the line's instruction column
        (one instruction per line, operands after the coil count as contributors)
        or appear inline after the rung's conditions.
        """
        line = program.lines[index]
        columns = line.columns
        found: list[FaultCoil] = []
        for pos in range(1, len(columns)):
            if columns[pos].strip().upper() != "OUT":
                continue
            target = next((c.strip() for c in columns[pos + 1 :] if c.strip()), "")
            coil = normalize_device(target)
            if coil is None or DeviceAddress.parse(coil).device_type is not DeviceType.L:
                continue
            comment = snapshot.try_get_comment(coil)
            if not self.is_fault_comment(comment):
                continue

            before = columns[1:pos]
            related = _column_tokens(before)
            starts_inline = any(_is_rung_start(c.strip()) for c in before)
            if not starts_inline:
                related = self._rung_conditions(program, index) + related
            if pos == 2:
                # OUT in the instruction column: the rest of the line is its operand list
                after = columns[pos + 1 :]
                skip = next(i for i, c in enumerate(after) if c.strip())
                related += _column_tokens(after[skip + 1 :])

            found.append(
                FaultCoil(
                    device=coil,
                    comment=comment or "",
                    instruction="OUT",
                    program=program.name,
                    line=line.raw.strip(),
                    related_devices=tuple(dict.fromkeys(d for d in related if d != coil)),
                )
            )
        return found

    def _rung_conditions(self, program: ProgramFile, index: int) -> list[str]:
        """Devices on the lines above index back to the rung start (LD...), skipping other outputs."""
        collected: list[tuple[str, ...]] = []
        lines = program.lines
        i = index - 1
        while i >= 0 and index - i <= MAX_RUNG_LINES:
            mnemonic = instruction_at(lines, i)
            if mnemonic in ("END", "FEND"):
                break
            if mnemonic not in _OUTPUTS:
                collected.append(line_devices(lines[i]))
            if _is_rung_start(mnemonic) and lines[i].instruction:
                break
            i -= 1
        tokens: list[str] = []
        for devices in reversed(collected):
            tokens.extend(devices)
        return tokens
