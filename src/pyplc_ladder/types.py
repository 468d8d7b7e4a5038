"""Core data model: device types, program lines/files, function blocks, gateway requests and results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class DeviceType(str, Enum):
    """Recognised device codes. Two-letter codes are matched before one-letter codes."""

    X = "X"
    Y = "Y"
    M = "M"
    L = "L"
    B = "B"
    F = "F"
    V = "V"
    S = "S"
    D = "D"
    W = "W"
    R = "R"
    Z = "Z"
    C = "C"
    ZR = "ZR"
    TS = "TS"
    TC = "TC"
    TN = "TN"
    CS = "CS"
    CC = "CC"
    CN = "CN"
    SM = "SM"
    SD = "SD"
    SB = "SB"
    SW = "SW"

    @property
    def is_hex(self) -> bool:
        """Address is written in hexadecimal (input/output and link devices)."""
        return self in _HEX_DEVICES

    @property
    def is_bit(self) -> bool:
        return self in _BIT_DEVICES

    @property
    def supports_double_word(self) -> bool:
        """Word registers that can hold 32-bit integers or floats across two words."""
        return self in _DOUBLE_WORD_DEVICES


_HEX_DEVICES = frozenset({DeviceType.X, DeviceType.Y, DeviceType.B, DeviceType.W, DeviceType.SB, DeviceType.SW})

_BIT_DEVICES = frozenset(
    {
        DeviceType.X,
        DeviceType.Y,
        DeviceType.M,
        DeviceType.L,
        DeviceType.B,
        DeviceType.F,
        DeviceType.V,
        DeviceType.S,
        DeviceType.TC,
        DeviceType.CS,
        DeviceType.CC,
        DeviceType.SM,
        DeviceType.SB,
    }
)

_DOUBLE_WORD_DEVICES = frozenset({DeviceType.D, DeviceType.W, DeviceType.R, DeviceType.ZR})


class DeviceDataType(str, Enum):
    """Data type of a word device inferred from the instructions that use it."""

    WORD = "word"
    DOUBLE_WORD = "double_word"
    FLOAT = "float"

    @property
    def read_length(self) -> int:
        """Number of 16-bit words one value occupies."""
        return 1 if self is DeviceDataType.WORD else 2


@dataclass(frozen=True)
class ProgramLine:
    """One line of a tab-separated program listing: raw text plus parsed columns."""

    raw: str
    columns: tuple[str, ...] = ()

    @property
    def instruction(self) -> str | None:
        """Instruction mnemonic (column 2), or None when the line has none."""
        if len(self.columns) < 3:
            return None
        value = self.columns[2].strip()
        return value or None

    @property
    def operands(self) -> tuple[str, ...]:
        return tuple(c.strip() for c in self.columns[3:] if c.strip())


@dataclass(frozen=True)
class ProgramFile:
    name: str
    lines: tuple[ProgramLine, ...] = ()


@dataclass(frozen=True)
class FunctionBlock:
    """A function block export: label table and program listing as text."""

    name: str
    safe_name: str
    label_content: str = ""
    program_content: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ProgramContext:
    """A named program whose lines are offered to the reasoner as extra context."""

    name: str
    lines: tuple[str, ...] = ()


@dataclass(frozen=True)
class CommentHit:
    """One comment search result."""

    device: str
    comment: str
    score: float
    matched_terms: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "device": self.device,
            "comment": self.comment,
            "score": round(self.score, 2),
            "matchedTerms": list(self.matched_terms),
        }


@dataclass(frozen=True)
class DeviceCandidate:
    device: str
    priority: int
    reason: str


@dataclass(frozen=True)
class InferenceResult:
    """Devices inferred from a question; empty devices means no candidate was found."""

    devices: tuple[DeviceCandidate, ...] = ()
    message: str | None = None

    @property
    def found(self) -> bool:
        return bool(self.devices)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "devices": [
                {"device": c.device, "priority": c.priority, "reason": c.reason} for c in self.devices
            ]
        }
        if self.message is not None:
            out["message"] = self.message
        return out


@dataclass(frozen=True)
class FaultCoil:
    """An L coil whose comment names a fault, with the devices that drive its rung."""

    device: str
    comment: str
    instruction: str
    program: str
    line: str
    related_devices: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "device": self.device,
            "comment": self.comment,
            "instruction": self.instruction,
            "program": self.program,
            "line": self.line,
            "relatedDevices": list(self.related_devices),
        }


@dataclass(frozen=True)
class FaultTraceReport:
    status: str
    candidates: tuple[FaultCoil, ...] = ()
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status}
        if self.candidates:
            out["candidates"] = [c.to_dict() for c in self.candidates]
        if self.message is not None:
            out["message"] = self.message
        return out


@dataclass(frozen=True)
class DeviceReadRequest:
    """Single device read. timeout is in seconds; None uses the client default."""

    spec: str
    ip: str | None = None
    port: int | None = None
    plc_host: str | None = None
    transport: str | None = None
    timeout: float | None = None
    base_url: str | None = None


@dataclass(frozen=True)
class BatchReadRequest:
    specs: tuple[str, ...]
    ip: str | None = None
    port: int | None = None
    plc_host: str | None = None
    transport: str | None = None
    timeout: float | None = None
    base_url: str | None = None


@dataclass(frozen=True)
class DeviceReadResult:
    device: str
    values: tuple[int, ...] = ()
    success: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "device": self.device,
            "values": list(self.values),
            "success": self.success,
            "error": self.error,
        }


@dataclass(frozen=True)
class BatchReadResult:
    """Per-device results in the caller's order; error is set only when the whole batch failed."""

    results: tuple[DeviceReadResult, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and all(r.success for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        return {"results": [r.to_dict() for r in self.results], "error": self.error}
