"""Parse and render device specs (e.g. D100, X1A, ZR20:2, T0 -> TS0); scan text for device tokens."""

import re
from dataclasses import dataclass, replace

from .errors import InvalidDeviceError
from .types import DeviceType

# Leading letters of a spec; the rest is the address, validated per device base
_CODE_PATTERN = re.compile(r"^([A-Za-z]+)(.*)$")

# Free-text candidate: 1-2 letters, a digit, then hex digits. Either not glued to other
# ASCII text, or an upper-case code right after a lower-case word (checkD100)
_TOKEN_PATTERN = re.compile(
    r"((?:(?<![A-Za-z0-9_])[A-Za-z]{1,2}|(?<=[a-z])[A-Z]{1,2})[0-9][0-9A-Fa-f]*)(?![A-Za-z0-9_])"
)

# Codes that are rewritten before lookup: a bare timer means its current value
_ALIASES: dict[str, DeviceType] = {"T": DeviceType.TS}

_TWO_LETTER = frozenset(t.value for t in DeviceType if len(t.value) == 2)
_ONE_LETTER = frozenset(t.value for t in DeviceType if len(t.value) == 1)


def _resolve_code(raw: str, code: str) -> tuple[DeviceType, int]:
    """Return (device type, number of characters consumed) for the leading code."""
    head = code.upper()
    if head[:2] in _TWO_LETTER:
        return DeviceType(head[:2]), 2
    first = head[:1]
    if first in _ALIASES:
        return _ALIASES[first], 1
    if first in _ONE_LETTER:
        return DeviceType(first), 1
    raise InvalidDeviceError(raw, f"Unknown device code: {raw!r}")


@dataclass(frozen=True)
class DeviceAddress:
    """Device type, numeric address and read length (in words or points)."""

    device_type: DeviceType
    address: int
    length: int = 1

    def __post_init__(self) -> None:
        if self.address < 0:
            raise ValueError(f"address must be >= 0, got {self.address}")
        if self.length < 1:
            raise ValueError(f"length must be >= 1, got {self.length}")

    @classmethod
    def parse(cls, spec: str) -> "DeviceAddress":
        """
        Parse a device spec string.

        - Two-letter codes (ZR, TS, SM, ...) win over one-letter codes.
        - T alone becomes TS.
        - X/Y/B/W/SB/SW addresses are hexadecimal, all others decimal.
        - Optional ":<length>" suffix, positive integer, default 1.

        Raises InvalidDeviceError for malformed specs.
        """
        s = (spec or "").strip()
        if not s:
            raise InvalidDeviceError(spec, "Device spec cannot be empty")

        length = 1
        core = s
        if ":" in s:
            core, _, length_str = s.partition(":")
            length_str = length_str.strip()
            if not length_str.isdigit() or int(length_str) < 1:
                raise InvalidDeviceError(spec, f"Invalid length in {spec!r}")
            length = int(length_str)
        core = core.strip()

        m = _CODE_PATTERN.match(core)
        if not m:
            raise InvalidDeviceError(spec, f"Malformed device: {spec!r}")
        device_type, consumed = _resolve_code(spec, m.group(1))
        number = core[consumed:]
        if not number:
            raise InvalidDeviceError(spec, f"Missing address in {spec!r}")

        base = 16 if device_type.is_hex else 10
        allowed = "0123456789abcdefABCDEF" if base == 16 else "0123456789"
        if any(ch not in allowed for ch in number):
            kind = "hexadecimal" if base == 16 else "decimal"
            raise InvalidDeviceError(spec, f"Address {number!r} is not valid {kind} for {device_type.value}")
        return cls(device_type=device_type, address=int(number, base), length=length)

    @property
    def display(self) -> str:
        """Device code plus address in the base used for parsing (e.g. X1A, D100, TS0)."""
        if self.device_type.is_hex:
            return f"{self.device_type.value}{self.address:X}"
        return f"{self.device_type.value}{self.address}"

    def to_spec(self) -> str:
        """Canonical spec for the gateway: display form plus ':length' when length != 1."""
        return f"{self.display}:{self.length}" if self.length != 1 else self.display

    @property
    def address_text(self) -> str:
        """Address part of the display form, as sent in gateway URLs."""
        return self.display[len(self.device_type.value):]

    def with_length(self, length: int) -> "DeviceAddress":
        return replace(self, length=length)

    def __str__(self) -> str:
        return self.to_spec()


def parse_device(spec: str) -> DeviceAddress:
    """Module-level alias for DeviceAddress.parse."""
    return DeviceAddress.parse(spec)


def device_token(device_type: str | DeviceType, address: int) -> str:
    """Display token for a (device type, address) pair, applying the same aliases as parsing."""
    code = device_type.value if isinstance(device_type, DeviceType) else str(device_type).strip()
    resolved, consumed = _resolve_code(code, code)
    if consumed != len(code):
        raise InvalidDeviceError(code, f"Unknown device code: {code!r}")
    return DeviceAddress(resolved, address).display


def normalize_device(token: str) -> str | None:
    """Display form of a single device token, or None when it is not a device (no length allowed)."""
    if not token or ":" in token:
        return None
    try:
        return DeviceAddress.parse(token).display
    except (InvalidDeviceError, ValueError):
        return None


def find_device_tokens(text: str) -> list[str]:
    """
    Scan text left to right for device tokens and return their display forms.

    Duplicates are kept in order of appearance; callers dedupe as needed.
    Candidates that do not parse (K10, H0FF, D1F) are skipped.
    """
    found: list[str] = []
    for m in _TOKEN_PATTERN.finditer(text or ""):
        display = normalize_device(m.group(1))
        if display is not None:
            found.append(display)
    return found
