"""pyplc-ladder: index PLC ladder-program exports, answer questions about devices, read live values."""

__version__ = "0.1.0"

from .address import DeviceAddress, find_device_tokens, normalize_device, parse_device
from .analyzer import ProgramAnalyzer
from .errors import GatewayIOError, InvalidDeviceError, PyPLCLadderError
from .gateway import GatewayClient
from .normalize import normalize_text
from .parser import TabularProgramParser, parse_program_line, parse_program_text
from .reasoner import DeviceReasoner, build_program_contexts
from .search import CommentSearch
from .store import ProgramStore
from .tracer import FaultTracer
from .types import (
    BatchReadRequest,
    BatchReadResult,
    CommentHit,
    DeviceDataType,
    DeviceReadRequest,
    DeviceReadResult,
    DeviceType,
    FaultTraceReport,
    FunctionBlock,
    InferenceResult,
    ProgramContext,
    ProgramFile,
    ProgramLine,
)

__all__ = [
    "__version__",
    "DeviceAddress",
    "find_device_tokens",
    "normalize_device",
    "parse_device",
    "ProgramAnalyzer",
    "GatewayIOError",
    "InvalidDeviceError",
    "PyPLCLadderError",
    "GatewayClient",
    "normalize_text",
    "TabularProgramParser",
    "parse_program_line",
    "parse_program_text",
    "DeviceReasoner",
    "build_program_contexts",
    "CommentSearch",
    "ProgramStore",
    "FaultTracer",
    "BatchReadRequest",
    "BatchReadResult",
    "CommentHit",
    "DeviceDataType",
    "DeviceReadRequest",
    "DeviceReadResult",
    "DeviceType",
    "FaultTraceReport",
    "FunctionBlock",
    "InferenceResult",
    "ProgramContext",
    "ProgramFile",
    "ProgramLine",
]
