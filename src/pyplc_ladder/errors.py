"""Clear exceptions for pyplc-ladder: malformed device specs and gateway I/O errors."""


class PyPLCLadderError(Exception):
    """Base exception for pyplc-ladder."""

    pass


class InvalidDeviceError(PyPLCLadderError):
    """Raised when a device spec string is malformed (unknown code, bad numeral or length)."""

    def __init__(self, spec: str, message: str | None = None) -> None:
        self.spec = spec
        self._msg = message or f"Invalid device: {spec!r}"
        super().__init__(self._msg)


class GatewayIOError(PyPLCLadderError):
    """Raised inside the gateway client when a request fails; converted to a failed result."""

    def __init__(
        self,
        message: str,
        *,
        device: str | None = None,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.device = device
        self.status_code = status_code
        self.cause = cause
        super().__init__(message)
