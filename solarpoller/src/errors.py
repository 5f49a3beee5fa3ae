"""Exceptions raised by the poller: decoding, device I/O, persistence and configuration."""

from __future__ import annotations


class SolarPollerError(Exception):
    """Base exception for the solar poller."""

    pass


class UnsupportedEncoding(SolarPollerError):
    """Raised when a register width cannot be decoded for the requested value kind."""

    def __init__(self, width: object, kind: str) -> None:
        self.width = width
        self.kind = kind
        label = getattr(width, "value", width)
        super().__init__(f"unsupported register type {label} for {kind}")


class DecodeError(SolarPollerError):
    """Raised when a register response does not carry enough words for its width."""

    pass


class DeviceError(SolarPollerError):
    """Raised when the Modbus device cannot be reached or answers with an error."""

    def __init__(
        self,
        message: str,
        *,
        unit_id: int | None = None,
        address: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.unit_id = unit_id
        self.address = address
        self.cause = cause
        super().__init__(message)


class ReadFailure(SolarPollerError):
    """Raised when a poll cycle aborts because a variable could not be read or decoded.

    ``variable`` is ``None`` when the device session could not be opened at all.
    """

    def __init__(
        self,
        variable: str | None,
        *,
        register: int | None = None,
        unit_id: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.variable = variable
        self.register = register
        self.unit_id = unit_id
        self.cause = cause
        if variable is None:
            message = f"connect to device: {cause}"
        else:
            message = f"read values: failed to read {variable} ({register}): {cause}"
        super().__init__(message)


class PersistFailure(SolarPollerError):
    """Raised when a reading cannot be written to the store."""

    def __init__(
        self,
        stage: str,
        *,
        sensor: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.stage = stage
        self.sensor = sensor
        self.cause = cause
        if sensor is None:
            super().__init__(f"insert {stage}: {cause}")
        else:
            super().__init__(f"insert {stage} {sensor}: {cause}")


class ConfigError(SolarPollerError):
    """Raised at startup for invalid settings, flags or variable table entries."""

    pass
