"""Error taxonomy for vital store operations."""

from enum import Enum


class ErrorKind(str, Enum):
    """Discrete error kinds surfaced to callers."""

    NOT_AUTHORIZED = "not_authorized"
    INVALID_VITAL_TYPE = "invalid_vital_type"
    INVALID_VALUE = "invalid_value"
    NO_DATA_FOUND = "no_data_found"
    FUTURE_TIMESTAMP = "future_timestamp"
    INVALID_TIMEFRAME = "invalid_timeframe"
    CLOCK_UNAVAILABLE = "clock_unavailable"


class VitalStoreError(Exception):
    """Base exception for all vital store errors."""

    kind: ErrorKind

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)


class NotAuthorizedError(VitalStoreError):
    """Caller may not act on the requested data. Reserved."""

    kind = ErrorKind.NOT_AUTHORIZED


class InvalidVitalTypeError(VitalStoreError):
    """Vital type is not one of the known variants."""

    kind = ErrorKind.INVALID_VITAL_TYPE


class InvalidValueError(VitalStoreError):
    """Value outside the vital type's range, or notes too long."""

    kind = ErrorKind.INVALID_VALUE


class NoDataFoundError(VitalStoreError):
    """No record exists at the requested key."""

    kind = ErrorKind.NO_DATA_FOUND


class FutureTimestampError(VitalStoreError):
    """Measurement timestamp is after the current host time."""

    kind = ErrorKind.FUTURE_TIMESTAMP


class InvalidTimeframeError(VitalStoreError):
    """Timestamp or time window is malformed."""

    kind = ErrorKind.INVALID_TIMEFRAME


class ClockUnavailableError(VitalStoreError):
    """Host clock could not be read.

    Raised instead of proceeding with a stale or default time.
    """

    kind = ErrorKind.CLOCK_UNAVAILABLE
