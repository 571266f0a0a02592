"""Record models for stored vital measurements."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .vitals import VitalType, parse_vital_type

MAX_NOTES_LENGTH = 256


class VitalRecord(BaseModel):
    """A single stored measurement.

    Identified by (owner, timestamp, vital_type). Instances are immutable;
    an update produces a new record at the same key.
    """

    model_config = ConfigDict(frozen=True)

    owner: str = Field(min_length=1, description="Opaque owner identity")
    timestamp: int = Field(gt=0, description="Measurement time, epoch seconds")
    vital_type: VitalType = Field(description="Kind of vital sign")
    value: int = Field(ge=0, description="Measurement in the type's unit")
    notes: str | None = Field(
        default=None,
        max_length=MAX_NOTES_LENGTH,
        description="Free-text annotation",
    )

    @field_validator("vital_type", mode="before")
    @classmethod
    def coerce_vital_type(cls, v: Any) -> Any:
        parsed = parse_vital_type(v)
        return parsed if parsed is not None else v

    @property
    def key(self) -> tuple[str, int, VitalType]:
        return (self.owner, self.timestamp, self.vital_type)

    def to_dict(self) -> dict[str, Any]:
        """Convert record to a JSON-friendly dictionary."""
        return {
            "owner": self.owner,
            "timestamp": self.timestamp,
            "vital_type": self.vital_type.value,
            "value": self.value,
            "unit": self.vital_type.unit,
            "notes": self.notes,
        }
