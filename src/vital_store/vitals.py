"""Vital sign catalogue: the closed set of vital types and their valid ranges."""

from enum import Enum
from typing import Any


class VitalType(str, Enum):
    """Numeric vital types accepted by the store."""

    HEART_RATE = "heart_rate"
    SYSTOLIC_BP = "systolic_bp"
    DIASTOLIC_BP = "diastolic_bp"
    GLUCOSE = "glucose"
    WEIGHT = "weight"
    TEMPERATURE = "temperature"
    OXYGEN_SATURATION = "oxygen_saturation"
    RESPIRATORY_RATE = "respiratory_rate"

    @property
    def code(self) -> int:
        """Integer code of the variant (declaration order)."""
        return _CODES[self]

    @property
    def unit(self) -> str:
        return VITAL_UNITS[self]

    @property
    def bounds(self) -> tuple[int, int]:
        return VITAL_RANGES[self]


_CODES: dict[VitalType, int] = {vital: i for i, vital in enumerate(VitalType)}
_BY_CODE: dict[int, VitalType] = {i: vital for vital, i in _CODES.items()}

# Inclusive bounds per type, in the unit listed in VITAL_UNITS
VITAL_RANGES: dict[VitalType, tuple[int, int]] = {
    VitalType.HEART_RATE: (30, 220),
    VitalType.SYSTOLIC_BP: (70, 250),
    VitalType.DIASTOLIC_BP: (40, 150),
    VitalType.GLUCOSE: (20, 600),
    VitalType.WEIGHT: (1_000, 500_000),
    VitalType.TEMPERATURE: (340, 430),
    VitalType.OXYGEN_SATURATION: (50, 100),
    VitalType.RESPIRATORY_RATE: (4, 60),
}

VITAL_UNITS: dict[VitalType, str] = {
    VitalType.HEART_RATE: "bpm",
    VitalType.SYSTOLIC_BP: "mmHg",
    VitalType.DIASTOLIC_BP: "mmHg",
    VitalType.GLUCOSE: "mg/dL",
    VitalType.WEIGHT: "g",
    VitalType.TEMPERATURE: "0.1 degC",
    VitalType.OXYGEN_SATURATION: "%",
    VitalType.RESPIRATORY_RATE: "breaths/min",
}


def parse_vital_type(value: Any) -> VitalType | None:
    """Coerce a member, wire string or integer code to a VitalType.

    Returns None for anything outside the closed set.
    """
    if isinstance(value, VitalType):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _BY_CODE.get(value)
    if isinstance(value, str):
        try:
            return VitalType(value.strip().lower())
        except ValueError:
            return None
    return None


def check_vital_type_validity(vital_type: Any) -> bool:
    """Return True iff vital_type names one of the known variants."""
    return parse_vital_type(vital_type) is not None


def check_value_validity(vital_type: Any, value: Any) -> bool:
    """Return True iff value lies within the inclusive range of vital_type."""
    vital = parse_vital_type(vital_type)
    if vital is None:
        return False
    # bool is an int subclass but never a measurement
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    lo, hi = VITAL_RANGES[vital]
    return lo <= value <= hi
