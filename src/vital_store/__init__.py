"""Per-owner time-series store for personal vital signs.

Records numeric health measurements (heart rate, blood pressure, glucose,
weight, temperature, oxygen saturation, respiratory rate) per owner and
vital type, validates them on admission, and keeps "latest" and "count"
indices consistent with the stored records.

Modules:
    vitals: Vital type catalogue and range validation
    store: The record store and owner-bound sessions
    persistence: SQLite snapshots of the store tables
    config: Configuration management using pydantic-settings
    cli: Command line access to a persisted store

Example:
    Record and read back a heart rate::

        $ vital-store --owner alice record --type heart_rate --value 72 --timestamp 1700000000
        $ vital-store --owner alice latest --type heart_rate
"""

__version__ = "0.1.0"

from .clock import FixedClock, SystemClock
from .config import LatestPointerPolicy, Settings, get_settings
from .exceptions import ErrorKind, VitalStoreError
from .models import VitalRecord
from .store import VitalSession, VitalStore
from .vitals import VitalType, check_value_validity, check_vital_type_validity

__all__ = [
    "ErrorKind",
    "FixedClock",
    "LatestPointerPolicy",
    "Settings",
    "SystemClock",
    "VitalRecord",
    "VitalSession",
    "VitalStore",
    "VitalStoreError",
    "VitalType",
    "check_value_validity",
    "check_vital_type_validity",
    "get_settings",
    "__version__",
]
