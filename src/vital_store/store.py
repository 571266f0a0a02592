"""Per-owner vital record store with derived latest and count indices."""

import threading
from bisect import bisect_left, bisect_right, insort
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from .clock import Clock, SystemClock, read_clock
from .config import LatestPointerPolicy
from .exceptions import (
    FutureTimestampError,
    InvalidTimeframeError,
    InvalidValueError,
    InvalidVitalTypeError,
    NoDataFoundError,
    NotAuthorizedError,
    VitalStoreError,
)
from .metrics import OPERATIONS_TOTAL, RECORDS_STORED, REJECTIONS_TOTAL
from .models import MAX_NOTES_LENGTH, VitalRecord
from .vitals import (
    VitalType,
    check_value_validity,
    check_vital_type_validity,
    parse_vital_type,
)

logger = structlog.get_logger(__name__)

RecordKey = tuple[str, int, VitalType]
PairKey = tuple[str, VitalType]

_MISSING = object()


def _restore_entry(table: dict, key: Any, saved: Any) -> None:
    if saved is _MISSING:
        table.pop(key, None)
    else:
        table[key] = saved


class VitalStore:
    """Owns the record, latest-pointer and count tables.

    All three tables are keyed by owner. Public access goes through
    :meth:`session`, which binds the caller identity so that no operation
    can act on another owner's data.

    Every operation holds the store lock from validation to commit, and
    table mutations run inside a transaction that rolls back on failure.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        latest_policy: LatestPointerPolicy = LatestPointerPolicy.TRACK_MAXIMUM,
    ) -> None:
        """Initialize an empty store.

        Args:
            clock: Host clock used to reject future timestamps.
            latest_policy: How the latest pointer follows record and delete.
        """
        self._clock = clock or SystemClock()
        self._policy = LatestPointerPolicy(latest_policy)
        self._records: dict[RecordKey, VitalRecord] = {}
        self._latest: dict[PairKey, int] = {}
        self._counts: dict[PairKey, int] = {}
        # Sorted timestamps per pair, used to recompute the latest pointer
        self._index: dict[PairKey, list[int]] = {}
        self._lock = threading.Lock()
        self._accepted = 0
        self._rejected = 0

    @property
    def latest_policy(self) -> LatestPointerPolicy:
        return self._policy

    def session(self, owner: str) -> "VitalSession":
        """Bind an owner identity supplied by the host environment."""
        if not isinstance(owner, str) or not owner.strip():
            raise NotAuthorizedError("Owner identity is required")
        return VitalSession(self, owner)

    # -- validation --

    @staticmethod
    def _require_vital_type(vital_type: Any) -> VitalType:
        vital = parse_vital_type(vital_type)
        if vital is None:
            raise InvalidVitalTypeError(f"Unknown vital type: {vital_type!r}")
        return vital

    @staticmethod
    def _require_value(vital: VitalType, value: Any) -> None:
        if not check_value_validity(vital, value):
            lo, hi = vital.bounds
            raise InvalidValueError(
                f"{vital.value} must be an integer between {lo} and {hi} {vital.unit}"
            )

    @staticmethod
    def _require_notes(notes: str | None) -> None:
        if notes is None:
            return
        if not isinstance(notes, str):
            raise InvalidValueError("Notes must be text")
        if len(notes) > MAX_NOTES_LENGTH:
            raise InvalidValueError(
                f"Notes exceed {MAX_NOTES_LENGTH} characters ({len(notes)})"
            )

    @staticmethod
    def _is_timestamp(timestamp: Any) -> bool:
        return isinstance(timestamp, int) and not isinstance(timestamp, bool)

    @staticmethod
    def _require_timestamp(timestamp: Any) -> int:
        if not VitalStore._is_timestamp(timestamp) or timestamp <= 0:
            raise InvalidTimeframeError(
                f"Timestamp must be a positive integer, got {timestamp!r}"
            )
        return timestamp

    # -- bookkeeping --

    @contextmanager
    def _operation(self, name: str, owner: str) -> Iterator[None]:
        """Count and log the outcome of one public operation."""
        try:
            yield
        except VitalStoreError as e:
            self._rejected += 1
            OPERATIONS_TOTAL.labels(operation=name, status="rejected").inc()
            REJECTIONS_TOTAL.labels(operation=name, error_kind=e.kind.value).inc()
            logger.warning(
                "vital_operation_rejected",
                operation=name,
                owner=owner,
                error_kind=e.kind.value,
                error=str(e),
            )
            raise
        self._accepted += 1
        OPERATIONS_TOTAL.labels(operation=name, status="ok").inc()

    @contextmanager
    def _transaction(self, owner: str, vital: VitalType, timestamp: int) -> Iterator[None]:
        """Snapshot every entry an operation may touch and restore it on failure."""
        record_key = (owner, timestamp, vital)
        pair = (owner, vital)
        saved_record = self._records.get(record_key, _MISSING)
        saved_latest = self._latest.get(pair, _MISSING)
        saved_count = self._counts.get(pair, _MISSING)
        index = self._index.get(pair)
        saved_index = list(index) if index is not None else _MISSING
        try:
            yield
        except BaseException:
            _restore_entry(self._records, record_key, saved_record)
            _restore_entry(self._latest, pair, saved_latest)
            _restore_entry(self._counts, pair, saved_count)
            _restore_entry(self._index, pair, saved_index)
            logger.error(
                "vital_transaction_rolled_back",
                owner=owner,
                vital_type=vital.value,
                timestamp=timestamp,
            )
            raise
        RECORDS_STORED.set(len(self._records))

    def _advance_latest(self, pair: PairKey, timestamp: int) -> None:
        if self._policy is LatestPointerPolicy.LEGACY:
            self._latest[pair] = timestamp
            return
        current = self._latest.get(pair)
        if current is None or timestamp >= current:
            self._latest[pair] = timestamp

    def _retreat_latest(self, pair: PairKey, deleted: int) -> None:
        if self._latest.get(pair) != deleted:
            return
        index = self._index.get(pair)
        if self._policy is LatestPointerPolicy.LEGACY or not index:
            del self._latest[pair]
        else:
            self._latest[pair] = index[-1]

    # -- operations (owner-bound through VitalSession) --

    def _record(
        self,
        owner: str,
        vital_type: Any,
        value: Any,
        timestamp: Any,
        notes: str | None,
    ) -> VitalRecord:
        with self._lock, self._operation("record", owner):
            vital = self._require_vital_type(vital_type)
            self._require_value(vital, value)
            self._require_notes(notes)
            timestamp = self._require_timestamp(timestamp)
            now = read_clock(self._clock)
            if timestamp > now:
                raise FutureTimestampError(f"Timestamp {timestamp} is after current time {now}")

            record = VitalRecord(
                owner=owner, timestamp=timestamp, vital_type=vital, value=value, notes=notes
            )
            pair = (owner, vital)
            with self._transaction(owner, vital, timestamp):
                is_new = record.key not in self._records
                self._records[record.key] = record
                if is_new:
                    insort(self._index.setdefault(pair, []), timestamp)
                    self._counts[pair] = self._counts.get(pair, 0) + 1
                self._advance_latest(pair, timestamp)

            logger.info(
                "vital_recorded",
                owner=owner,
                vital_type=vital.value,
                timestamp=timestamp,
                overwrote=not is_new,
            )
            return record

    def _update(
        self,
        owner: str,
        timestamp: Any,
        vital_type: Any,
        value: Any,
        notes: str | None,
    ) -> VitalRecord:
        with self._lock, self._operation("update", owner):
            vital = self._require_vital_type(vital_type)
            self._require_value(vital, value)
            self._require_notes(notes)
            key = (owner, timestamp, vital)
            existing = self._records.get(key) if self._is_timestamp(timestamp) else None
            if existing is None:
                raise NoDataFoundError(f"No {vital.value} record at {timestamp}")

            record = existing.model_copy(update={"value": value, "notes": notes})
            with self._transaction(owner, vital, timestamp):
                self._records[key] = record

            logger.info("vital_updated", owner=owner, vital_type=vital.value, timestamp=timestamp)
            return record

    def _delete(self, owner: str, timestamp: Any, vital_type: Any) -> None:
        with self._lock, self._operation("delete", owner):
            vital = parse_vital_type(vital_type)
            key = (owner, timestamp, vital)
            if vital is None or not self._is_timestamp(timestamp) or key not in self._records:
                raise NoDataFoundError(f"No {vital_type} record at {timestamp}")

            pair = (owner, vital)
            with self._transaction(owner, vital, timestamp):
                del self._records[key]
                index = self._index[pair]
                del index[bisect_left(index, timestamp)]
                remaining = self._counts.get(pair, 0) - 1
                if remaining > 0:
                    self._counts[pair] = remaining
                else:
                    self._counts.pop(pair, None)
                    self._index.pop(pair, None)
                self._retreat_latest(pair, timestamp)

            logger.info(
                "vital_deleted",
                owner=owner,
                vital_type=vital.value,
                timestamp=timestamp,
                latest=self._latest.get(pair),
            )

    def _share_with(
        self, owner: str, recipient: str, vital_type: Any, timestamp: Any
    ) -> VitalRecord:
        with self._lock, self._operation("share_with", owner):
            vital = parse_vital_type(vital_type)
            record = None
            if vital is not None and self._is_timestamp(timestamp):
                record = self._records.get((owner, timestamp, vital))
            if record is None:
                raise NoDataFoundError(f"No {vital_type} record at {timestamp}")
            # No grant is consulted; the recipient is only recorded in the log
            logger.warning(
                "vital_share_unenforced",
                owner=owner,
                recipient=recipient,
                vital_type=record.vital_type.value,
                timestamp=timestamp,
            )
            return record

    def _get_record(self, owner: str, timestamp: Any, vital_type: Any) -> VitalRecord | None:
        vital = parse_vital_type(vital_type)
        if vital is None or not self._is_timestamp(timestamp):
            return None
        with self._lock:
            return self._records.get((owner, timestamp, vital))

    def _get_latest(self, owner: str, vital_type: Any) -> VitalRecord | None:
        vital = parse_vital_type(vital_type)
        if vital is None:
            return None
        with self._lock:
            latest = self._latest.get((owner, vital))
            if latest is None:
                return None
            return self._records.get((owner, latest, vital))

    def _get_count(self, owner: str, vital_type: Any) -> int:
        vital = parse_vital_type(vital_type)
        if vital is None:
            return 0
        with self._lock:
            return self._counts.get((owner, vital), 0)

    def _history(
        self,
        owner: str,
        vital_type: Any,
        start: int | None,
        end: int | None,
    ) -> list[VitalRecord]:
        with self._lock, self._operation("history", owner):
            for bound in (start, end):
                if bound is not None and not self._is_timestamp(bound):
                    raise InvalidTimeframeError(f"Window bound must be an integer, got {bound!r}")
            if start is not None and end is not None and start > end:
                raise InvalidTimeframeError(f"Window start {start} is after end {end}")
            vital = parse_vital_type(vital_type)
            if vital is None:
                return []
            index = self._index.get((owner, vital), [])
            lo = bisect_left(index, start) if start is not None else 0
            hi = bisect_right(index, end) if end is not None else len(index)
            return [self._records[(owner, ts, vital)] for ts in index[lo:hi]]

    # -- snapshot support --

    def export_tables(
        self,
    ) -> tuple[list[VitalRecord], dict[PairKey, int], dict[PairKey, int]]:
        """Return copies of the record, latest-pointer and count tables."""
        with self._lock:
            return list(self._records.values()), dict(self._latest), dict(self._counts)

    def load_tables(
        self,
        records: list[VitalRecord],
        latest: dict[PairKey, int],
        counts: dict[PairKey, int],
    ) -> int:
        """Replace all tables with persisted contents.

        Records outside their vital type's range or with overlong notes are
        dropped. Counts are rebuilt from the remaining records. Under
        TRACK_MAXIMUM the latest pointer is recomputed as the largest stored
        timestamp; under LEGACY a stored pointer is kept only when it
        references a loaded record and is dropped otherwise. Repairs are
        logged.

        Returns:
            Number of records loaded.
        """
        new_records: dict[RecordKey, VitalRecord] = {}
        dropped_records = 0
        for record in records:
            if not check_value_validity(record.vital_type, record.value) or (
                record.notes is not None and len(record.notes) > MAX_NOTES_LENGTH
            ):
                dropped_records += 1
                continue
            new_records[record.key] = record
        new_index: dict[PairKey, list[int]] = {}
        for owner, timestamp, vital in sorted(new_records, key=lambda k: k[1]):
            new_index.setdefault((owner, vital), []).append(timestamp)
        new_counts = {pair: len(stamps) for pair, stamps in new_index.items()}

        new_latest: dict[PairKey, int] = {}
        for pair, stamps in new_index.items():
            stored = latest.get(pair)
            if self._policy is LatestPointerPolicy.LEGACY:
                if stored is not None and (pair[0], stored, pair[1]) in new_records:
                    new_latest[pair] = stored
            else:
                new_latest[pair] = stamps[-1]

        repaired_counts = sum(1 for pair, n in new_counts.items() if counts.get(pair) != n)
        repaired_counts += sum(1 for pair in counts if pair not in new_counts)
        repaired_latest = sum(
            1 for pair in set(latest) | set(new_latest) if latest.get(pair) != new_latest.get(pair)
        )
        if dropped_records or repaired_counts or repaired_latest:
            logger.warning(
                "vital_tables_reconciled",
                dropped_records=dropped_records,
                repaired_counts=repaired_counts,
                repaired_latest=repaired_latest,
            )

        with self._lock:
            self._records = new_records
            self._index = new_index
            self._counts = new_counts
            self._latest = new_latest
            RECORDS_STORED.set(len(self._records))
        return len(new_records)

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics.

        Returns:
            Dict with store metrics.
        """
        with self._lock:
            records = len(self._records)
            owners = len({owner for owner, _ in self._counts})
            series = len(self._counts)
            accepted = self._accepted
            rejected = self._rejected

        return {
            "owners": owners,
            "series": series,
            "records": records,
            "accepted": accepted,
            "rejected": rejected,
            "latest_policy": self._policy.value,
        }


class VitalSession:
    """Operations on a single owner's vitals.

    Obtained from :meth:`VitalStore.session`; the owner is fixed for the
    lifetime of the session.
    """

    def __init__(self, store: VitalStore, owner: str) -> None:
        self._store = store
        self._owner = owner

    @property
    def owner(self) -> str:
        return self._owner

    def record(
        self,
        vital_type: VitalType | str | int,
        value: int,
        timestamp: int,
        notes: str | None = None,
    ) -> VitalRecord:
        """Store a new measurement.

        Raises:
            InvalidVitalTypeError: Unknown vital type.
            InvalidValueError: Value out of range or notes too long.
            InvalidTimeframeError: Timestamp is not a positive integer.
            ClockUnavailableError: Host clock could not be read.
            FutureTimestampError: Timestamp after the current time.
        """
        return self._store._record(self._owner, vital_type, value, timestamp, notes)

    def update(
        self,
        timestamp: int,
        vital_type: VitalType | str | int,
        value: int,
        notes: str | None = None,
    ) -> VitalRecord:
        """Replace value and notes of an existing record.

        Raises:
            InvalidVitalTypeError: Unknown vital type.
            InvalidValueError: Value out of range or notes too long.
            NoDataFoundError: No record at the key.
        """
        return self._store._update(self._owner, timestamp, vital_type, value, notes)

    def delete(self, timestamp: int, vital_type: VitalType | str | int) -> None:
        """Remove a record.

        Raises:
            NoDataFoundError: No record at the key.
        """
        self._store._delete(self._owner, timestamp, vital_type)

    def share_with(
        self, recipient: str, vital_type: VitalType | str | int, timestamp: int
    ) -> VitalRecord:
        """Return a record for handing to recipient. Access is not enforced."""
        return self._store._share_with(self._owner, recipient, vital_type, timestamp)

    def get_record(self, timestamp: int, vital_type: VitalType | str | int) -> VitalRecord | None:
        return self._store._get_record(self._owner, timestamp, vital_type)

    def get_latest(self, vital_type: VitalType | str | int) -> VitalRecord | None:
        return self._store._get_latest(self._owner, vital_type)

    def get_count(self, vital_type: VitalType | str | int) -> int:
        return self._store._get_count(self._owner, vital_type)

    def history(
        self,
        vital_type: VitalType | str | int,
        start: int | None = None,
        end: int | None = None,
    ) -> list[VitalRecord]:
        """Records of one type in ascending timestamp order within [start, end]."""
        return self._store._history(self._owner, vital_type, start, end)

    @staticmethod
    def check_vital_type_validity(vital_type: Any) -> bool:
        return check_vital_type_validity(vital_type)

    @staticmethod
    def check_value_validity(vital_type: Any, value: Any) -> bool:
        return check_value_validity(vital_type, value)
