"""Tests for the vital store and owner sessions."""

import threading

import pytest

from vital_store.clock import CallableClock
from vital_store.exceptions import (
    ClockUnavailableError,
    ErrorKind,
    FutureTimestampError,
    InvalidTimeframeError,
    InvalidValueError,
    InvalidVitalTypeError,
    NoDataFoundError,
    NotAuthorizedError,
)
from vital_store.store import VitalStore
from vital_store.vitals import VitalType

NOW = 1_700_000_000

HR = VitalType.HEART_RATE
T1 = NOW - 600
T2 = NOW - 60


class TestRecord:
    """Tests for admission-time validation and storage."""

    def test_record_then_get_round_trip(self, alice):
        """A recorded measurement is returned unchanged."""
        alice.record(HR, 75, T1, notes="after stairs")

        record = alice.get_record(T1, HR)

        assert record is not None
        assert record.value == 75
        assert record.notes == "after stairs"
        assert record.owner == "alice"
        assert record.vital_type is HR

    def test_record_accepts_wire_name(self, alice):
        """Vital type may be given as its wire string."""
        alice.record("glucose", 110, T1)

        assert alice.get_count(VitalType.GLUCOSE) == 1

    def test_invalid_type_rejected(self, alice):
        with pytest.raises(InvalidVitalTypeError) as exc_info:
            alice.record("pulse", 75, T1)

        assert exc_info.value.kind is ErrorKind.INVALID_VITAL_TYPE

    def test_invalid_value_rejected(self, alice):
        with pytest.raises(InvalidValueError):
            alice.record(HR, 221, T1)

        assert alice.get_count(HR) == 0
        assert alice.get_record(T1, HR) is None

    def test_type_checked_before_value(self, alice):
        """First failing precondition wins."""
        with pytest.raises(InvalidVitalTypeError):
            alice.record("pulse", -5, NOW + 10)

    def test_value_checked_before_timestamp(self, alice):
        with pytest.raises(InvalidValueError):
            alice.record(HR, 10, NOW + 10)

    def test_future_timestamp_rejected(self, alice):
        """A timestamp one second past the clock is rejected."""
        with pytest.raises(FutureTimestampError):
            alice.record(HR, 75, NOW + 1)

        assert alice.get_latest(HR) is None

    def test_current_time_accepted(self, alice):
        alice.record(HR, 75, NOW)

        assert alice.get_latest(HR).timestamp == NOW

    def test_notes_length_limit(self, alice):
        """Notes are limited to 256 characters, counted as code points."""
        alice.record(HR, 75, T1, notes="❤" * 256)

        with pytest.raises(InvalidValueError, match="256"):
            alice.record(HR, 75, T2, notes="x" * 257)

    @pytest.mark.parametrize("timestamp", [0, -1, True, "1700000000"])
    def test_malformed_timestamp_rejected(self, alice, timestamp):
        """Zero is never a legitimate timestamp."""
        with pytest.raises(InvalidTimeframeError):
            alice.record(HR, 75, timestamp)

    def test_clock_failure_aborts(self):
        """Record fails rather than proceeding without a time."""
        store = VitalStore(clock=CallableClock(lambda: None))
        session = store.session("alice")

        with pytest.raises(ClockUnavailableError):
            session.record(HR, 75, T1)

        assert session.get_count(HR) == 0

    def test_clock_exception_wrapped(self):
        def broken() -> int:
            raise OSError("clock device missing")

        session = VitalStore(clock=CallableClock(broken)).session("alice")

        with pytest.raises(ClockUnavailableError, match="clock device missing"):
            session.record(HR, 75, T1)


class TestLatestAndCount:
    """Tests for the derived latest pointer and count indices."""

    def test_two_records(self, alice):
        """Latest follows the newest timestamp and count tracks both."""
        alice.record(HR, 75, T1)
        alice.record(HR, 80, T2)

        assert alice.get_latest(HR).value == 80
        assert alice.get_count(HR) == 2

    def test_delete_latest_recomputes_maximum(self, alice):
        """Deleting the newest record moves latest to the next newest."""
        alice.record(HR, 75, T1)
        alice.record(HR, 80, T2)

        alice.delete(T2, HR)

        assert alice.get_count(HR) == 1
        assert alice.get_latest(HR).timestamp == T1
        assert alice.get_record(T1, HR).value == 75

    def test_delete_older_record_keeps_latest(self, alice):
        alice.record(HR, 75, T1)
        alice.record(HR, 80, T2)

        alice.delete(T1, HR)

        assert alice.get_latest(HR).timestamp == T2

    def test_delete_last_record_clears_latest(self, alice):
        alice.record(HR, 75, T1)

        alice.delete(T1, HR)

        assert alice.get_latest(HR) is None
        assert alice.get_count(HR) == 0

    def test_backfill_does_not_move_latest(self, alice):
        """Recording an older timestamp after a newer one keeps latest."""
        alice.record(HR, 80, T2)
        alice.record(HR, 75, T1)

        assert alice.get_latest(HR).timestamp == T2

    def test_same_key_record_is_upsert(self, alice):
        """Re-recording the same key overwrites without double counting."""
        alice.record(HR, 75, T1)
        alice.record(HR, 90, T1, notes="recheck")

        assert alice.get_count(HR) == 1
        assert alice.get_record(T1, HR).value == 90
        assert alice.get_record(T1, HR).notes == "recheck"

    def test_latest_for_unseen_type(self, alice):
        assert alice.get_latest(VitalType.WEIGHT) is None
        assert alice.get_count(VitalType.WEIGHT) == 0

    def test_types_are_independent(self, alice):
        alice.record(VitalType.SYSTOLIC_BP, 120, T1)
        alice.record(VitalType.DIASTOLIC_BP, 80, T1)

        alice.delete(T1, VitalType.SYSTOLIC_BP)

        assert alice.get_count(VitalType.SYSTOLIC_BP) == 0
        assert alice.get_latest(VitalType.DIASTOLIC_BP).value == 80

    def test_weigh_ins(self, alice, sample_week):
        """Count and latest hold across many records and deletions."""
        for ts, grams in sample_week:
            alice.record(VitalType.WEIGHT, grams, ts)

        newest = max(ts for ts, _ in sample_week)
        alice.delete(newest, VitalType.WEIGHT)
        alice.delete(newest - 86_400, VitalType.WEIGHT)

        assert alice.get_count(VitalType.WEIGHT) == 5
        assert alice.get_latest(VitalType.WEIGHT).timestamp == newest - 2 * 86_400


class TestUpdate:
    """Tests for in-place updates."""

    def test_update_replaces_value_and_notes(self, alice):
        alice.record(HR, 75, T1, notes="resting")

        updated = alice.update(T1, HR, 78)

        assert updated.value == 78
        assert updated.notes is None
        assert alice.get_record(T1, HR) == updated
        assert alice.get_count(HR) == 1
        assert alice.get_latest(HR).value == 78

    def test_update_missing_key(self, alice, store):
        """Update on a nonexistent key fails and changes nothing."""
        alice.record(HR, 75, T1)
        before = store.export_tables()

        with pytest.raises(NoDataFoundError):
            alice.update(T2, HR, 80)

        assert store.export_tables() == before

    def test_update_validates_type_and_value(self, alice):
        alice.record(HR, 75, T1)

        with pytest.raises(InvalidVitalTypeError):
            alice.update(T1, "pulse", 80)
        with pytest.raises(InvalidValueError):
            alice.update(T1, HR, 300)

        assert alice.get_record(T1, HR).value == 75


class TestDelete:
    """Tests for deletion."""

    def test_delete_missing_key(self, alice, store):
        """Delete on a nonexistent key leaves every table untouched."""
        alice.record(HR, 75, T1)
        before = store.export_tables()

        with pytest.raises(NoDataFoundError):
            alice.delete(T2, HR)

        assert store.export_tables() == before

    def test_delete_invalid_type_is_no_data(self, alice):
        with pytest.raises(NoDataFoundError):
            alice.delete(T1, "pulse")

    def test_delete_twice(self, alice):
        alice.record(HR, 75, T1)
        alice.delete(T1, HR)

        with pytest.raises(NoDataFoundError):
            alice.delete(T1, HR)

        assert alice.get_count(HR) == 0


class TestOwnerIsolation:
    """Tests that sessions only see their own owner's data."""

    def test_owners_do_not_share_records(self, store):
        alice = store.session("alice")
        bob = store.session("bob")

        alice.record(HR, 75, T1)

        assert bob.get_record(T1, HR) is None
        assert bob.get_count(HR) == 0
        with pytest.raises(NoDataFoundError):
            bob.delete(T1, HR)
        assert alice.get_count(HR) == 1

    @pytest.mark.parametrize("owner", ["", "   ", None])
    def test_session_requires_owner(self, store, owner):
        with pytest.raises(NotAuthorizedError):
            store.session(owner)


class TestShareWith:
    """Tests for the unenforced sharing stub."""

    def test_share_returns_record(self, alice):
        alice.record(HR, 75, T1)

        shared = alice.share_with("dr-smith", HR, T1)

        assert shared.value == 75

    def test_share_missing_record(self, alice):
        with pytest.raises(NoDataFoundError):
            alice.share_with("dr-smith", HR, T1)


class TestHistory:
    """Tests for ordered history queries."""

    def test_history_is_ordered(self, alice, sample_week):
        for ts, grams in reversed(sample_week):
            alice.record(VitalType.WEIGHT, grams, ts)

        history = alice.history(VitalType.WEIGHT)

        assert [r.timestamp for r in history] == sorted(ts for ts, _ in sample_week)

    def test_history_window_is_inclusive(self, alice):
        for ts in (T1 - 10, T1, T2, T2 + 10):
            alice.record(HR, 70, ts)

        assert [r.timestamp for r in alice.history(HR, T1, T2)] == [T1, T2]

    def test_history_rejects_inverted_window(self, alice):
        with pytest.raises(InvalidTimeframeError):
            alice.history(HR, T2, T1)

    def test_history_unknown_type_is_empty(self, alice):
        assert alice.history("pulse") == []


class TestStats:
    """Tests for store statistics."""

    def test_get_stats(self, store):
        alice = store.session("alice")
        bob = store.session("bob")
        alice.record(HR, 75, T1)
        bob.record(HR, 65, T1)
        with pytest.raises(InvalidValueError):
            bob.record(HR, 5, T2)

        stats = store.get_stats()

        assert stats["owners"] == 2
        assert stats["records"] == 2
        assert stats["accepted"] == 2
        assert stats["rejected"] == 1
        assert stats["latest_policy"] == "track_maximum"

    def test_stats_consistent_under_concurrent_writes(self, store):
        """Counters and table sizes are read as one snapshot."""
        writers = [store.session(f"owner-{n}") for n in range(4)]
        done = threading.Event()
        mismatches = []

        def write(session):
            for offset in range(200):
                session.record(HR, 70, T1 - offset)

        def read():
            while not done.is_set():
                stats = store.get_stats()
                if stats["records"] != stats["accepted"]:
                    mismatches.append(stats)

        reader = threading.Thread(target=read)
        reader.start()
        threads = [threading.Thread(target=write, args=(s,)) for s in writers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        done.set()
        reader.join()

        assert mismatches == []
        assert store.get_stats()["accepted"] == 800


class TestRollback:
    """Tests that a failing mutation leaves the tables unchanged."""

    def test_failure_mid_transaction_restores_tables(self, alice, store, monkeypatch):
        alice.record(HR, 75, T1)
        before = store.export_tables()

        def explode(pair, timestamp):
            raise RuntimeError("index corrupted")

        monkeypatch.setattr(store, "_advance_latest", explode)

        with pytest.raises(RuntimeError):
            alice.record(HR, 80, T2)

        assert store.export_tables() == before
        assert alice.history(HR) == [alice.get_record(T1, HR)]


class TestTimestampTypes:
    """Only integer timestamps address a record."""

    @pytest.mark.parametrize("timestamp", [float(T1), True, str(T1)])
    def test_non_integer_timestamp_matches_nothing(self, alice, timestamp):
        """A float or bool equal to a stored timestamp does not reach the record."""
        alice.record(HR, 75, T1)

        assert alice.get_record(timestamp, HR) is None
        with pytest.raises(NoDataFoundError):
            alice.delete(timestamp, HR)
        with pytest.raises(NoDataFoundError):
            alice.update(timestamp, HR, 80)
        with pytest.raises(NoDataFoundError):
            alice.share_with("dr-smith", HR, timestamp)

        assert alice.get_count(HR) == 1
        assert alice.get_record(T1, HR).value == 75

    def test_bool_timestamp_does_not_delete_record_at_one(self, store):
        """True hashes like 1 but must not address the record stored at 1."""
        session = store.session("alice")
        session.record(HR, 75, 1)

        with pytest.raises(NoDataFoundError):
            session.delete(True, HR)

        assert session.get_count(HR) == 1

    @pytest.mark.parametrize("bounds", [(str(T1), None), (None, float(T2)), (False, T2)])
    def test_history_rejects_non_integer_bounds(self, alice, bounds):
        alice.record(HR, 75, T1)

        with pytest.raises(InvalidTimeframeError):
            alice.history(HR, *bounds)
