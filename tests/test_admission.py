import tempfile
import threading
import unittest
from datetime import datetime, timedelta
from pathlib import Path
from unittest import mock

from reservepty import (
    Conflict,
    Forbidden,
    InvalidReservation,
    NotFound,
    Requester,
    ReservationStorageError,
    ReservePtyYamlRepository,
    TierHorizonExceeded,
    cancel_reservation,
    create_reservation,
)
from reservepty.yaml_store import STATUS_CANCELLED, STATUS_CONFIRMED

NOW = datetime(2026, 3, 1, 9, 0)


def day(offset: int) -> datetime:
    return NOW + timedelta(days=offset)


class AdmissionTestCase(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.repo = ReservePtyYamlRepository(Path(temp_dir.name) / "data")
        self.family = self.repo.add_family("Mendoza Family Trust", now=NOW)
        self.other_family = self.repo.add_family("Other Family", now=NOW)
        self.asset = self.repo.add_asset(self.family.family_id, "Citation CJ4", "plane", now=NOW)
        self.foreign_asset = self.repo.add_asset(self.other_family.family_id, "Foreign Yacht", "boat", now=NOW)
        self.senior = self._member("carlos@mendoza.family", tier=1)
        self.junior = self._member("juan@mendoza.family", tier=4)

    def _member(self, email: str, tier: int) -> Requester:
        user = self.repo.add_user(email, "hash", email.split("@")[0].title(), self.family.family_id, tier=tier, now=NOW)
        return Requester.from_user(user)


class TestCreateReservation(AdmissionTestCase):
    def test_admits_confirmed_reservation(self) -> None:
        created = create_reservation(
            self.repo,
            self.senior,
            self.asset.asset_id,
            day(10),
            day(12),
            notes="Family trip",
            metadata={"passengers": 4},
            now=NOW,
        )

        self.assertEqual(created.status, STATUS_CONFIRMED)
        self.assertEqual(created.user_id, self.senior.user_id)
        self.assertEqual(created.asset_id, self.asset.asset_id)
        self.assertEqual(created.notes, "Family trip")
        self.assertEqual(created.metadata, {"passengers": 4})
        self.assertEqual(self.repo.get_reservations(), [created])

    def test_overlapping_request_conflicts_and_later_slot_is_admitted(self) -> None:
        create_reservation(self.repo, self.senior, self.asset.asset_id, day(10), day(12), now=NOW)

        with self.assertRaises(Conflict):
            create_reservation(self.repo, self.senior, self.asset.asset_id, day(11), day(13), now=NOW)

        admitted = create_reservation(self.repo, self.senior, self.asset.asset_id, day(13), day(15), now=NOW)
        self.assertEqual(admitted.status, STATUS_CONFIRMED)
        self.assertEqual(len(self.repo.get_reservations()), 2)

    def test_shared_endpoint_conflicts(self) -> None:
        create_reservation(self.repo, self.senior, self.asset.asset_id, day(10), day(12), now=NOW)

        with self.assertRaises(Conflict):
            create_reservation(self.repo, self.junior, self.asset.asset_id, day(12), day(14), now=NOW)

    def test_cancelled_reservation_frees_the_slot(self) -> None:
        first = create_reservation(self.repo, self.senior, self.asset.asset_id, day(10), day(12), now=NOW)
        cancel_reservation(self.repo, self.senior.user_id, first.reservation_id, now=NOW)

        second = create_reservation(self.repo, self.junior, self.asset.asset_id, day(10), day(12), now=NOW)
        self.assertEqual(second.user_id, self.junior.user_id)

    def test_foreign_asset_is_not_found_even_for_valid_interval(self) -> None:
        with self.assertRaises(NotFound):
            create_reservation(self.repo, self.senior, self.foreign_asset.asset_id, day(1), day(2), now=NOW)
        with self.assertRaises(NotFound):
            create_reservation(self.repo, self.senior, "missing-asset", day(1), day(2), now=NOW)
        self.assertEqual(self.repo.get_reservations(), [])

    def test_requester_without_family_is_not_found(self) -> None:
        loner = Requester(user_id="loner", family_id=None, tier=1)
        with self.assertRaises(NotFound):
            create_reservation(self.repo, loner, self.asset.asset_id, day(1), day(2), now=NOW)

    def test_tier_four_horizon(self) -> None:
        with self.assertRaises(Forbidden) as context:
            create_reservation(self.repo, self.junior, self.asset.asset_id, day(45), day(46), now=NOW)

        error = context.exception
        self.assertIsInstance(error, TierHorizonExceeded)
        self.assertEqual(error.tier, 4)
        self.assertEqual(error.limit, 30)
        self.assertEqual(error.message, "Tier 4 members can only book 30 days in advance")
        self.assertEqual(error.status_code, 403)
        self.assertEqual(self.repo.get_reservations(), [])

        admitted = create_reservation(self.repo, self.junior, self.asset.asset_id, day(20), day(21), now=NOW)
        self.assertEqual(admitted.status, STATUS_CONFIRMED)

    def test_horizon_rounds_partial_days_up(self) -> None:
        with self.assertRaises(TierHorizonExceeded):
            create_reservation(
                self.repo,
                self.junior,
                self.asset.asset_id,
                day(30) + timedelta(hours=1),
                day(31),
                now=NOW,
            )

        admitted = create_reservation(self.repo, self.junior, self.asset.asset_id, day(30), day(31), now=NOW)
        self.assertEqual(admitted.start, day(30))

    def test_senior_tier_books_further_ahead(self) -> None:
        admitted = create_reservation(self.repo, self.senior, self.asset.asset_id, day(300), day(302), now=NOW)
        self.assertEqual(admitted.status, STATUS_CONFIRMED)

        with self.assertRaises(TierHorizonExceeded) as context:
            create_reservation(self.repo, self.senior, self.asset.asset_id, day(366), day(367), now=NOW)
        self.assertEqual(context.exception.limit, 365)

    def test_unknown_tier_uses_default_horizon(self) -> None:
        odd = Requester(user_id="odd", family_id=self.family.family_id, tier=7)
        with self.assertRaises(TierHorizonExceeded) as context:
            create_reservation(self.repo, odd, self.asset.asset_id, day(31), day(32), now=NOW)
        self.assertEqual(context.exception.limit, 30)

    def test_conflict_is_reported_before_horizon(self) -> None:
        create_reservation(self.repo, self.senior, self.asset.asset_id, day(40), day(42), now=NOW)

        with self.assertRaises(Conflict):
            create_reservation(self.repo, self.junior, self.asset.asset_id, day(41), day(43), now=NOW)

    def test_rejects_inverted_or_empty_interval(self) -> None:
        with self.assertRaises(InvalidReservation):
            create_reservation(self.repo, self.senior, self.asset.asset_id, day(12), day(10), now=NOW)
        with self.assertRaises(InvalidReservation):
            create_reservation(self.repo, self.senior, self.asset.asset_id, day(12), day(12), now=NOW)
        self.assertEqual(self.repo.get_reservations(), [])

    def test_storage_failures_never_leave_a_failed_request_stored(self) -> None:
        write_yaml_list = self.repo._write_yaml_list

        def fail_for(target):
            def write(path, rows):
                if path == target:
                    raise ReservationStorageError("disk full")
                write_yaml_list(path, rows)

            return write

        with mock.patch.object(self.repo, "_write_yaml_list", side_effect=fail_for(self.repo.reservations_file)):
            with self.assertRaises(ReservationStorageError):
                create_reservation(self.repo, self.senior, self.asset.asset_id, day(5), day(7), now=NOW)
        self.assertEqual(self.repo.get_reservations(), [])

        with mock.patch.object(self.repo, "_write_yaml_list", side_effect=fail_for(self.repo.log_file)):
            with self.assertLogs("reservepty.yaml_store", level="WARNING"):
                created = create_reservation(self.repo, self.senior, self.asset.asset_id, day(5), day(7), now=NOW)
        self.assertEqual(self.repo.get_reservations(), [created])

    def test_concurrent_requests_admit_exactly_one(self) -> None:
        requesters = [self._member(f"member{index}@mendoza.family", tier=1) for index in range(8)]
        barrier = threading.Barrier(len(requesters))
        admitted: list[str] = []
        conflicts: list[str] = []
        errors: list[Exception] = []

        def attempt(requester: Requester) -> None:
            barrier.wait()
            try:
                created = create_reservation(self.repo, requester, self.asset.asset_id, day(5), day(7), now=NOW)
                admitted.append(created.reservation_id)
            except Conflict:
                conflicts.append(requester.user_id)
            except Exception as error:
                errors.append(error)

        threads = [threading.Thread(target=attempt, args=(requester,)) for requester in requesters]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(admitted), 1)
        self.assertEqual(len(conflicts), len(requesters) - 1)
        self.assertEqual(len(self.repo.get_reservations()), 1)


class TestCancelReservation(AdmissionTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.reservation = create_reservation(self.repo, self.senior, self.asset.asset_id, day(10), day(12), now=NOW)

    def test_owner_cancels(self) -> None:
        later = NOW + timedelta(hours=2)
        cancelled = cancel_reservation(self.repo, self.senior.user_id, self.reservation.reservation_id, now=later)

        self.assertEqual(cancelled.status, STATUS_CANCELLED)
        self.assertEqual(cancelled.updated_at, later)

    def test_other_user_cannot_cancel(self) -> None:
        with self.assertRaises(NotFound) as context:
            cancel_reservation(self.repo, self.junior.user_id, self.reservation.reservation_id, now=NOW)

        self.assertEqual(context.exception.message, "Reservation not found or not authorized")
        self.assertEqual(self.repo.get_reservation(self.reservation.reservation_id).status, STATUS_CONFIRMED)

    def test_missing_reservation(self) -> None:
        with self.assertRaises(NotFound):
            cancel_reservation(self.repo, self.senior.user_id, "missing", now=NOW)

    def test_cancelling_twice_returns_reservation_unchanged(self) -> None:
        first = cancel_reservation(self.repo, self.senior.user_id, self.reservation.reservation_id, now=NOW + timedelta(hours=1))
        second = cancel_reservation(self.repo, self.senior.user_id, self.reservation.reservation_id, now=NOW + timedelta(hours=5))

        self.assertEqual(second, first)
        self.assertEqual(second.updated_at, NOW + timedelta(hours=1))

    def test_cancel_does_not_revalidate_horizon(self) -> None:
        far = create_reservation(self.repo, self.senior, self.asset.asset_id, day(200), day(201), now=NOW)
        cancelled = cancel_reservation(self.repo, self.senior.user_id, far.reservation_id, now=NOW)
        self.assertEqual(cancelled.status, STATUS_CANCELLED)


if __name__ == "__main__":
    unittest.main()
