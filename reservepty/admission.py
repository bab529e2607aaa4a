"""Reservation admission: the checks that run before a reservation is stored.

A request is admitted only when the asset belongs to the requester's family,
the interval does not overlap any non-cancelled reservation on that asset, and
the start lies within the requester's tier booking horizon. The overlap check,
the horizon check and the insert run inside one repository transaction so two
concurrent requests for the same slot cannot both be admitted.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
import logging

from .tier_policy import days_ahead, max_days_ahead
from .yaml_store import (
    STATUS_CANCELLED,
    ReservationOverlapError,
    ReservationRecord,
    ReservePtyYamlRepository,
    UserRecord,
)

logger = logging.getLogger(__name__)


class AdmissionError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidReservation(AdmissionError):
    status_code = 400


class NotFound(AdmissionError):
    status_code = 404


class Forbidden(AdmissionError):
    status_code = 403


class Conflict(AdmissionError):
    status_code = 409


class TierHorizonExceeded(Forbidden):
    def __init__(self, tier: int, limit: int) -> None:
        super().__init__(f"Tier {tier} members can only book {limit} days in advance")
        self.tier = tier
        self.limit = limit


@dataclass(frozen=True)
class Requester:
    user_id: str
    family_id: str | None
    tier: int

    @staticmethod
    def from_user(user: UserRecord) -> "Requester":
        return Requester(user_id=user.user_id, family_id=user.family_id, tier=user.tier)


def create_reservation(
    repository: ReservePtyYamlRepository,
    requester: Requester,
    asset_id: str,
    start: datetime,
    end: datetime,
    notes: str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> ReservationRecord:
    effective_now = now or datetime.now()
    if start >= end:
        raise InvalidReservation("Reservation start time must be earlier than end time.")

    asset = repository.find_asset(asset_id, requester.family_id)
    if asset is None:
        logger.info("Rejected reservation by %s: asset %s not found in family", requester.user_id, asset_id)
        raise NotFound("Asset not found")

    with repository.transaction():
        if repository.find_overlapping_reservations(asset.asset_id, start, end):
            logger.info("Rejected reservation by %s: conflict on asset %s", requester.user_id, asset.asset_id)
            raise Conflict("Time slot conflicts with existing reservation")

        limit = max_days_ahead(requester.tier)
        if days_ahead(start, effective_now) > limit:
            logger.info("Rejected reservation by %s: tier %s horizon %s days", requester.user_id, requester.tier, limit)
            raise TierHorizonExceeded(requester.tier, limit)

        try:
            created = repository.add_reservation(
                asset_id=asset.asset_id,
                user_id=requester.user_id,
                start=start,
                end=end,
                notes=notes,
                metadata=metadata,
                now=effective_now,
            )
        except ReservationOverlapError as error:
            raise Conflict("Time slot conflicts with existing reservation") from error

    logger.info("Admitted reservation %s on asset %s for %s", created.reservation_id, asset.asset_id, requester.user_id)
    return created


def cancel_reservation(
    repository: ReservePtyYamlRepository,
    requester_user_id: str,
    reservation_id: str,
    now: datetime | None = None,
) -> ReservationRecord:
    """Cancel a reservation owned by the requester.

    A missing reservation and one owned by another user are both reported as
    NotFound. Cancelling an already cancelled reservation returns it unchanged.
    """
    cancelled = repository.update_reservation_status(
        reservation_id,
        STATUS_CANCELLED,
        user_id=requester_user_id,
        now=now,
    )
    if cancelled is None:
        raise NotFound("Reservation not found or not authorized")

    logger.info("Cancelled reservation %s for %s", reservation_id, requester_user_id)
    return cancelled
