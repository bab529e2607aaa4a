from .timeslots import has_time_overlap, parse_timestamp
from .tier_policy import days_ahead, is_within_horizon, max_days_ahead
from .yaml_store import (
    ASSET_TYPES,
    RESERVATION_STATUSES,
    AssetRecord,
    DuplicateRecordError,
    FamilyRecord,
    ReservationOverlapError,
    ReservationRecord,
    ReservationStorageError,
    ReservePtyYamlRepository,
    UserRecord,
)
from .admission import (
    AdmissionError,
    Conflict,
    Forbidden,
    InvalidReservation,
    NotFound,
    Requester,
    TierHorizonExceeded,
    cancel_reservation,
    create_reservation,
)

__all__ = [
    "parse_timestamp",
    "has_time_overlap",
    "days_ahead",
    "is_within_horizon",
    "max_days_ahead",
    "ASSET_TYPES",
    "RESERVATION_STATUSES",
    "AssetRecord",
    "DuplicateRecordError",
    "FamilyRecord",
    "ReservationOverlapError",
    "ReservationRecord",
    "ReservationStorageError",
    "ReservePtyYamlRepository",
    "UserRecord",
    "AdmissionError",
    "Conflict",
    "Forbidden",
    "InvalidReservation",
    "NotFound",
    "Requester",
    "TierHorizonExceeded",
    "cancel_reservation",
    "create_reservation",
]
