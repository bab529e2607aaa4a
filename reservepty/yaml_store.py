from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator
import logging
import shutil
import threading
from uuid import uuid4

import yaml

from .timeslots import has_time_overlap
from .tier_policy import DEFAULT_TIER

logger = logging.getLogger(__name__)

ASSET_TYPES = ("plane", "boat", "home", "vehicle")

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
RESERVATION_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_ACTIVE, STATUS_COMPLETED, STATUS_CANCELLED)


def _format_timestamp(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class FamilyRecord:
    family_id: str
    name: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "family_id": self.family_id,
            "name": self.name,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "FamilyRecord":
        return FamilyRecord(
            family_id=str(data["family_id"]),
            name=str(data["name"]),
            created_at=_parse_timestamp(data["created_at"]),
            updated_at=_parse_timestamp(data["updated_at"]),
        )


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    email: str
    password_hash: str
    name: str
    family_id: str | None
    tier: int
    created_at: datetime
    updated_at: datetime
    avatar_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = self.to_public_dict()
        payload["password_hash"] = self.password_hash
        return payload

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "family_id": self.family_id,
            "tier": self.tier,
            "avatar_url": self.avatar_url,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "UserRecord":
        return UserRecord(
            user_id=str(data["user_id"]),
            email=str(data["email"]),
            password_hash=str(data["password_hash"]),
            name=str(data["name"]),
            family_id=_optional_str(data.get("family_id")),
            tier=int(data.get("tier", DEFAULT_TIER)),
            created_at=_parse_timestamp(data["created_at"]),
            updated_at=_parse_timestamp(data["updated_at"]),
            avatar_url=_optional_str(data.get("avatar_url")),
        )


@dataclass(frozen=True)
class AssetRecord:
    asset_id: str
    family_id: str
    name: str
    asset_type: str
    created_at: datetime
    updated_at: datetime
    location: str | None = None
    image_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "family_id": self.family_id,
            "name": self.name,
            "type": self.asset_type,
            "location": self.location,
            "image_url": self.image_url,
            "metadata": dict(self.metadata),
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "AssetRecord":
        return AssetRecord(
            asset_id=str(data["asset_id"]),
            family_id=str(data["family_id"]),
            name=str(data["name"]),
            asset_type=str(data["type"]),
            created_at=_parse_timestamp(data["created_at"]),
            updated_at=_parse_timestamp(data["updated_at"]),
            location=_optional_str(data.get("location")),
            image_url=_optional_str(data.get("image_url")),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class ReservationRecord:
    reservation_id: str
    asset_id: str
    user_id: str
    start: datetime
    end: datetime
    status: str
    created_at: datetime
    updated_at: datetime
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "asset_id": self.asset_id,
            "user_id": self.user_id,
            "start": _format_timestamp(self.start),
            "end": _format_timestamp(self.end),
            "status": self.status,
            "notes": self.notes,
            "metadata": dict(self.metadata),
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ReservationRecord":
        return ReservationRecord(
            reservation_id=str(data["reservation_id"]),
            asset_id=str(data["asset_id"]),
            user_id=str(data["user_id"]),
            start=_parse_timestamp(data["start"]),
            end=_parse_timestamp(data["end"]),
            status=str(data.get("status", STATUS_CONFIRMED)),
            created_at=_parse_timestamp(data["created_at"]),
            updated_at=_parse_timestamp(data["updated_at"]),
            notes=_optional_str(data.get("notes")),
            metadata=dict(data.get("metadata") or {}),
        )


class ReservationStorageError(RuntimeError):
    pass


class DuplicateRecordError(ValueError):
    pass


class ReservationOverlapError(ValueError):
    pass


class ReservePtyYamlRepository:
    """YAML-file datastore for families, users, assets and reservations.

    Every mutation runs under a re-entrant, process-scoped write lock. Callers
    that need several reads and a write to be one atomic step (such as
    reservation admission) wrap them in :meth:`transaction`.
    """

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.families_file = self.base_dir / "families.yaml"
        self.users_file = self.base_dir / "users.yaml"
        self.assets_file = self.base_dir / "assets.yaml"
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.log_file = self.base_dir / "reservation_events.yaml"
        self._lock = threading.RLock()
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.families_file, self.users_file, self.assets_file, self.reservations_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    @contextmanager
    def transaction(self) -> Iterator["ReservePtyYamlRepository"]:
        with self._lock:
            yield self

    def is_available(self) -> bool:
        try:
            for path in (self.families_file, self.users_file, self.assets_file, self.reservations_file):
                yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError):
            return False
        return True

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            elif path != self.log_file:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise ReservationStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted file %s", path)

        logger.warning("Recovered corrupted YAML file %s (%s)", path.name, error)
        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        """Append an event to the log file.

        Data files are committed before their event is logged, so a failed
        log write is reported and never undoes or fails the committed change.
        """
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        with self._lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            try:
                self._write_yaml_list(self.log_file, events)
            except ReservationStorageError as error:
                logger.warning("Could not log %s event: %s", event_type, error)

    # Families

    def get_families(self) -> list[FamilyRecord]:
        return [FamilyRecord.from_dict(row) for row in self._read_yaml_list(self.families_file)]

    def get_family(self, family_id: str) -> FamilyRecord | None:
        for family in self.get_families():
            if family.family_id == family_id:
                return family
        return None

    def add_family(self, name: str, now: datetime | None = None) -> FamilyRecord:
        name = _normalize_required(name, "name")
        effective_now = now or datetime.now()
        record = FamilyRecord(
            family_id=str(uuid4()),
            name=name,
            created_at=effective_now,
            updated_at=effective_now,
        )
        with self._lock:
            rows = self._read_yaml_list(self.families_file)
            rows.append(record.to_dict())
            self._write_yaml_list(self.families_file, rows)
            self._log_event("FAMILY_CREATED", {"family_id": record.family_id, "name": name}, effective_now)
        return record

    # Users

    def get_users(self) -> list[UserRecord]:
        return [UserRecord.from_dict(row) for row in self._read_yaml_list(self.users_file)]

    def get_user(self, user_id: str) -> UserRecord | None:
        for user in self.get_users():
            if user.user_id == user_id:
                return user
        return None

    def find_user_by_email(self, email: str) -> UserRecord | None:
        normalized = _normalize_email(email)
        for user in self.get_users():
            if user.email == normalized:
                return user
        return None

    def list_family_members(self, family_id: str) -> list[UserRecord]:
        members = [user for user in self.get_users() if user.family_id == family_id]
        members.sort(key=lambda user: (user.tier, user.name))
        return members

    def add_user(
        self,
        email: str,
        password_hash: str,
        name: str,
        family_id: str | None = None,
        tier: int = DEFAULT_TIER,
        avatar_url: str | None = None,
        now: datetime | None = None,
    ) -> UserRecord:
        email = _normalize_email(email)
        name = _normalize_required(name, "name")
        if tier not in (1, 2, 3, 4):
            raise ValueError("tier must be between 1 and 4")

        effective_now = now or datetime.now()
        record = UserRecord(
            user_id=str(uuid4()),
            email=email,
            password_hash=password_hash,
            name=name,
            family_id=family_id,
            tier=tier,
            created_at=effective_now,
            updated_at=effective_now,
            avatar_url=avatar_url,
        )
        with self._lock:
            if self.find_user_by_email(email) is not None:
                raise DuplicateRecordError("Email already registered")

            rows = self._read_yaml_list(self.users_file)
            rows.append(record.to_dict())
            self._write_yaml_list(self.users_file, rows)
            self._log_event(
                "USER_CREATED",
                {"user_id": record.user_id, "family_id": family_id, "tier": tier},
                effective_now,
            )
        return record

    # Assets

    def get_assets(self) -> list[AssetRecord]:
        return [AssetRecord.from_dict(row) for row in self._read_yaml_list(self.assets_file)]

    def get_asset(self, asset_id: str) -> AssetRecord | None:
        for asset in self.get_assets():
            if asset.asset_id == asset_id:
                return asset
        return None

    def find_asset(self, asset_id: str, family_id: str | None) -> AssetRecord | None:
        """Return the asset only when it belongs to ``family_id``."""
        asset = self.get_asset(asset_id)
        if asset is None or family_id is None or asset.family_id != family_id:
            return None
        return asset

    def list_assets(self, family_id: str) -> list[AssetRecord]:
        assets = [asset for asset in self.get_assets() if asset.family_id == family_id]
        assets.sort(key=lambda asset: (asset.asset_type, asset.name))
        return assets

    def add_asset(
        self,
        family_id: str,
        name: str,
        asset_type: str,
        location: str | None = None,
        image_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> AssetRecord:
        name = _normalize_required(name, "name")
        if asset_type not in ASSET_TYPES:
            raise ValueError(f"type must be one of: {', '.join(ASSET_TYPES)}")

        effective_now = now or datetime.now()
        record = AssetRecord(
            asset_id=str(uuid4()),
            family_id=family_id,
            name=name,
            asset_type=asset_type,
            created_at=effective_now,
            updated_at=effective_now,
            location=location,
            image_url=image_url,
            metadata=dict(metadata or {}),
        )
        with self._lock:
            if self.get_family(family_id) is None:
                raise ValueError("family_id does not reference an existing family")

            rows = self._read_yaml_list(self.assets_file)
            rows.append(record.to_dict())
            self._write_yaml_list(self.assets_file, rows)
            self._log_event(
                "ASSET_CREATED",
                {"asset_id": record.asset_id, "family_id": family_id, "type": asset_type},
                effective_now,
            )
        return record

    # Reservations

    def get_reservations(self) -> list[ReservationRecord]:
        return [ReservationRecord.from_dict(row) for row in self._read_yaml_list(self.reservations_file)]

    def get_reservation(self, reservation_id: str) -> ReservationRecord | None:
        for reservation in self.get_reservations():
            if reservation.reservation_id == reservation_id:
                return reservation
        return None

    def find_overlapping_reservations(
        self,
        asset_id: str,
        start: datetime,
        end: datetime,
        exclude_statuses: Iterable[str] = (STATUS_CANCELLED,),
    ) -> list[ReservationRecord]:
        excluded = set(exclude_statuses)
        return [
            row
            for row in self.get_reservations()
            if row.asset_id == asset_id
            and row.status not in excluded
            and has_time_overlap(start, end, row.start, row.end)
        ]

    def add_reservation(
        self,
        asset_id: str,
        user_id: str,
        start: datetime,
        end: datetime,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
        status: str = STATUS_CONFIRMED,
        now: datetime | None = None,
    ) -> ReservationRecord:
        if start >= end:
            raise ValueError("Reservation start time must be earlier than end time.")
        if status not in RESERVATION_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(RESERVATION_STATUSES)}")

        effective_now = now or datetime.now()
        record = ReservationRecord(
            reservation_id=str(uuid4()),
            asset_id=asset_id,
            user_id=user_id,
            start=start,
            end=end,
            status=status,
            created_at=effective_now,
            updated_at=effective_now,
            notes=notes,
            metadata=dict(metadata or {}),
        )
        with self._lock:
            # Enforced here as well as by callers so no write path can break the invariant.
            if status != STATUS_CANCELLED and self.find_overlapping_reservations(asset_id, start, end):
                raise ReservationOverlapError("Reservation overlaps with an existing reservation.")

            rows = self._read_yaml_list(self.reservations_file)
            rows.append(record.to_dict())
            self._write_yaml_list(self.reservations_file, rows)

            self._log_event(
                "RESERVATION_CREATED",
                {
                    "reservation_id": record.reservation_id,
                    "asset_id": asset_id,
                    "user_id": user_id,
                    "start": _format_timestamp(start),
                    "end": _format_timestamp(end),
                },
                effective_now,
            )
        return record

    def update_reservation_status(
        self,
        reservation_id: str,
        status: str,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> ReservationRecord | None:
        """Set the status of a reservation, optionally only if ``user_id`` owns it.

        Returns None when the reservation is missing or owned by someone else.
        A reservation already in ``status`` is returned unchanged.
        """
        if status not in RESERVATION_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(RESERVATION_STATUSES)}")

        effective_now = now or datetime.now()
        with self._lock:
            rows = self._read_yaml_list(self.reservations_file)
            found_index = -1
            for index, row in enumerate(rows):
                if str(row.get("reservation_id")) == reservation_id:
                    found_index = index
                    break

            if found_index < 0:
                return None

            current = ReservationRecord.from_dict(rows[found_index])
            if user_id is not None and current.user_id != user_id:
                return None
            if current.status == status:
                return current
            if current.is_cancelled and status != STATUS_CANCELLED:
                clashes = [
                    row
                    for row in self.find_overlapping_reservations(current.asset_id, current.start, current.end)
                    if row.reservation_id != reservation_id
                ]
                if clashes:
                    raise ReservationOverlapError("Reservation overlaps with an existing reservation.")

            updated = replace(current, status=status, updated_at=effective_now)
            rows[found_index] = updated.to_dict()
            self._write_yaml_list(self.reservations_file, rows)

            self._log_event(
                "RESERVATION_STATUS_CHANGED",
                {
                    "reservation_id": reservation_id,
                    "from": current.status,
                    "to": status,
                },
                effective_now,
            )
        return updated


def _normalize_required(value: str | None, field_name: str) -> str:
    if value is None:
        raise ValueError(f"{field_name} must not be None")

    normalized = str(value).strip()
    if not normalized:
        raise ValueError(f"{field_name} must not be empty")
    return normalized


def _normalize_email(email: str | None) -> str:
    return _normalize_required(email, "email").lower()
