"""Family-scoped read projections over assets and reservations."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

import holidays as pyholidays

from .yaml_store import (
    STATUS_CONFIRMED,
    AssetRecord,
    ReservationRecord,
    ReservePtyYamlRepository,
    UserRecord,
)

_HOLIDAY_CACHE: dict[tuple[str, int], dict[date, str]] = {}


def serialize_reservation(
    record: ReservationRecord,
    asset: AssetRecord | None = None,
    user: UserRecord | None = None,
) -> dict[str, Any]:
    payload = record.to_dict()
    if asset is not None:
        payload["asset_name"] = asset.name
        payload["asset_type"] = asset.asset_type
    if user is not None:
        payload["user_name"] = user.name
    return payload


def serialize_asset(asset: AssetRecord) -> dict[str, Any]:
    payload = asset.to_dict()
    payload["specs"] = dict(asset.metadata)
    return payload


def asset_summaries(repository: ReservePtyYamlRepository, family_id: str | None, now: datetime) -> list[dict[str, Any]]:
    if family_id is None:
        return []

    users = {user.user_id: user for user in repository.get_users()}
    reservations = [row for row in repository.get_reservations() if not row.is_cancelled]

    summaries: list[dict[str, Any]] = []
    for asset in repository.list_assets(family_id):
        current = next(
            (row for row in reservations if row.asset_id == asset.asset_id and row.start <= now <= row.end),
            None,
        )
        payload = serialize_asset(asset)
        payload["current_reservation"] = None
        if current is not None:
            booker = users.get(current.user_id)
            payload["current_reservation"] = {
                "reservation_id": current.reservation_id,
                "user_name": booker.name if booker else None,
                "start": current.start.isoformat(timespec="seconds"),
                "end": current.end.isoformat(timespec="seconds"),
            }
        payload["status"] = "occupied" if current is not None else "available"
        summaries.append(payload)
    return summaries


def list_reservations(
    repository: ReservePtyYamlRepository,
    family_id: str | None,
    now: datetime,
    asset_id: str | None = None,
    status: str | None = None,
    upcoming: bool = False,
) -> list[dict[str, Any]]:
    if family_id is None:
        return []

    assets = {asset.asset_id: asset for asset in repository.list_assets(family_id)}
    users = {user.user_id: user for user in repository.get_users()}

    rows = [row for row in repository.get_reservations() if row.asset_id in assets]
    if asset_id:
        rows = [row for row in rows if row.asset_id == asset_id]
    if status:
        rows = [row for row in rows if row.status == status]
    if upcoming:
        rows = [row for row in rows if row.start >= now]

    rows.sort(key=lambda row: row.start)
    return [serialize_reservation(row, assets[row.asset_id], users.get(row.user_id)) for row in rows]


def my_reservations(repository: ReservePtyYamlRepository, user_id: str) -> list[dict[str, Any]]:
    assets = {asset.asset_id: asset for asset in repository.get_assets()}
    rows = [row for row in repository.get_reservations() if row.user_id == user_id]
    rows.sort(key=lambda row: row.start, reverse=True)
    return [serialize_reservation(row, assets.get(row.asset_id)) for row in rows]


def calendar_events(
    repository: ReservePtyYamlRepository,
    family_id: str | None,
    window_start: datetime,
    window_end: datetime,
    asset_id: str | None = None,
) -> list[dict[str, Any]]:
    if family_id is None:
        return []

    assets = {asset.asset_id: asset for asset in repository.list_assets(family_id)}
    users = {user.user_id: user for user in repository.get_users()}

    rows = [
        row
        for row in repository.get_reservations()
        if row.asset_id in assets
        and not row.is_cancelled
        and row.start <= window_end
        and row.end >= window_start
        and (not asset_id or row.asset_id == asset_id)
    ]
    rows.sort(key=lambda row: row.start)

    events: list[dict[str, Any]] = []
    for row in rows:
        asset = assets[row.asset_id]
        user = users.get(row.user_id)
        events.append(
            {
                "id": row.reservation_id,
                "title": f"{asset.name} - {user.name if user else 'Unknown'}",
                "start": row.start.isoformat(timespec="seconds"),
                "end": row.end.isoformat(timespec="seconds"),
                "asset_id": row.asset_id,
                "asset_type": asset.asset_type,
                "user_id": row.user_id,
                "status": row.status,
            }
        )
    return events


def holidays_between(window_start: datetime, window_end: datetime, country: str = "PA") -> list[dict[str, str]]:
    if window_start > window_end:
        raise ValueError("window_start must not be after window_end")
    found: list[dict[str, str]] = []
    cursor = window_start.date()
    while cursor <= window_end.date():
        name = _holiday_name(cursor, country)
        if name is not None:
            found.append({"date": cursor.isoformat(), "name": name})
        cursor += timedelta(days=1)
    return found


def family_stats(repository: ReservePtyYamlRepository, family_id: str | None, now: datetime) -> dict[str, int]:
    if family_id is None:
        return {
            "total_assets": 0,
            "monthly_reservations": 0,
            "family_members": 0,
            "upcoming_reservations": 0,
        }

    asset_ids = {asset.asset_id for asset in repository.list_assets(family_id)}
    reservations = [row for row in repository.get_reservations() if row.asset_id in asset_ids]
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    return {
        "total_assets": len(asset_ids),
        "monthly_reservations": sum(1 for row in reservations if row.created_at >= month_start),
        "family_members": len(repository.list_family_members(family_id)),
        "upcoming_reservations": sum(1 for row in reservations if row.start > now and row.status == STATUS_CONFIRMED),
    }


def _holiday_name(target_date: date, country: str) -> str | None:
    key = (country, target_date.year)
    if key not in _HOLIDAY_CACHE:
        holiday_map = pyholidays.country_holidays(country, years=[target_date.year])
        _HOLIDAY_CACHE[key] = dict(holiday_map.items())
    return _HOLIDAY_CACHE[key].get(target_date)
