from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from reservepty import (
    AdmissionError,
    Requester,
    ReservePtyYamlRepository,
    cancel_reservation,
    create_reservation,
    parse_timestamp,
)
from reservepty import views
from reservepty.config import get_config
from reservepty.locations import list_airports, list_ports


def create_mcp_server(repository: ReservePtyYamlRepository) -> FastMCP:
    mcp = FastMCP(
        "ReservePTY MCP Server",
        instructions="Expose family assets and reservations from the reservepty project.",
        json_response=True,
    )

    def _requester(user_id: str) -> Requester:
        user = repository.get_user(user_id)
        if user is None:
            raise ValueError(f"Unknown user: {user_id}")
        return Requester.from_user(user)

    @mcp.resource("reservepty://airports")
    async def airports() -> list[dict[str, str]]:
        """List airports offered in flight booking flows."""
        return list_airports()

    @mcp.resource("reservepty://ports")
    async def ports() -> list[dict[str, str]]:
        """List marinas offered in boat booking flows."""
        return list_ports()

    @mcp.tool()
    def list_family_assets(user_id: str) -> list[dict[str, Any]]:
        """Return the assets of the user's family with their current occupancy."""
        requester = _requester(user_id)
        return views.asset_summaries(repository, requester.family_id, datetime.now())

    @mcp.tool()
    def list_family_reservations(user_id: str, asset_id: str | None = None, upcoming: bool = False) -> list[dict[str, Any]]:
        """Return reservations on the user's family assets, optionally for one asset."""
        requester = _requester(user_id)
        return views.list_reservations(
            repository,
            requester.family_id,
            datetime.now(),
            asset_id=asset_id,
            upcoming=upcoming,
        )

    @mcp.tool(name="create_reservation")
    def create_reservation_tool(
        user_id: str,
        asset_id: str,
        start_iso: str,
        end_iso: str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Reserve an asset for the user between two ISO timestamps."""
        try:
            created = create_reservation(
                repository,
                _requester(user_id),
                asset_id,
                parse_timestamp(start_iso),
                parse_timestamp(end_iso),
                notes=notes,
            )
        except AdmissionError as error:
            return {"ok": False, "message": error.message, "status": error.status_code}
        except ValueError as error:
            return {"ok": False, "message": str(error), "status": 400}
        return {"ok": True, "reservation": created.to_dict()}

    @mcp.tool(name="cancel_reservation")
    def cancel_reservation_tool(user_id: str, reservation_id: str) -> dict[str, Any]:
        """Cancel one of the user's reservations."""
        try:
            cancelled = cancel_reservation(repository, user_id, reservation_id)
        except AdmissionError as error:
            return {"ok": False, "message": error.message, "status": error.status_code}
        return {"ok": True, "reservation": cancelled.to_dict()}

    return mcp


def main() -> None:
    data_dir = Path(get_config().DATA_DIR)
    create_mcp_server(ReservePtyYamlRepository(data_dir)).run()


if __name__ == "__main__":
    main()
