import asyncio
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from reservepty import ReservePtyYamlRepository
from reservepty_mcp_server import create_mcp_server


class TestMcpServer(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.repo = ReservePtyYamlRepository(Path(temp_dir.name) / "data")
        family = self.repo.add_family("Mendoza Family Trust")
        self.user = self.repo.add_user("carlos@mendoza.family", "hash", "Carlos", family.family_id, tier=1)
        self.asset = self.repo.add_asset(family.family_id, "Azimut 55", "boat")
        self.server = create_mcp_server(self.repo)

    def test_registers_reservation_tools(self) -> None:
        tools = asyncio.run(self.server.list_tools())
        self.assertEqual(
            {tool.name for tool in tools},
            {"list_family_assets", "list_family_reservations", "create_reservation", "cancel_reservation"},
        )

    def test_create_and_cancel_through_tools(self) -> None:
        start = (datetime.now() + timedelta(days=3)).replace(microsecond=0)
        end = start + timedelta(days=2)

        asyncio.run(
            self.server.call_tool(
                "create_reservation",
                {
                    "user_id": self.user.user_id,
                    "asset_id": self.asset.asset_id,
                    "start_iso": start.isoformat(),
                    "end_iso": end.isoformat(),
                    "notes": "Weekend at Pearl Islands",
                },
            )
        )

        reservations = self.repo.get_reservations()
        self.assertEqual(len(reservations), 1)
        self.assertEqual(reservations[0].notes, "Weekend at Pearl Islands")
        self.assertEqual(reservations[0].status, "confirmed")

        asyncio.run(
            self.server.call_tool(
                "cancel_reservation",
                {"user_id": self.user.user_id, "reservation_id": reservations[0].reservation_id},
            )
        )
        self.assertEqual(self.repo.get_reservation(reservations[0].reservation_id).status, "cancelled")

    def test_create_accepts_offset_timestamps(self) -> None:
        start = (datetime.now(timezone.utc) + timedelta(days=3)).replace(microsecond=0)
        end = start + timedelta(days=1)

        asyncio.run(
            self.server.call_tool(
                "create_reservation",
                {
                    "user_id": self.user.user_id,
                    "asset_id": self.asset.asset_id,
                    "start_iso": start.isoformat(),
                    "end_iso": end.isoformat(),
                },
            )
        )

        reservations = self.repo.get_reservations()
        self.assertEqual(len(reservations), 1)
        self.assertEqual(reservations[0].start, start.astimezone().replace(tzinfo=None))
        self.assertIsNone(reservations[0].end.tzinfo)

    def test_create_with_malformed_timestamp_stores_nothing(self) -> None:
        asyncio.run(
            self.server.call_tool(
                "create_reservation",
                {
                    "user_id": self.user.user_id,
                    "asset_id": self.asset.asset_id,
                    "start_iso": "next friday",
                    "end_iso": "next sunday",
                },
            )
        )
        self.assertEqual(self.repo.get_reservations(), [])


if __name__ == "__main__":
    unittest.main()
