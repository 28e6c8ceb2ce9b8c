"""
SyncController against the real Flask app through its test client.
"""

from __future__ import annotations

import pytest

from conftest import FlaskTransport
from identity import MemoryIdentityStore
from settlement import User
from sync_controller import SyncController

pytestmark = pytest.mark.asyncio


async def test_client_follows_server_ledger(flask_client, settings):
    store = MemoryIdentityStore()
    rendered = []
    controller = SyncController(FlaskTransport(flask_client), store, settings=settings, on_render=rendered.append)

    await controller.start()
    try:
        assert controller.cache.template_loaded
        assert controller.snapshot.identity == User(0, "alice")
        assert store.resolve() == 0
        rows = rendered[-1]
        assert len(rows) == 2
        assert all("owe" not in row.lower() for row in rows)

        await controller.edit_meal("alice", "bob", 2)
        assert controller.snapshot.net_for(User(1, "bob")) == 2
        bob_row = next(row for row in rendered[-1] if ">bob<" in row)
        assert "You owe: 2" in bob_row

        await controller.change_identity(1)
        assert store.resolve() == 1
        alice_row = next(row for row in rendered[-1] if ">alice<" in row)
        assert "Owes you: 2" in alice_row
        assert all(">bob<" not in row for row in rendered[-1])
    finally:
        controller.stop()


async def test_rejected_edit_still_refreshes(flask_client, settings):
    rendered = []
    controller = SyncController(
        FlaskTransport(flask_client), MemoryIdentityStore(), settings=settings, on_render=rendered.append
    )
    await controller.start()
    try:
        await controller.edit_meal("alice", "mallory", 1)
        assert len(rendered) == 2
        assert controller.snapshot.matrix.to_list() == [[0, 0, 0], [0, 0, 0], [0, 0, 0]]
    finally:
        controller.stop()
