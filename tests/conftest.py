"""
Pytest fixtures for mealbot tests: scripted transports, identity stores and a
Flask app with an empty in-memory ledger.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from app import MealLedger, create_app
from errors import TransportError
from identity import MemoryIdentityStore
from settings import Settings
from transport import FailureKind, Response

TEMPLATE = "<li>{{upn}}|{{summary}}|{{whoami}}</li>"


def ledger_doc(users, receipts=()):
    """Build a get-data document from (id, name) and (payer, payee, n) tuples."""
    return {
        "Users": [{"ID": uid, "UPN": name} for uid, name in users],
        "Reciepts": [{"Payer": p, "Payee": q, "NumMeals": n} for p, q, n in receipts],
    }


class ScriptedTransport:
    """
    Transport double. routes maps a path to a dict (served as JSON), a str,
    an exception to raise, or a list of those consumed one per request.
    gates maps a path to an asyncio.Event the request waits on.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.gates = {}
        self.calls = []

    def calls_to(self, path):
        return [c for c in self.calls if c[1] == path]

    async def request(self, method, path, body=None):
        self.calls.append((method, path, body))
        route = self.routes.get(path)
        if route is None:
            for prefix, value in self.routes.items():
                if prefix.endswith("/") and path.startswith(prefix):
                    route = value
                    break
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]

        # The answer is fixed when the request is issued, not when it lands
        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()

        if route is None:
            raise TransportError(FailureKind.ERROR, f"{method} {path}: HTTP 404", status=404)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, str):
            return Response(200, route)
        return Response(200, json.dumps(route))


class FlaskTransport:
    """Transport over a Flask test client, failing on HTTP errors like HttpxTransport."""

    def __init__(self, flask_client):
        self.client = flask_client

    async def request(self, method, path, body=None):
        await asyncio.sleep(0)
        resp = self.client.open(path, method=method, json=body)
        if resp.status_code >= 400:
            raise TransportError(FailureKind.ERROR, f"{method} {path}: HTTP {resp.status_code}", status=resp.status_code)
        return Response(resp.status_code, resp.get_data(as_text=True))


@pytest.fixture
def settings():
    return Settings(poll_interval=60.0, template_timeout=1.0)


@pytest.fixture
def store():
    return MemoryIdentityStore()


@pytest.fixture
def transport(settings):
    return ScriptedTransport(
        {
            settings.template_path: TEMPLATE,
            settings.data_path: ledger_doc([(1, "a"), (2, "b")], [(1, 2, 3)]),
        }
    )


@pytest.fixture
def rendered():
    """List of row batches handed to on_render, newest last."""
    return []


@pytest.fixture
def ledger():
    return MealLedger(["alice", "bob", "carol"])


@pytest.fixture
def flask_client(ledger):
    app = create_app(ledger)
    app.config["TESTING"] = True
    return app.test_client()
