# backend/sync_controller.py
"""
Keeps a LedgerCache in step with the server.

start() fetches the row template, waits for it (bounded by
Settings.template_timeout), refreshes once and then refreshes every
Settings.poll_interval seconds until stop(). Poll ticks do not wait for the
previous refresh; every refresh carries a sequence number and the cache
refuses snapshots older than the one it holds, so a slow response can never
overwrite the result of a request issued after it.

Transport failures and bad payloads are logged and left to the next tick.
ConfigurationError (double start, refresh before the template, template
unavailable) is raised to the caller.
"""

from __future__ import annotations

import asyncio
from typing import Callable
from urllib.parse import quote

from debtrow import render_rows
from errors import ConfigurationError, IdentityNotFound, TransportError
from identity import IdentityStore, pick_identity
from ledger_cache import LedgerCache, LedgerSnapshot
from mealbot_logging import get_logger
from settings import Settings
from settlement import User, compute_matrix, parse_ledger
from transport import Transport

logger = get_logger(__name__)


class SyncController:
    def __init__(
        self,
        transport: Transport,
        store: IdentityStore,
        cache: LedgerCache | None = None,
        settings: Settings | None = None,
        on_render: Callable[[list[str]], None] | None = None,
    ):
        self.transport = transport
        self.store = store
        self.cache = cache if cache is not None else LedgerCache()
        self.settings = settings or Settings()
        self._on_render = on_render or self._log_rows
        self._issued = 0
        self._identity_floor = 0
        self._started = False
        self._stopped = False
        self._template_ready: asyncio.Future | None = None
        self._poll_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return not self._stopped and self._poll_task is not None and not self._poll_task.done()

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self.cache.snapshot

    async def start(self) -> None:
        if self._started:
            raise ConfigurationError("sync controller already started; only one poll timer per session")
        self._started = True

        self._template_ready = asyncio.get_running_loop().create_future()
        self._spawn(self._load_template())

        timeout = self.settings.template_timeout
        try:
            await asyncio.wait_for(asyncio.shield(self._template_ready), timeout)
        except asyncio.TimeoutError:
            raise ConfigurationError(f"row template not loaded within {timeout}s") from None

        await self.refresh()
        # stop() may have been called while we were waiting
        if self._stopped:
            logger.info("poll_not_started", reason="stopped during startup")
            return
        self._poll_task = asyncio.create_task(self._poll())
        logger.info("poll_started", interval=self.settings.poll_interval)

    def stop(self) -> None:
        if not self._started or self._stopped:
            return
        self._stopped = True
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        logger.info("poll_stopped")

    async def refresh(self) -> bool:
        """Fetch, net and install one snapshot. True when it was installed."""
        if not self.cache.template_loaded:
            raise ConfigurationError("row template not loaded")

        self._issued += 1
        sequence = self._issued
        try:
            resp = await self.transport.request("GET", self.settings.data_path)
            roster, receipts = parse_ledger(resp.json())
        except TransportError as e:
            logger.warning(
                "refresh_failed",
                sequence=sequence,
                kind=e.kind.value,
                status=e.status,
                error=str(e),
            )
            return False
        except ValueError as e:
            logger.warning("refresh_bad_payload", sequence=sequence, error=str(e))
            return False

        # Responses older than the installed snapshot, or issued before the last
        # identity change, have no say, not even over the stored identity
        if sequence < max(self.cache.snapshot.sequence, self._identity_floor):
            logger.info("refresh_discarded", sequence=sequence, installed=self.cache.snapshot.sequence)
            return False

        stored = self.store.resolve()
        identity = pick_identity(stored, roster)
        snapshot = LedgerSnapshot(
            roster=tuple(roster),
            matrix=compute_matrix(roster, receipts),
            identity=identity,
            sequence=sequence,
        )
        if not self.cache.install(snapshot):
            logger.info("refresh_discarded", sequence=sequence, installed=self.cache.snapshot.sequence)
            return False

        if identity is not None and identity.id != stored:
            self.store.persist(identity.id)

        logger.debug("refresh_applied", sequence=sequence, users=len(roster), receipts=len(receipts))
        self._on_render(render_rows(self.cache.template, snapshot))
        return True

    async def change_identity(self, user_id: int) -> User:
        user = self.cache.find_user(user_id)
        if user is None:
            raise IdentityNotFound(user_id)

        self.store.persist(user.id)
        self.cache.set_identity(user)
        self._identity_floor = self._issued + 1
        logger.info("identity_changed", user_id=user.id, name=user.name)
        if not await self.refresh():
            # Keep the rows in step with the new identity until a refresh lands
            self._on_render(render_rows(self.cache.template, self.cache.snapshot))
        return user

    async def edit_meal(self, payer: str, payee: str, num_meals: int) -> None:
        """Record num_meals from payer to payee, then refresh whatever the outcome."""
        path = "/".join(
            [
                self.settings.edit_meal_path.rstrip("/"),
                quote(payer, safe=""),
                quote(payee, safe=""),
                str(int(num_meals)),
            ]
        )
        try:
            await self.transport.request("POST", path)
        except TransportError as e:
            logger.warning("edit_meal_failed", payer=payer, payee=payee, kind=e.kind.value, status=e.status)
        await self.refresh()

    async def _load_template(self) -> None:
        try:
            resp = await self.transport.request("GET", self.settings.template_path)
        except TransportError as e:
            logger.error("template_load_failed", kind=e.kind.value, error=str(e))
            if not self._template_ready.done():
                self._template_ready.set_exception(ConfigurationError(f"row template unavailable: {e}"))
            return

        self.cache.template = resp.text
        logger.info("template_loaded", path=self.settings.template_path)
        if not self._template_ready.done():
            self._template_ready.set_result(None)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.settings.poll_interval)
            self._spawn(self.refresh())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._reap)
        return task

    def _reap(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background_task_failed", error=repr(exc))

    def _log_rows(self, rows: list[str]) -> None:
        logger.debug("rows_rendered", count=len(rows))
