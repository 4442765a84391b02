"""Remote sync coordination for SwiftRunClient.

Owns:
- the sync session lifecycle (bootstrap, join, disconnect)
- push-on-mutation and the background poll task
- the guard rule for empty remote snapshots

Replication is last-writer-wins on the whole snapshot: there is no
per-field merge and no logical clock, so two devices editing at the same
time can overwrite each other's unseen changes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from swiftrun._redact import mask_key
from swiftrun._transport import BlobTransport
from swiftrun.config import SwiftRunConfig
from swiftrun.exceptions import SwiftRunError
from swiftrun.models.booking import Booking
from swiftrun.session import SyncSession, SyncState, SyncStatus
from swiftrun.state.policy import RemoteDecision, decide_remote
from swiftrun.state.snapshot import decode_snapshot, encode_snapshot


class PollOutcome(StrEnum):
    SKIPPED = "skipped"
    """No session, or another network operation was in flight."""
    UNCHANGED = "unchanged"
    ADOPTED = "adopted"
    GUARDED = "guarded"
    """Remote was empty while local was not; local was re-pushed instead."""
    DISCARDED = "discarded"
    """Result arrived after a disconnect or a local mutation and was ignored."""
    FAILED = "failed"


class SyncEngine:
    def __init__(
        self,
        *,
        config: SwiftRunConfig,
        transport: BlobTransport,
        snapshot: Callable[[], list[Booking]],
        adopt: Callable[[list[Booking]], None],
        on_status: Callable[[SyncStatus], None] | None = None,
        on_key_change: Callable[[str | None], None] | None = None,
        on_guard: Callable[[list[Booking]], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._snapshot = snapshot
        self._adopt = adopt
        self._on_status = on_status
        self._on_key_change = on_key_change
        self._on_guard = on_guard
        self._logger = logger or logging.getLogger(__name__)

        self._state = SyncState.DISCONNECTED
        self._session: SyncSession | None = None
        self._last_error: str | None = None
        self._guarded_overwrites = 0

        # One network operation at a time per engine.
        self._lock = asyncio.Lock()
        # Bumped on connect/disconnect; results from an older generation are dropped.
        self._generation = 0
        # Bumped on every local mutation; a poll that straddles one is dropped.
        self._local_revision = 0

        self._poll_task: asyncio.Task[None] | None = None
        self._queued_push: asyncio.Task[bool] | None = None
        self._push_tasks: set[asyncio.Task[bool]] = set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def session(self) -> SyncSession | None:
        return self._session

    @property
    def sync_key(self) -> str | None:
        return self._session.sync_key if self._session is not None else None

    @property
    def last_error(self) -> str | None:
        if self._session is not None:
            return self._session.last_error
        return self._last_error

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @property
    def guarded_overwrites(self) -> int:
        return self._guarded_overwrites

    def status(self) -> SyncStatus:
        return SyncStatus(
            state=self._state,
            sync_key=self.sync_key,
            last_error=self.last_error,
            in_flight=self.in_flight,
            guarded_overwrites=self._guarded_overwrites,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _notify_status(self) -> None:
        if self._on_status is None:
            return
        try:
            self._on_status(self.status())
        except Exception:
            self._logger.debug("Sync status callback failed", exc_info=True)

    def _set_state(self, state: SyncState) -> None:
        if state != self._state:
            self._logger.info("Sync state %s -> %s", self._state.value, state.value)
            self._state = state
        self._notify_status()

    def _notify_key(self, key: str | None) -> None:
        if self._on_key_change is None:
            return
        try:
            self._on_key_change(key)
        except Exception:
            self._logger.warning("Storing sync key failed", exc_info=True)

    def _record_error(self, session: SyncSession | None, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        if session is not None:
            session.last_error = message
        else:
            self._last_error = message
        self._notify_status()

    def _connect(self, key: str) -> SyncSession:
        self._generation += 1
        self._session = SyncSession(sync_key=key)
        self._last_error = None
        self._set_state(SyncState.CONNECTED)
        self._notify_key(key)
        self._start_polling()
        return self._session

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def bootstrap(self) -> str | None:
        """Create a remote blob seeded with the local snapshot.

        Returns the new sync key, or ``None`` on failure (state ``ERROR``,
        no key kept, local editing unaffected).
        """
        if self._state == SyncState.CONNECTED and self._session is not None:
            return self._session.sync_key

        self._generation += 1
        generation = self._generation
        self._session = None
        self._set_state(SyncState.BOOTSTRAPPING)

        revision = self._local_revision
        payload = encode_snapshot(self._snapshot())
        try:
            async with self._lock:
                key = await self._transport.create_blob(payload)
        except SwiftRunError as exc:
            if generation == self._generation:
                self._logger.warning("Sync bootstrap failed: %s", exc)
                self._last_error = str(exc)
                self._set_state(SyncState.ERROR)
            return None

        if generation != self._generation:
            return None

        self._connect(key)
        self._logger.info("Sync session created (%s)", mask_key(key))
        if revision != self._local_revision:
            self.request_push(local_change=False)
        return key

    async def join(self, key: str) -> bool:
        """Attach to an existing blob and adopt its snapshot.

        On failure the engine stays ``DISCONNECTED`` with ``last_error`` set.
        """
        key = key.strip()
        if self._state == SyncState.CONNECTED:
            await self._stop_tasks()
            self._session = None
        self._generation += 1
        generation = self._generation
        self._session = None

        if not key:
            self._last_error = "sync key is empty"
            self._set_state(SyncState.DISCONNECTED)
            return False

        try:
            async with self._lock:
                raw = await self._transport.fetch_blob(key)
            remote = decode_snapshot(raw)
        except SwiftRunError as exc:
            if generation == self._generation:
                self._logger.warning("Joining sync session %s failed: %s", mask_key(key), exc)
                self._last_error = str(exc)
                self._set_state(SyncState.DISCONNECTED)
            return False

        if generation != self._generation:
            return False

        # The operator chose this key, so even an empty blob wins here.
        # The empty-remote guard applies to polling only.
        decision = decide_remote(self._snapshot(), remote)
        self._connect(key)
        self._logger.info("Joined sync session %s (%d bookings)", mask_key(key), len(remote))
        if decision != RemoteDecision.UNCHANGED:
            self._adopt(remote)
        return True

    async def disconnect(self) -> None:
        """Forget the sync key locally. Remote data is left untouched."""
        key = self.sync_key
        await self._stop_tasks()
        self._session = None
        self._last_error = None
        self._set_state(SyncState.DISCONNECTED)
        self._notify_key(None)
        if key:
            self._logger.info("Sync session %s disconnected", mask_key(key))

    async def close(self) -> None:
        """Stop background work but keep the stored key for the next start."""
        await self.drain()
        await self._stop_tasks()
        self._session = None
        self._set_state(SyncState.DISCONNECTED)

    async def _stop_tasks(self) -> None:
        self._generation += 1
        tasks: list[asyncio.Task[Any]] = list(self._push_tasks)
        current = asyncio.current_task()
        if self._poll_task is not None:
            tasks.append(self._poll_task)
            self._poll_task = None
        self._push_tasks.clear()
        self._queued_push = None
        for task in tasks:
            if task is current or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    async def push(self) -> bool:
        """Write the current snapshot to the remote blob.

        Failure sets ``last_error`` and keeps the session connected; the
        next mutation or poll retries.
        """
        session = self._session
        if session is None or self._state != SyncState.CONNECTED:
            return False
        generation = self._generation
        async with self._lock:
            if self._queued_push is asyncio.current_task():
                self._queued_push = None
            if generation != self._generation or self._session is not session:
                return False
            return await self._push_locked(session)

    async def _push_locked(self, session: SyncSession) -> bool:
        # Snapshot taken at send time so the newest state always wins.
        payload = encode_snapshot(self._snapshot())
        session.in_flight = True
        try:
            await self._transport.overwrite_blob(session.sync_key, payload)
        except SwiftRunError as exc:
            self._logger.warning("Sync push failed: %s", exc)
            self._record_error(session, exc)
            return False
        finally:
            session.in_flight = False
        if session.last_error is not None:
            session.last_error = None
            self._notify_status()
        return True

    def request_push(self, *, local_change: bool = True) -> asyncio.Task[bool] | None:
        """Schedule a push after a local mutation.

        A push that is still waiting for the network lock already carries
        the newest snapshot when it runs, so repeated requests coalesce
        onto it.
        """
        if local_change:
            self._local_revision += 1
        if self._state != SyncState.CONNECTED:
            return None
        if self._queued_push is not None and not self._queued_push.done():
            return self._queued_push
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug("No running event loop; push deferred to next poll")
            return None
        task = loop.create_task(self.push(), name="swiftrun-sync-push")
        self._queued_push = task
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for scheduled pushes to finish."""
        while True:
            pending = [task for task in self._push_tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Poll
    # ------------------------------------------------------------------

    async def _guard(self, session: SyncSession) -> None:
        # Caller holds the network lock.
        self._guarded_overwrites += 1
        local = self._snapshot()
        self._logger.warning(
            "Remote snapshot for %s is empty while %d bookings exist locally; re-pushing local copy",
            mask_key(session.sync_key),
            len(local),
        )
        if self._on_guard is not None:
            try:
                self._on_guard(local)
            except Exception:
                self._logger.debug("Guard callback failed", exc_info=True)
        await self._push_locked(session)

    async def poll_once(self) -> PollOutcome:
        """Fetch the remote snapshot once and reconcile it with local state."""
        session = self._session
        if session is None or self._state != SyncState.CONNECTED:
            return PollOutcome.SKIPPED
        if self._lock.locked():
            return PollOutcome.SKIPPED

        generation = self._generation
        revision = self._local_revision
        async with self._lock:
            session.in_flight = True
            try:
                raw = await self._transport.fetch_blob(session.sync_key)
                remote = decode_snapshot(raw)
            except SwiftRunError as exc:
                if generation == self._generation:
                    self._logger.warning("Sync poll failed: %s", exc)
                    self._record_error(session, exc)
                return PollOutcome.FAILED
            finally:
                session.in_flight = False

            if generation != self._generation or self._session is not session:
                return PollOutcome.DISCARDED
            if revision != self._local_revision:
                # A local edit landed mid-fetch; its push will overwrite the remote.
                return PollOutcome.DISCARDED

            if session.last_error is not None:
                session.last_error = None
                self._notify_status()

            decision = decide_remote(self._snapshot(), remote)
            if decision == RemoteDecision.UNCHANGED:
                return PollOutcome.UNCHANGED
            if decision == RemoteDecision.GUARD:
                await self._guard(session)
                return PollOutcome.GUARDED

            self._logger.debug("Adopting remote snapshot (%d bookings)", len(remote))
            self._adopt(remote)
            return PollOutcome.ADOPTED

    def _start_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug("No running event loop; polling not started")
            return
        self._poll_task = loop.create_task(self._poll_loop(self._generation), name="swiftrun-sync-poll")

    async def _poll_loop(self, generation: int) -> None:
        while generation == self._generation and self._state == SyncState.CONNECTED:
            await asyncio.sleep(self._config.poll_interval)
            if generation != self._generation:
                break
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                self._logger.warning("Unexpected error in sync poll loop", exc_info=True)
