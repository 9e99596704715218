"""Sync engine bridging the local mirror and the remote backend.

Provides git-style pull/push operations:
- drain (push): replay queued local mutations against the remote, oldest first
- pull: download a collection from the remote into the local mirror

Local writes never wait on the network. Mutations schedule a debounced
drain; at most one drain pass runs at a time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from tqdm import tqdm

from ..config import SyncConfig
from ..exceptions import RemoteError, RemoteNotFoundError
from ..models.operations import Delete, Insert, PendingOperation, Update
from ..models.records import (
    BUDGET_CONFLICT_KEY,
    PROFILES,
    SYNCED_COLLECTIONS,
    strip_local_fields,
)

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from ..clients import RemoteClientProtocol
    from ..db.database import Database


def _log_background_failure(task: asyncio.Task) -> None:
    """Log the error of a background pass; nothing else awaits its result."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background sync pass failed: %s", exc, exc_info=exc)


@dataclass
class PullResult:
    """Result of a pull operation."""

    source: str  # collection name or 'profiles'
    fetched: int = 0  # Records fetched from remote
    inserted: int = 0
    updated: int = 0
    total: int = 0  # Total for the user after pull
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if pull was successful (no errors)."""
        return len(self.errors) == 0


@dataclass
class DrainResult:
    """Result of a drain (push) pass."""

    pending: int = 0  # Entries read from the queue
    succeeded: int = 0
    failed: int = 0
    dead_lettered: int = 0
    skipped_reason: str = ""  # Why the pass did not run, if it didn't
    errors: list[str] = field(default_factory=list)
    replayed_ids: list[int] = field(default_factory=list)  # Queue entry ids removed

    @property
    def ran(self) -> bool:
        return not self.skipped_reason

    @property
    def success(self) -> bool:
        """Check if all replays succeeded."""
        return self.failed == 0 and len(self.errors) == 0


class SyncEngine:
    """Owns sync state for one session: user, connectivity, in-flight pass.

    State machine:
    - Idle -> Draining when online, authenticated and the queue is non-empty.
    - Draining replays every queued entry in order; a failed entry stays
      queued (with backoff) and the pass moves on to the next one.
    - A trigger arriving mid-drain is remembered and schedules one more pass
      once the current pass finishes.
    """

    def __init__(
        self,
        db: Database,
        remote: RemoteClientProtocol,
        config: Optional[SyncConfig] = None,
        user_id: Optional[str] = None,
        online: bool = True,
    ):
        """Initialize sync engine.

        Args:
            db: Local mirror.
            remote: Remote client (real or mock).
            config: Debounce, timeout and retry settings.
            user_id: Authenticated user, if already known.
            online: Initial connectivity.
        """
        self._db = db
        self._remote = remote
        self._config = config or SyncConfig()
        self._user_id = user_id
        self._online = online
        self._sync_in_progress = False
        self._rerun_requested = False
        self._debounce_task: Optional[asyncio.Task] = None
        self._debounce_fired = False
        self._background: set[asyncio.Task] = set()

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    @property
    def has_scheduled_drain(self) -> bool:
        """True while a debounced drain is waiting to start."""
        task = self._debounce_task
        return task is not None and not task.done() and not self._debounce_fired

    def set_user(self, user_id: Optional[str]) -> None:
        """Set (or clear) the authenticated user."""
        self._user_id = user_id

    def set_online(self, online: bool) -> None:
        """Record a connectivity change; coming online schedules a drain."""
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Connection restored, scheduling sync")
            self.schedule_drain()
        elif was_online and not online:
            logger.info("Connection lost, working offline")

    # =========================================================================
    # Debounced trigger
    # =========================================================================

    def schedule_drain(self) -> None:
        """Request a background drain after the debounce delay.

        A new request within the window restarts the timer, so a burst of
        mutations produces a single pass. A pass that already started is
        never cancelled.
        """
        task = self._debounce_task
        if task is not None and not task.done() and not self._debounce_fired:
            task.cancel()
        self._debounce_fired = False
        task = asyncio.get_running_loop().create_task(self._delayed_drain())
        self._debounce_task = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(_log_background_failure)

    async def _delayed_drain(self) -> DrainResult:
        await asyncio.sleep(self._config.debounce_seconds)
        if asyncio.current_task() is self._debounce_task:
            self._debounce_fired = True
        return await self.drain()

    async def wait_scheduled(self) -> None:
        """Wait until every scheduled or running background pass is done."""
        while self._background:
            await asyncio.wait(set(self._background))

    async def cancel_scheduled(self) -> None:
        """Cancel a pending (not yet started) background pass."""
        task = self._debounce_task
        if self.has_scheduled_drain:
            task.cancel()
            await asyncio.wait({task})

    # =========================================================================
    # Push
    # =========================================================================

    async def drain(self) -> DrainResult:
        """Replay pending operations against the remote.

        Returns immediately (with ``skipped_reason`` set) when offline,
        signed out, or while another pass is running.

        Returns:
            DrainResult with statistics. Remote failures are recorded here
            and on the queue entry, never raised.
        """
        result = DrainResult()
        if not self._online:
            result.skipped_reason = "offline"
            return result
        if not self._user_id:
            result.skipped_reason = "not authenticated"
            return result
        if self._sync_in_progress:
            self._rerun_requested = True
            result.skipped_reason = "sync in progress"
            return result

        self._sync_in_progress = True
        try:
            operations = self._db.drain()
            result.pending = len(operations)
            if not operations:
                logger.debug("No pending operations")
                return result

            logger.info("Replaying %d pending operations", len(operations))
            for idx, op in enumerate(operations):
                logger.debug(
                    "Processing %s %s/%s (%d/%d)",
                    op.kind,
                    op.table,
                    op.record_id,
                    idx + 1,
                    len(operations),
                )
                try:
                    await asyncio.wait_for(
                        self._replay(op), timeout=self._config.remote_timeout_seconds
                    )
                except Exception as e:
                    if isinstance(e, asyncio.TimeoutError):
                        message = f"timed out after {self._config.remote_timeout_seconds}s"
                    else:
                        message = str(e) or type(e).__name__
                    result.failed += 1
                    result.errors.append(f"{op.kind} {op.table}/{op.record_id}: {message}")
                    if isinstance(e, (RemoteError, asyncio.TimeoutError)):
                        logger.warning(
                            "Replay FAILED for %s %s/%s, keeping in queue: %s",
                            op.kind,
                            op.table,
                            op.record_id,
                            message,
                        )
                    else:
                        logger.exception("Exception during replay of entry %s", op.entry_id)
                    dead = self._db.record_failure(
                        op.entry_id,
                        message,
                        max_attempts=self._config.max_attempts,
                        backoff_base=self._config.backoff_base_seconds,
                        backoff_max=self._config.backoff_max_seconds,
                    )
                    if dead:
                        result.dead_lettered += 1
                    continue

                self._db.remove(op.entry_id)
                result.succeeded += 1
                result.replayed_ids.append(op.entry_id)
                logger.debug("Replay SUCCESS for %s %s/%s", op.kind, op.table, op.record_id)

            logger.info(
                "Drain complete: %d succeeded, %d failed out of %d total",
                result.succeeded,
                result.failed,
                result.pending,
            )
        finally:
            self._sync_in_progress = False
            if self._rerun_requested:
                self._rerun_requested = False
                if self._online:
                    self.schedule_drain()
        return result

    async def _replay(self, op: PendingOperation) -> None:
        """Send one queued operation to the remote."""
        if isinstance(op, Delete):
            try:
                await self._remote.delete(op.table, op.record_id)
            except RemoteNotFoundError:
                logger.debug("DELETE %s/%s: already absent remotely", op.table, op.record_id)
            return

        record = self._db.get(op.table, op.record_id)
        if record is None:
            # Deleted locally after this entry was queued; its DELETE entry follows
            logger.debug("%s %s/%s: local record gone, skipping", op.kind, op.table, op.record_id)
            return

        payload = strip_local_fields(record)
        if isinstance(op, Insert):
            try:
                await self._remote.create(op.table, payload)
            except RemoteError as e:
                if e.status != 409:
                    raise
                # Already created by an earlier attempt whose ack was lost
                await self._remote.update(op.table, op.record_id, payload)
        elif isinstance(op, Update):
            await self._remote.update(op.table, op.record_id, payload)
        else:
            await self._remote.upsert(op.table, payload, BUDGET_CONFLICT_KEY)

        self._db.mark_synced(op.table, op.record_id, record["updated_at"])

    # =========================================================================
    # Pull
    # =========================================================================

    async def pull(self, collection: str) -> PullResult:
        """Pull one collection for the current user into the local mirror.

        Pulled rows are stored as synced and never queued. Errors are captured
        in the result.
        """
        result = PullResult(source=collection)
        if collection not in SYNCED_COLLECTIONS:
            result.errors.append(f"Cannot pull {collection}")
            return result
        if not self._user_id:
            result.errors.append("Not authenticated")
            return result

        try:
            records = await asyncio.wait_for(
                self._remote.fetch_all(collection, {"user_id": self._user_id}),
                timeout=self._config.remote_timeout_seconds,
            )
            result.fetched = len(records)
            logger.debug("Fetched %d %s from remote", len(records), collection)
            progress = tqdm(
                records,
                desc=f"Storing {collection}",
                unit="row",
                leave=False,
                disable=not self._config.show_progress,
            )
            result.inserted, result.updated = self._db.bulk_upsert(collection, progress)
            result.total = self._db.count(collection, self._user_id)
            logger.info(
                "Pull %s complete: fetched=%d, inserted=%d, updated=%d",
                collection,
                result.fetched,
                result.inserted,
                result.updated,
            )
        except Exception as e:
            result.errors.append(str(e) or type(e).__name__)
            logger.exception("Exception during pull of %s", collection)

        return result

    async def pull_profile(self) -> PullResult:
        """Pull the profile singleton of the current user."""
        result = PullResult(source=PROFILES)
        if not self._user_id:
            result.errors.append("Not authenticated")
            return result

        try:
            profile = await asyncio.wait_for(
                self._remote.fetch_profile(self._user_id),
                timeout=self._config.remote_timeout_seconds,
            )
            if profile:
                result.fetched = 1
                existed = self._db.get_profile(self._user_id) is not None
                self._db.save_profile({**profile, "id": self._user_id})
                if existed:
                    result.updated = 1
                else:
                    result.inserted = 1
            result.total = self._db.count(PROFILES, self._user_id)
        except Exception as e:
            result.errors.append(str(e) or type(e).__name__)
            logger.exception("Exception during profile pull")

        return result

    def get_status(self) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dict with connectivity, queue and per-collection statistics.
        """
        status: dict[str, Any] = {
            "user_id": self._user_id,
            "online": self._online,
            "sync_in_progress": self._sync_in_progress,
            "pending_operations": self._db.pending_count(),
            "dead_letters": len(self._db.get_dead_letters()),
            "collections": {},
        }
        if self._user_id:
            status["unsynced_records"] = self._db.count_unsynced(self._user_id)
            for collection in SYNCED_COLLECTIONS:
                status["collections"][collection] = self._db.count(collection, self._user_id)
        return status
