from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from dashboard.data.tiers import PersistenceTier
from dashboard.errors import ConflictError, NotFoundError, SyncError, TransientIOError, ValidationError
from dashboard.models import SyncState

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    records: List[Any]
    offline: bool = False
    source: str = "remote"
    error: str | None = None


@dataclass
class RestoreReport:
    restored: List[str] = field(default_factory=list)
    pushed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    rejected: List[str] = field(default_factory=list)


class SyncCoordinator:
    """Keeps one collection of records consistent across three tiers.

    Every record key owns a single debounce timer slot and a monotonic request
    sequence. Responses tagged with a sequence older than the latest dispatched
    one for that key are discarded, and a save that lands after a newer edit
    leaves the record ``dirty`` instead of reporting it synced.

    A record is unsynced while its local revision is ahead of the last
    revision the remote confirmed. Only unsynced records outlive a remote
    load; everything else is replaced by the server copy.
    """

    def __init__(
        self,
        remote: PersistenceTier,
        durable: PersistenceTier,
        ephemeral: PersistenceTier,
        decode: Callable[[Any], Any],
        autosave_delay: float = 4.0,
        newest_first: bool = False,
        name: str = "records",
    ):
        self.remote = remote
        self.durable = durable
        self.ephemeral = ephemeral
        self.decode = decode
        self.autosave_delay = autosave_delay
        self.newest_first = newest_first
        self.name = name

        self._records: Dict[str, Any] = {}
        self._states: Dict[str, SyncState] = {}
        self._errors: Dict[str, str] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._dispatched: Dict[str, int] = {}
        self._revisions: Dict[str, int] = {}
        self._confirmed: Dict[str, int] = {}
        self._inflight: set[asyncio.Task] = set()
        self.offline = False

    # -- reads -----------------------------------------------------------

    def key_of(self, record) -> str:
        return str(getattr(record, self.durable.key_field))

    def records(self) -> list:
        ordered = sorted(self._records)
        if self.newest_first:
            ordered.reverse()
        return [self._records[key] for key in ordered]

    def get(self, key):
        return self._records.get(str(key))

    def state(self, key) -> SyncState:
        return self._states.get(str(key), SyncState.CLEAN)

    def last_error(self, key) -> str | None:
        return self._errors.get(str(key))

    def pending(self) -> list[str]:
        return sorted(self._timers)

    def is_unsynced(self, key) -> bool:
        key = str(key)
        return self._revisions.get(key, 0) > self._confirmed.get(key, 0)

    # -- internals -------------------------------------------------------

    def _coerce(self, record):
        if isinstance(record, dict):
            return self.decode(record)
        return record

    def _set_state(self, key: str, state: SyncState, error: str | None = None) -> None:
        self._states[key] = state
        if error:
            self._errors[key] = error
        elif state in (SyncState.SYNCED, SyncState.CLEAN):
            self._errors.pop(key, None)

    def _cancel_timer(self, key: str) -> bool:
        handle = self._timers.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def _next_sequence(self, key: str) -> int:
        sequence = self._dispatched.get(key, 0) + 1
        self._dispatched[key] = sequence
        return sequence

    def _is_latest(self, key: str, sequence: int) -> bool:
        return self._dispatched.get(key) == sequence

    def _bump_revision(self, key: str) -> None:
        self._revisions[key] = self._revisions.get(key, 0) + 1

    def _confirm(self, key: str, revision: int | None = None) -> None:
        if revision is None:
            revision = self._revisions.get(key, 0)
        self._confirmed[key] = max(revision, self._confirmed.get(key, 0))

    def _dispatch(self, key: str):
        record = self._records[key]
        return self._next_sequence(key), record.to_payload(), self._revisions.get(key, 0)

    async def _store_locally(self, key: str, payload: dict) -> bool:
        stored = True
        try:
            await self.durable.put(payload)
        except TransientIOError as exc:
            stored = False
            logger.error("Durable write failed for %s %s: %s", self.name, key, exc)
        await self.ephemeral.put(payload)
        return stored

    async def _push(self, key: str, sequence: int, payload: dict, revision: int, raise_errors: bool) -> SyncState:
        if not self._is_latest(key, sequence):
            logger.debug("Skipping superseded save of %s %s", self.name, key)
            return self.state(key)
        self._set_state(key, SyncState.SAVING)
        await self._store_locally(key, payload)

        try:
            response = await self.remote.put(payload)
        except TransientIOError as exc:
            logger.warning("Remote save of %s %s failed, kept locally: %s", self.name, key, exc)
            if self._is_latest(key, sequence):
                self._set_state(key, SyncState.OFFLINE, str(exc))
                self.offline = True
            return self.state(key)
        except (ConflictError, ValidationError) as exc:
            if self._is_latest(key, sequence):
                self._set_state(key, SyncState.DIRTY, str(exc))
            if raise_errors:
                raise
            logger.error("Remote rejected %s %s: %s", self.name, key, exc)
            return self.state(key)

        if not self._is_latest(key, sequence):
            logger.info("Discarding stale response for %s %s (seq %s)", self.name, key, sequence)
            return self.state(key)

        self.offline = False
        self._confirm(key, revision)
        if self._revisions.get(key, 0) != revision:
            self._set_state(key, SyncState.DIRTY)
            return self.state(key)
        if isinstance(response, dict):
            try:
                self._records[key] = self.decode(response)
            except ValidationError as exc:
                logger.warning("Ignoring undecodable response for %s %s: %s", self.name, key, exc)
        self._set_state(key, SyncState.SYNCED)
        return self.state(key)

    def _fire_autosave(self, key: str) -> None:
        self._timers.pop(key, None)
        if key not in self._records:
            return
        sequence, payload, revision = self._dispatch(key)
        task = asyncio.get_running_loop().create_task(
            self._push(key, sequence, payload, revision, raise_errors=False)
        )
        self._inflight.add(task)
        task.add_done_callback(self._autosave_done)

    def _autosave_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Autosave of %s crashed", self.name, exc_info=exc)

    # -- writes ----------------------------------------------------------

    def edit(self, record):
        record = self._coerce(record)
        key = self.key_of(record)
        self._records[key] = record
        self._bump_revision(key)
        self._set_state(key, SyncState.DIRTY)
        self.schedule_autosave(key)
        return record

    def schedule_autosave(self, key) -> None:
        key = str(key)
        if key not in self._records:
            raise NotFoundError(f"No {self.name} record {key}")
        self._cancel_timer(key)
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self.autosave_delay, self._fire_autosave, key)

    async def manual_save(self, key, record=None) -> SyncState:
        if record is not None:
            record = self._coerce(record)
            key = self.key_of(record)
            self._records[key] = record
            self._bump_revision(key)
        key = str(key)
        if key not in self._records:
            raise NotFoundError(f"No {self.name} record {key}")
        self._cancel_timer(key)
        sequence, payload, revision = self._dispatch(key)
        return await self._push(key, sequence, payload, revision, raise_errors=True)

    async def adopt(self, record, state: SyncState = SyncState.SYNCED):
        record = self._coerce(record)
        key = self.key_of(record)
        self._cancel_timer(key)
        self._next_sequence(key)
        self._records[key] = record
        self._bump_revision(key)
        if state in (SyncState.SYNCED, SyncState.CLEAN):
            self._confirm(key)
        await self._store_locally(key, record.to_payload())
        self._set_state(key, state)
        return record

    async def delete(self, key) -> bool:
        key = str(key)
        self._cancel_timer(key)
        self._next_sequence(key)
        self._records.pop(key, None)
        self._states.pop(key, None)
        self._errors.pop(key, None)
        self._confirm(key)

        try:
            await self.durable.delete(key)
        except TransientIOError as exc:
            logger.error("Durable delete failed for %s %s: %s", self.name, key, exc)
        await self.ephemeral.delete(key)

        try:
            await self.remote.delete(key)
        except SyncError as exc:
            logger.warning("Remote delete of %s %s failed, local copies removed: %s", self.name, key, exc)
            return False
        return True

    async def flush(self) -> None:
        keys = list(self._timers)
        for key in keys:
            self._cancel_timer(key)
        for key in keys:
            if key not in self._records:
                continue
            sequence, payload, revision = self._dispatch(key)
            await self._push(key, sequence, payload, revision, raise_errors=False)

    async def drain(self) -> None:
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # -- loading ---------------------------------------------------------

    def _decode_all(self, raw_records, source: str) -> Dict[str, Any]:
        decoded = {}
        for raw in raw_records:
            try:
                record = self.decode(raw)
            except ValidationError as exc:
                logger.warning("Skipping invalid %s record from %s: %s", self.name, source, exc)
                continue
            decoded[self.key_of(record)] = record
        return decoded

    async def load(self) -> LoadResult:
        await self.flush()
        await self.drain()
        try:
            raw_records = await self.remote.get_all()
        except SyncError as exc:
            logger.warning("Remote load of %s failed, using local copy: %s", self.name, exc)
            return await self._load_local(str(exc))

        remote_records = self._decode_all(raw_records, "remote")
        unsynced = {
            key: record
            for key, record in self._records.items()
            if self.is_unsynced(key)
        }
        for key, record in remote_records.items():
            if key in unsynced:
                continue
            await self._store_locally(key, record.to_payload())
            self._confirm(key)
        await self._prune_local(set(remote_records) | set(unsynced))

        self._records = dict(remote_records)
        self._states = {key: SyncState.CLEAN for key in remote_records}
        self._errors = {}
        for key, record in unsynced.items():
            self._records[key] = record
            self._set_state(key, SyncState.DIRTY)
            self.schedule_autosave(key)
        self.offline = False
        return LoadResult(self.records(), offline=False, source="remote")

    async def _prune_local(self, keep: set) -> None:
        """Drop local copies of records the remote no longer has."""
        try:
            durable_keys = _keys_of(self.durable, await self.durable.get_all())
        except TransientIOError as exc:
            logger.error("Durable scan of %s failed, stale copies kept: %s", self.name, exc)
            durable_keys = set()
        ephemeral_keys = _keys_of(self.ephemeral, await self.ephemeral.get_all())

        for key in sorted(durable_keys - keep):
            logger.info("Removing %s %s, gone from remote", self.name, key)
            try:
                await self.durable.delete(key)
            except TransientIOError as exc:
                logger.error("Durable delete failed for %s %s: %s", self.name, key, exc)
        for key in sorted(ephemeral_keys - keep):
            await self.ephemeral.delete(key)

    async def _load_local(self, error: str) -> LoadResult:
        source = "durable"
        try:
            raw_records = await self.durable.get_all()
        except TransientIOError as exc:
            logger.error("Durable load of %s failed: %s", self.name, exc)
            raw_records = []
        if not raw_records:
            raw_records = await self.ephemeral.get_all()
            source = "ephemeral" if raw_records else "empty"

        records = self._decode_all(raw_records, source)
        previous = self._states
        for key, record in self._records.items():
            if self.is_unsynced(key):
                records[key] = record
        self._records = records
        self._states = {
            key: previous.get(key, SyncState.OFFLINE) if self.is_unsynced(key) else SyncState.CLEAN
            for key in records
        }
        self.offline = True
        return LoadResult(self.records(), offline=True, source=source, error=error)

    # -- bulk import -----------------------------------------------------

    async def restore(self, imported) -> RestoreReport:
        report = RestoreReport()
        accepted = []
        for raw in imported or []:
            try:
                record = self._coerce(raw)
            except ValidationError as exc:
                report.rejected.append(str(exc))
                continue
            key = self.key_of(record)
            self._cancel_timer(key)
            self._next_sequence(key)
            self._records[key] = record
            self._bump_revision(key)
            self._set_state(key, SyncState.DIRTY)
            payload, revision = record.to_payload(), self._revisions[key]
            if not await self._store_locally(key, payload):
                report.failed[key] = "durable write failed"
            report.restored.append(key)
            accepted.append((key, payload, revision))

        for key, payload, revision in accepted:
            sequence = self._next_sequence(key)
            try:
                await self.remote.put(payload)
            except SyncError as exc:
                logger.warning("Restore push of %s %s failed: %s", self.name, key, exc)
                report.failed[key] = str(exc)
                if self._is_latest(key, sequence):
                    self._set_state(key, SyncState.OFFLINE, str(exc))
                continue
            report.pushed.append(key)
            if not self._is_latest(key, sequence):
                continue
            self._confirm(key, revision)
            if self._revisions.get(key, 0) != revision:
                self._set_state(key, SyncState.DIRTY)
            else:
                self._set_state(key, SyncState.SYNCED)
        return report


def _keys_of(tier: PersistenceTier, raw_records) -> set:
    return {
        str(raw[tier.key_field])
        for raw in raw_records
        if isinstance(raw, dict) and raw.get(tier.key_field) is not None
    }
