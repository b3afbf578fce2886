"""
In-memory directory of WhatsApp groups and their participants.

The directory is held as one immutable ``DirectorySnapshot``. A refresh builds
a brand new snapshot off to the side and publishes it with a single reference
assignment, so readers always see either the old picture or the new one, never
a mix. Only one refresh runs at a time; concurrent callers join it.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Protocol

from loguru import logger
from pydantic import ValidationError

from ledgerbot.errors import UpstreamUnavailable
from ledgerbot.models.schemas import (
    DirectorySnapshot,
    GatewayGroup,
    GroupRecord,
    GroupSummary,
    Participant,
)
from ledgerbot.utils.phone import normalize_phone

# Minimum pause between reader-triggered retries after a failed refresh
FAILURE_BACKOFF = timedelta(seconds=30)


class GroupSource(Protocol):
    async def list_groups(self) -> list[GatewayGroup]: ...

    async def fetch_group_roster(self, group_id: str) -> list[Participant]: ...


class GroupDirectoryCache:
    def __init__(
        self,
        source: GroupSource,
        ttl_seconds: int = 300,
        cache_file: str | None = None,
        roster_delay_seconds: float = 0.0,
        country_code: str = "55",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.source = source
        self.ttl = timedelta(seconds=ttl_seconds)
        self.cache_file = Path(cache_file) if cache_file else None
        self.roster_delay_seconds = roster_delay_seconds
        self.country_code = country_code
        self.clock = clock

        self._snapshot = DirectorySnapshot()
        self._inflight: asyncio.Task | None = None
        self._worker: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._last_failure_at: datetime | None = None

        if self.cache_file:
            self._load_from_disk()

    @property
    def snapshot(self) -> DirectorySnapshot:
        return self._snapshot

    def is_stale(self) -> bool:
        published_at = self._snapshot.published_at
        return published_at is None or self.clock() - published_at >= self.ttl

    # ── refresh ──

    async def refresh(self, force: bool = False) -> DirectorySnapshot:
        """Rebuild and publish the directory unless the current snapshot is still fresh.

        Raises UpstreamUnavailable when the group list cannot be fetched; the
        previous snapshot stays published in that case.
        """
        if not force and not self.is_stale():
            return self._snapshot
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._rebuild(), name="group-directory-rebuild")
        # Shielded so one impatient caller cannot cancel the refresh for everyone else
        return await asyncio.shield(self._inflight)

    async def _rebuild(self) -> DirectorySnapshot:
        logger.info("Refreshing group directory")
        try:
            groups = await self.source.list_groups()
        except UpstreamUnavailable:
            self._last_failure_at = self.clock()
            logger.error("Group list fetch failed; keeping snapshot from {}", self._snapshot.published_at)
            raise
        except Exception as e:
            self._last_failure_at = self.clock()
            logger.exception("Unexpected error fetching the group list: {}", e)
            raise UpstreamUnavailable("Não foi possível atualizar a lista de grupos.") from e

        records: dict[str, GroupRecord] = {}
        index: dict[str, set[str]] = defaultdict(set)
        for position, group in enumerate(groups):
            try:
                participants = await self.source.fetch_group_roster(group.group_id)
            except Exception as e:
                # Keep the group visible with whatever the list payload carried
                logger.warning(
                    "Roster fetch failed for group {} ({}); using listed participants", group.group_id, e
                )
                participants = group.participants

            phones = frozenset(
                phone
                for phone in (normalize_phone(p.phone, self.country_code) for p in participants)
                if phone
            )
            records[group.group_id] = GroupRecord(
                group_id=group.group_id, name=group.name, participant_phones=phones
            )
            for phone in phones:
                index[phone].add(group.group_id)

            if self.roster_delay_seconds and position < len(groups) - 1:
                await asyncio.sleep(self.roster_delay_seconds)

        snapshot = DirectorySnapshot(
            groups=records,
            index={phone: frozenset(ids) for phone, ids in index.items()},
            published_at=self.clock(),
        )
        self._snapshot = snapshot
        self._last_failure_at = None
        logger.info("Group directory published: {} groups, {} participants", len(records), len(index))
        self._save_to_disk(snapshot)
        return snapshot

    def _refresh_in_background(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            return
        if self._last_failure_at and self.clock() - self._last_failure_at < FAILURE_BACKOFF:
            return
        task = asyncio.create_task(self.refresh(), name="group-directory-background-refresh")
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Background directory refresh failed: {}", error)

    # ── readers ──

    async def lookup_groups_for(self, phone: str | None) -> list[GroupSummary]:
        """Groups whose roster contains phone, from the published snapshot only."""
        if self.is_stale():
            self._refresh_in_background()
        snapshot = self._snapshot
        normalized = normalize_phone(phone, self.country_code)
        if not normalized:
            return []
        group_ids = snapshot.index.get(normalized, frozenset())
        summaries = [snapshot.groups[gid].summary() for gid in group_ids if gid in snapshot.groups]
        return sorted(summaries, key=lambda g: (g.name, g.group_id))

    async def list_all_groups(self) -> list[GroupSummary]:
        if self.is_stale():
            self._refresh_in_background()
        snapshot = self._snapshot
        return sorted((g.summary() for g in snapshot.groups.values()), key=lambda g: (g.name, g.group_id))

    # ── lifecycle ──

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run_worker(), name="group-directory-worker")
            logger.info("Group directory worker started (every {}s)", int(self.ttl.total_seconds()))

    async def stop(self) -> None:
        tasks = [t for t in (self._worker, self._inflight, *self._background) if t and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._worker = None
        logger.info("Group directory worker stopped")

    async def _run_worker(self) -> None:
        while True:
            try:
                await self.refresh(force=True)
            except UpstreamUnavailable:
                logger.warning("Scheduled directory refresh failed; serving previous snapshot")
            except Exception as e:
                logger.exception("Unexpected error refreshing group directory: {}", e)
            await asyncio.sleep(self.ttl.total_seconds())

    # ── disk persistence ──

    def _save_to_disk(self, snapshot: DirectorySnapshot) -> None:
        if not self.cache_file:
            return
        try:
            self.cache_file.write_text(snapshot.model_dump_json(), encoding="utf-8")
        except OSError as e:
            logger.error("Could not write group cache to {}: {}", self.cache_file, e)

    def _load_from_disk(self) -> None:
        if not self.cache_file.exists():
            logger.info("No group cache on disk; starting empty")
            return
        try:
            self._snapshot = DirectorySnapshot.model_validate_json(self.cache_file.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error("Ignoring unreadable group cache {}: {}", self.cache_file, e)
            return
        logger.info("Group cache restored from disk: {} groups", len(self._snapshot.groups))
