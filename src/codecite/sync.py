"""Periodic repository polling.

Each tick resolves the head of every configured repository. Remote
repositories whose head has not moved are skipped; the ones that moved are
synced incrementally from the head indexed on the previous tick. Local
working trees have no reliable head to compare, so they get a full sync and
the content hash check keeps unchanged files cheap.
"""

import logging
import threading

from codecite.errors import SourceError
from codecite.indexer import Indexer
from codecite.indexer.models import SyncStats
from codecite.sources import LocalSourceHost, SourceHost

logger = logging.getLogger(__name__)


class SyncManager:
    """Polls source hosts on a daemon thread and keeps the index current."""

    def __init__(self, indexer: Indexer, sources: dict[str, SourceHost], interval: int):
        """
        Args:
            indexer: Indexer to sync into.
            sources: Repositories to poll, mapped to their source hosts.
            interval: Seconds between ticks. Must be > 0.
        """
        if interval <= 0:
            raise ValueError(f"Sync interval must be positive, got {interval}")

        self._indexer = indexer
        self._sources = sources
        self._interval = interval
        self._heads: dict[str, str] = {}
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def heads(self) -> dict[str, str]:
        """Head revision indexed per repository on the last successful sync."""
        return dict(self._heads)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Sync thread already running")
            return

        self._stopping.clear()
        self._wake.clear()
        self._thread = threading.Thread(target=self._loop, name="codecite-sync", daemon=True)
        self._thread.start()
        logger.info(
            "Sync manager started (interval: %ds, repos: %d)", self._interval, len(self._sources)
        )

    def stop(self) -> None:
        """Stop polling; waits for a sync in progress to finish."""
        if self._thread is None or not self._thread.is_alive():
            return

        self._stopping.set()
        self._wake.set()
        self._thread.join(timeout=self._interval + 5)
        if self._thread.is_alive():
            logger.warning("Sync thread did not stop cleanly")
        else:
            logger.info("Sync manager stopped")
        self._thread = None

    def trigger(self) -> None:
        """Run the next tick now instead of waiting for the interval."""
        self._wake.set()

    def run_once(self) -> dict[str, SyncStats]:
        """One tick over every repository. Returns stats of the repositories synced."""
        results: dict[str, SyncStats] = {}
        for repo, source in self._sources.items():
            if self._stopping.is_set():
                break
            try:
                head = source.resolve_revision(repo)
            except SourceError as e:
                logger.warning("Cannot resolve head of %s: %s", repo, e)
                continue

            local = isinstance(source, LocalSourceHost)
            previous = self._heads.get(repo)
            if not local and head == previous:
                logger.debug("Auto-sync %s: head unchanged at %s", repo, head)
                continue

            base = None if local else previous
            try:
                stats = self._indexer.sync_repository(source, repo, revision=head, base_revision=base)
            except SourceError as e:
                logger.warning("Auto-sync of %s failed: %s", repo, e)
                continue

            self._heads[repo] = head
            results[repo] = stats
            if stats.indexed or stats.deleted or stats.failed:
                logger.info("Auto-sync %s@%s: %s", repo, head, stats)
            else:
                logger.debug("Auto-sync %s: no changes detected", repo)
        return results

    def _loop(self) -> None:
        logger.debug("Sync loop started")
        while not self._stopping.is_set():
            # Sleep first; the initial index is done at server start
            self._wake.wait(timeout=self._interval)
            self._wake.clear()
            if self._stopping.is_set():
                break
            try:
                self.run_once()
            except Exception:
                logger.exception("Error during auto-sync")
        logger.debug("Sync loop stopped")
