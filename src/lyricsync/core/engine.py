"""Sync engine: track changes, lyric lookup and line/progress scheduling.

All engine state is owned by the event loop that runs it. Mutations only
happen in handlers and loop steps executed on that loop, so there is at
most one writer at a time. Consumers read ``engine.feed`` or subscribe
to it for per-field updates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Callable, Protocol

from lyricsync.core import events
from lyricsync.core.config import SyncConfig
from lyricsync.core.events import ChangeFeed
from lyricsync.core.exceptions import CacheIOError
from lyricsync.core.models import (
    ErrorKind,
    LyricsState,
    NotFoundReason,
    PlaybackState,
    Timeline,
    Track,
)
from lyricsync.core.scheduler import GuardedLoop
from lyricsync.player.source import NowPlayingSource
from lyricsync.providers.base import SearchQuery
from lyricsync.providers.search import SearchOutcome
from lyricsync.ranking.merge import order_for_selection, select_effective, with_quality
from lyricsync.storage.cache import LyricsCache
from lyricsync.sync.locator import locate_line
from lyricsync.sync.progress import calculate_progress

logger = logging.getLogger(__name__)


class Searcher(Protocol):
    async def search(self, query: SearchQuery) -> SearchOutcome: ...


class LyricsEngine:
    """Keeps the displayed lyric line and highlight progress in step with playback.

    Lifecycle: ``await start()`` to attach to the now-playing source,
    ``await stop()`` to cancel every loop and pending task.
    """

    def __init__(
        self,
        cache: LyricsCache,
        searcher: Searcher,
        source: NowPlayingSource | None = None,
        config: SyncConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cache = cache
        self.searcher = searcher
        self.source = source
        self.config = config or SyncConfig()
        self._clock = clock

        self.track = Track.empty()
        self.timeline: Timeline | None = None
        self.line_index: int | None = None
        self.progress = 0.0
        self.playback_state = PlaybackState()
        self.is_searching = False
        self.candidates: list[Timeline] = []
        self.lyrics_state = LyricsState.idle()

        self.feed = ChangeFeed(
            {
                events.TRACK: self.track,
                events.PLAYBACK_STATE: self.playback_state,
                events.PROGRESS: self.progress,
                events.IS_SEARCHING: False,
                events.CANDIDATES: [],
                events.LYRICS_STATE: self.lyrics_state,
            }
        )

        self._line_loop = GuardedLoop("line-loop", error_delay=self.config.line_poll_interval)
        self._progress_loop = GuardedLoop(
            "progress-loop", error_delay=self.config.progress_interval
        )
        self._work_epoch = 0
        self._work_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._stopped = False

    # --- lifecycle ---

    async def start(self) -> None:
        if self.source is None:
            return
        self.source.on_track_changed = self.handle_track_changed
        self.source.on_playback_changed = self.handle_playback_changed
        await self.source.start()

    async def stop(self) -> None:
        """Cancel scheduling and pending work, flush background writes, close the feed."""
        if self._stopped:
            return
        self._stopped = True
        if self.source is not None:
            self.source.on_track_changed = None
            self.source.on_playback_changed = None
            await self.source.stop()
        self._cancel_loops()
        self._cancel_work()
        await self.settle()
        self.feed.close()

    async def settle(self) -> None:
        """Wait for the current lookup/search and pending cache writes."""
        if self._work_task is not None:
            try:
                await self._work_task
            except asyncio.CancelledError:
                pass
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # --- state setters (each publishes one field) ---

    def _set_track(self, track: Track) -> None:
        self.track = track
        self.feed.publish(events.TRACK, track)

    def _set_timeline(self, timeline: Timeline | None) -> None:
        self.timeline = timeline
        self.feed.publish(events.TIMELINE, timeline)

    def _set_line_index(self, index: int | None) -> None:
        self.line_index = index
        self.feed.publish(events.LINE_INDEX, index)

    def _set_progress(self, progress: float) -> None:
        self.progress = progress
        self.feed.publish(events.PROGRESS, progress)

    def _set_playback_state(self, state: PlaybackState) -> None:
        self.playback_state = state
        self.feed.publish(events.PLAYBACK_STATE, state)

    def _set_searching(self, searching: bool) -> None:
        self.is_searching = searching
        self.feed.publish(events.IS_SEARCHING, searching)

    def _set_candidates(self, candidates: list[Timeline]) -> None:
        self.candidates = candidates
        self.feed.publish(events.CANDIDATES, candidates)

    def _set_lyrics_state(self, state: LyricsState) -> None:
        self.lyrics_state = state
        self.feed.publish(events.LYRICS_STATE, state)

    # --- background work ---

    def _cancel_work(self) -> None:
        self._work_epoch += 1
        if self._work_task is not None and not self._work_task.done():
            self._work_task.cancel()

    def _spawn_work(self, make_coro: Callable[[int], object]) -> None:
        """Supersede any running lookup/search with a new one."""
        self._cancel_work()
        epoch = self._work_epoch

        async def run() -> None:
            try:
                await make_coro(epoch)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Lyrics lookup failed")
                if self._is_current_work(epoch):
                    self._set_searching(False)

        self._work_task = asyncio.get_running_loop().create_task(run())

    def _is_current_work(self, epoch: int) -> bool:
        return epoch == self._work_epoch

    def _store_if_current(self, epoch: int, timeline: Timeline) -> bool:
        """Cache a search result unless its search was superseded.

        Runs in a worker thread, which cancelling the search does not stop.
        """
        if not self._is_current_work(epoch):
            return False
        self.cache.put(timeline)
        return True

    def _persist(self, action: Callable[[], object], what: str) -> None:
        """Run a cache write in a worker thread without waiting for it."""

        async def run() -> None:
            try:
                # FIFO lock: writes land in the order they were requested.
                async with self._write_lock:
                    await asyncio.to_thread(action)
            except CacheIOError as e:
                logger.warning("Cache write failed (%s): %s", what, e)

        task = asyncio.get_running_loop().create_task(run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # --- event handlers ---

    def handle_track_changed(self, track: Track) -> None:
        if self._stopped:
            return
        logger.info("Track changed: %s - %s", track.title, track.artist)

        if self.timeline is not None:
            held = self.timeline
            self._persist(lambda: self.cache.put(held), f"flush {held.id}")

        self._cancel_loops()
        self._cancel_work()
        self._set_track(track)
        self._set_timeline(None)
        self._set_line_index(None)
        self._set_progress(0.0)
        self._set_candidates([])
        self._set_searching(False)

        if track.is_empty:
            logger.debug("Track is empty, clearing lyrics")
            self._set_lyrics_state(LyricsState.idle())
            return

        self._spawn_work(lambda epoch: self._load_track(track, epoch))

    def handle_playback_changed(self, state: PlaybackState) -> None:
        if self._stopped:
            return
        self._set_playback_state(state)
        if state.is_playing:
            self._schedule()
        else:
            self._cancel_loops()
            self._set_progress(0.0)

    # --- lookup and search ---

    def _read_cache(self, track_id: str) -> tuple[bool, list[Timeline], str | None]:
        return (
            self.cache.is_marked_no_lyrics(track_id),
            self.cache.get_ordered(track_id),
            self.cache.get_override(track_id),
        )

    async def _load_track(self, track: Track, epoch: int) -> None:
        try:
            # Reads wait for queued writes so no half-written entry is seen.
            async with self._write_lock:
                marked, cached, override = await asyncio.to_thread(self._read_cache, track.id)
        except CacheIOError as e:
            logger.warning("Cache lookup failed for %s, searching instead: %s", track.id, e)
            marked, cached, override = False, [], None
        if not self._is_current_work(epoch):
            return

        if marked:
            self._set_lyrics_state(LyricsState.not_found(NotFoundReason.USER_MARKED))
            return

        if cached:
            logger.info("Found %d cached candidates for %s", len(cached), track.id)
            self._set_candidates(cached)
            self._apply_timeline(select_effective(cached, override))
            return

        if not track.title.strip():
            self._set_lyrics_state(LyricsState.not_found(NotFoundReason.INCOMPLETE_TRACK_INFO))
            return

        logger.debug("No cached lyrics for %s, starting search", track.id)
        await self._search(track, epoch)

    async def _search(self, track: Track, epoch: int) -> None:
        self._set_searching(True)
        self._set_lyrics_state(LyricsState.searching())
        try:
            query = SearchQuery(
                title=track.title,
                artist=track.artist,
                duration=track.duration or None,
                track_id=track.id,
            )
            try:
                outcome = await self.searcher.search(query)
            except Exception:
                logger.exception("Search failed for %s", track.id)
                outcome = SearchOutcome(provider_count=1, failures={"search": "failed"})
            if not self._is_current_work(epoch):
                logger.debug("Discarding superseded search results for %s", track.id)
                return

            scored = [with_quality(c) for c in outcome.candidates]
            for timeline in scored:
                try:
                    async with self._write_lock:
                        await asyncio.to_thread(self._store_if_current, epoch, timeline)
                except CacheIOError as e:
                    logger.warning("Could not cache candidate %s: %s", timeline.id, e)
                if not self._is_current_work(epoch):
                    return

            try:
                async with self._write_lock:
                    known = await asyncio.to_thread(self.cache.get_ordered, track.id)
            except CacheIOError as e:
                logger.warning("Cache read failed after search: %s", e)
                known = []
            if not self._is_current_work(epoch):
                return
            # Keep in-memory results visible even if the cache could not store them.
            known_ids = {t.id for t in known}
            candidates = known + [t for t in scored if t.id not in known_ids]
            self._set_candidates(order_for_selection(candidates, self.cache.get_override(track.id)))

            if self.timeline is not None:
                self._set_lyrics_state(LyricsState.found())
                return
            if not candidates:
                if outcome.all_unparseable:
                    self._set_lyrics_state(LyricsState.failed(ErrorKind.PARSE))
                elif outcome.all_failed:
                    self._set_lyrics_state(LyricsState.failed(ErrorKind.NETWORK))
                else:
                    self._set_lyrics_state(LyricsState.not_found(NotFoundReason.SEARCH_FAILED))
                return
            self._apply_timeline(self.candidates[0])
        finally:
            if self._is_current_work(epoch):
                self._set_searching(False)

    def _apply_timeline(self, timeline: Timeline | None) -> None:
        self._set_timeline(timeline)
        if timeline is None:
            return
        self._set_lyrics_state(LyricsState.found())
        self._recompute()
        self._schedule()

    # --- user operations ---

    def select_candidate(self, timeline: Timeline) -> None:
        """Use ``timeline`` for the current track and remember the choice."""
        selected = replace(timeline, metadata=replace(timeline.metadata, is_user_selected=True))
        logger.info("User selected lyrics %s for %s", selected.id, selected.track_id)
        self._cancel_loops()
        self._set_line_index(None)
        self._set_progress(0.0)
        self._persist(lambda: self.cache.set_override(selected), f"override {selected.id}")
        self._set_candidates(
            order_for_selection(
                [selected if t.id == selected.id else t for t in self.candidates], selected.id
            )
        )
        self._apply_timeline(selected)

    def clear_override(self) -> None:
        """Drop the user's pick and fall back to the best-quality candidate."""
        if self.track.is_empty or not self.candidates:
            return
        track_id = self.track.id
        self._persist(lambda: self.cache.clear_override(track_id), f"clear override {track_id}")
        candidates = [
            replace(t, metadata=replace(t.metadata, is_user_selected=False))
            for t in self.candidates
        ]
        self._set_candidates(order_for_selection(candidates))
        best = select_effective(candidates)
        if self.timeline is not None and best is not None and best.id == self.timeline.id:
            self._set_timeline(best)
            return
        self._cancel_loops()
        self._set_line_index(None)
        self._set_progress(0.0)
        self._apply_timeline(best)

    def adjust_offset(self, delta_ms: int) -> None:
        """Shift the current timeline by ``delta_ms`` and re-locate the line at once."""
        if self.timeline is None:
            return
        adjusted = self.timeline.with_offset(self.timeline.offset_ms + delta_ms)
        self._set_timeline(adjusted)
        self._set_candidates([adjusted if t.id == adjusted.id else t for t in self.candidates])
        self._persist(lambda: self.cache.put(adjusted), f"offset {adjusted.id}")
        self._recompute()
        self._schedule()

    def search_more(self) -> None:
        """Search the providers again for the current track (also the retry action)."""
        if self.track.is_empty:
            return
        track = self.track
        self._spawn_work(lambda epoch: self._search(track, epoch))

    def mark_no_lyrics(self) -> None:
        if self.track.is_empty:
            return
        track_id = self.track.id
        self._cancel_work()
        self._cancel_loops()
        self._set_timeline(None)
        self._set_line_index(None)
        self._set_progress(0.0)
        self._set_searching(False)
        self._persist(lambda: self.cache.mark_no_lyrics(track_id), f"mark {track_id}")
        self._set_lyrics_state(LyricsState.not_found(NotFoundReason.USER_MARKED))

    def unmark_no_lyrics(self) -> None:
        if self.track.is_empty:
            return
        track = self.track
        self._persist(lambda: self.cache.unmark_no_lyrics(track.id), f"unmark {track.id}")
        self._spawn_work(lambda epoch: self._search(track, epoch))

    # --- scheduling ---

    def _adjusted_now(self, timeline: Timeline) -> float:
        return self.playback_state.current_position(self._clock()) + timeline.offset_seconds

    def _cancel_loops(self) -> None:
        self._line_loop.cancel()
        self._progress_loop.cancel()

    def _schedule(self) -> None:
        """(Re)start the line loop if there is something to follow."""
        if self.timeline is None or not self.playback_state.is_playing:
            self._cancel_loops()
            return
        self._line_loop.start(self._line_step)
        self._restart_progress()

    def _recompute(self) -> None:
        """Locate the active line immediately, outside the loops."""
        timeline = self.timeline
        if timeline is None:
            return
        index = locate_line(timeline, self._adjusted_now(timeline))
        if index != self.line_index:
            self._set_line_index(index)
        if self.playback_state.is_playing:
            self._update_progress(timeline, index)
        elif self.progress != 0.0:
            # Progress stays at 0 while paused or stopped.
            self._set_progress(0.0)

    def _line_step(self, epoch: int) -> float | None:
        timeline = self.timeline
        if timeline is None or not self.playback_state.is_playing:
            return None

        now = self._adjusted_now(timeline)
        index = locate_line(timeline, now)
        if index != self.line_index:
            self._set_line_index(index)
            self._restart_progress()

        lines = timeline.lines
        upcoming = 0 if index is None else index + 1
        if upcoming < len(lines):
            return max(self.config.min_line_sleep, lines[upcoming].start - now)
        return self.config.line_poll_interval

    def _restart_progress(self) -> None:
        timeline = self.timeline
        index = self.line_index
        if timeline is None or index is None or not self.playback_state.is_playing:
            self._progress_loop.cancel()
            return

        # Captured per line so the next-line start matches the active line.
        line = timeline.lines[index]
        next_start = timeline.lines[index + 1].start if index + 1 < len(timeline.lines) else None

        def step(epoch: int) -> float | None:
            value = calculate_progress(
                line,
                self._adjusted_now(timeline),
                next_start,
                self.config.assumed_line_duration,
            )
            if value != self.progress:
                self._set_progress(value)
            return self.config.progress_interval

        self._progress_loop.start(step)

    def _update_progress(self, timeline: Timeline, index: int | None) -> None:
        if index is None:
            self._set_progress(0.0)
            return
        line = timeline.lines[index]
        next_start = timeline.lines[index + 1].start if index + 1 < len(timeline.lines) else None
        self._set_progress(
            calculate_progress(
                line, self._adjusted_now(timeline), next_start, self.config.assumed_line_duration
            )
        )
