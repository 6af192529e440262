"""End-to-end tests for the sync engine with a scripted source and a fake search."""

import asyncio

import pytest
from conftest import make_timeline

from lyricsync.core import events
from lyricsync.core.config import SyncConfig
from lyricsync.core.engine import LyricsEngine
from lyricsync.core.exceptions import CacheIOError
from lyricsync.core.models import (
    ErrorKind,
    LyricsStatus,
    NotFoundReason,
    ScoredCandidate,
    Track,
)
from lyricsync.player.source import ManualSource
from lyricsync.providers.search import SearchOutcome
from lyricsync.storage.cache import LyricsCache

FAST = SyncConfig(
    line_poll_interval=0.01,
    min_line_sleep=0.005,
    progress_interval=0.01,
    assumed_line_duration=0.1,
)

TRACK = Track(id="/music/sunny.mp3", title="Sunny Day", artist="Jay Chou", duration=269.0)


class FakeSearcher:
    """Returns canned candidates per title; ``gates`` hold a search until set."""

    def __init__(self):
        self.results: dict[str, list[ScoredCandidate]] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.queries = []
        self.fail = False
        self.error: BaseException | None = None
        self.outcome: SearchOutcome | None = None

    async def search(self, query):
        self.queries.append(query)
        gate = self.gates.get(query.title)
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        if self.outcome is not None:
            return self.outcome
        if self.fail:
            return SearchOutcome(provider_count=2, failures={"netease": "down", "qqmusic": "down"})
        return SearchOutcome(candidates=list(self.results.get(query.title, [])), provider_count=2)


def scored(track: Track, relevance: float, starts=(0.0, 5.0, 10.0)) -> ScoredCandidate:
    return ScoredCandidate(make_timeline(track_id=track.id, starts=starts), relevance)


@pytest.fixture
def searcher():
    return FakeSearcher()


@pytest.fixture
def source():
    return ManualSource()


@pytest.fixture
async def engine(cache, searcher, source):
    eng = LyricsEngine(cache, searcher, source, FAST)
    await eng.start()
    yield eng
    await eng.stop()


async def wait_for(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


class TestLookup:
    async def test_cached_lyrics_skip_search(self, engine, cache, searcher, source):
        cache.put(make_timeline(track_id=TRACK.id, quality=80))
        source.set_track(TRACK)
        await engine.settle()

        assert searcher.queries == []
        assert engine.lyrics_state.status is LyricsStatus.FOUND
        assert [ln.text for ln in engine.timeline.lines] == ["line 0", "line 1", "line 2"]
        assert engine.line_index == 0

    async def test_search_caches_and_applies_best(self, engine, cache, searcher, source):
        searcher.results[TRACK.title] = [
            scored(TRACK, 0.4),
            scored(TRACK, 0.9, starts=(1.0, 2.0)),
        ]
        source.set_track(TRACK)
        await engine.settle()

        (query,) = searcher.queries
        assert (query.title, query.artist, query.duration) == ("Sunny Day", "Jay Chou", 269.0)
        assert engine.timeline.metadata.quality == 90
        assert [t.metadata.quality for t in engine.candidates] == [90, 40]
        assert len(cache.get_all(TRACK.id)) == 2
        assert engine.lyrics_state.status is LyricsStatus.FOUND
        assert not engine.is_searching

    async def test_searching_is_published(self, engine, searcher, source):
        searcher.gates[TRACK.title] = asyncio.Event()
        source.set_track(TRACK)
        await wait_for(lambda: searcher.queries)

        assert engine.is_searching
        assert engine.lyrics_state.status is LyricsStatus.SEARCHING
        searcher.gates[TRACK.title].set()
        await engine.settle()
        assert not engine.is_searching

    async def test_all_providers_failing_is_a_network_error(self, engine, searcher, source):
        searcher.fail = True
        source.set_track(TRACK)
        await engine.settle()

        assert engine.lyrics_state.status is LyricsStatus.ERROR
        assert engine.lyrics_state.error is ErrorKind.NETWORK
        assert engine.lyrics_state.can_retry

    async def test_only_unparseable_lyrics_is_a_parse_error(self, engine, searcher, source):
        searcher.outcome = SearchOutcome(
            provider_count=2, parse_failures={"netease": "garbled", "qqmusic": "garbled"}
        )
        source.set_track(TRACK)
        await engine.settle()

        assert engine.lyrics_state.status is LyricsStatus.ERROR
        assert engine.lyrics_state.error is ErrorKind.PARSE
        assert not engine.lyrics_state.can_retry

    async def test_searcher_exception_is_a_network_error(self, engine, searcher, source):
        searcher.error = RuntimeError("boom")
        source.set_track(TRACK)
        await engine.settle()

        assert engine.lyrics_state.error is ErrorKind.NETWORK
        assert not engine.is_searching

    async def test_no_results(self, engine, searcher, source):
        source.set_track(TRACK)
        await engine.settle()

        assert engine.lyrics_state.status is LyricsStatus.NOT_FOUND
        assert engine.lyrics_state.reason is NotFoundReason.SEARCH_FAILED
        assert engine.timeline is None

    async def test_search_more_retries(self, engine, searcher, source):
        searcher.fail = True
        source.set_track(TRACK)
        await engine.settle()

        searcher.fail = False
        searcher.results[TRACK.title] = [scored(TRACK, 0.7)]
        engine.search_more()
        await engine.settle()

        assert len(searcher.queries) == 2
        assert engine.lyrics_state.status is LyricsStatus.FOUND
        assert engine.timeline.metadata.quality == 70

    async def test_marked_track_is_not_searched(self, engine, cache, searcher, source):
        cache.mark_no_lyrics(TRACK.id)
        source.set_track(TRACK)
        await engine.settle()

        assert searcher.queries == []
        assert engine.lyrics_state.reason is NotFoundReason.USER_MARKED

    async def test_empty_title_is_incomplete(self, engine, searcher, source):
        source.set_track(Track(id="/music/x.mp3", title="  ", artist="someone"))
        await engine.settle()

        assert searcher.queries == []
        assert engine.lyrics_state.reason is NotFoundReason.INCOMPLETE_TRACK_INFO

    async def test_nothing_playing_is_idle(self, engine, cache, source):
        cache.put(make_timeline(track_id=TRACK.id))
        source.set_track(TRACK)
        await engine.settle()
        source.set_track(Track.empty())
        await engine.settle()

        assert engine.lyrics_state.status is LyricsStatus.IDLE
        assert engine.timeline is None
        assert engine.line_index is None
        assert engine.candidates == []

    async def test_unreadable_cache_falls_back_to_search(
        self, engine, cache, searcher, source, monkeypatch
    ):
        def broken(track_id):
            raise CacheIOError("disk gone")

        monkeypatch.setattr(cache, "get_ordered", broken)
        searcher.results[TRACK.title] = [scored(TRACK, 0.8)]
        source.set_track(TRACK)
        await engine.settle()

        assert len(searcher.queries) == 1
        assert engine.lyrics_state.status is LyricsStatus.FOUND
        assert engine.timeline.metadata.quality == 80

    async def test_very_long_track_id_is_searched_and_cached(self, engine, cache, searcher, source):
        track = Track(id="/music/" + "x" * 300 + ".flac", title="Sunny Day", artist="Jay Chou")
        searcher.results[track.title] = [scored(track, 0.8)]
        source.set_track(track)
        await engine.settle()

        assert len(searcher.queries) == 1
        assert engine.lyrics_state.status is LyricsStatus.FOUND
        assert len(cache.get_all(track.id)) == 1

    async def test_lookup_waits_for_queued_write(self, engine, cache, searcher, source):
        timeline = make_timeline(track_id=TRACK.id, quality=80)
        engine._persist(lambda: cache.put(timeline), "seed")
        source.set_track(TRACK)
        await engine.settle()

        assert searcher.queries == []
        assert engine.lyrics_state.status is LyricsStatus.FOUND
        assert engine.timeline.id == timeline.id

    async def test_superseded_result_is_not_stored(self, engine, cache):
        epoch = engine._work_epoch
        engine._cancel_work()

        assert not engine._store_if_current(epoch, make_timeline(track_id=TRACK.id))
        assert cache.get_all(TRACK.id) == []
        assert engine._store_if_current(engine._work_epoch, make_timeline(track_id=TRACK.id))
        assert len(cache.get_all(TRACK.id)) == 1

    async def test_superseded_search_is_discarded(self, engine, cache, searcher, source):
        first = Track(id="/music/a.mp3", title="A", artist="x")
        second = Track(id="/music/b.mp3", title="B", artist="y")
        searcher.gates["A"] = asyncio.Event()
        searcher.results["A"] = [scored(first, 0.9)]
        searcher.results["B"] = [scored(second, 0.5)]

        source.set_track(first)
        await wait_for(lambda: searcher.queries)
        source.set_track(second)
        searcher.gates["A"].set()
        await engine.settle()

        assert [q.title for q in searcher.queries] == ["A", "B"]
        assert engine.track == second
        assert engine.timeline.track_id == second.id
        assert cache.get_all(first.id) == []


class TestUserChoices:
    async def test_override_survives_restart(self, engine, cache, searcher, source):
        searcher.results[TRACK.title] = [scored(TRACK, 0.9), scored(TRACK, 0.4, starts=(1.0,))]
        source.set_track(TRACK)
        await engine.settle()
        (worse,) = [t for t in engine.candidates if t.metadata.quality == 40]

        engine.select_candidate(worse)
        assert engine.timeline.id == worse.id
        assert engine.candidates[0].id == worse.id
        await engine.stop()

        reopened = LyricsCache(cache.cache_dir)
        fresh_searcher = FakeSearcher()
        fresh_source = ManualSource()
        second = LyricsEngine(reopened, fresh_searcher, fresh_source, FAST)
        await second.start()
        fresh_source.set_track(TRACK)
        await second.settle()

        assert fresh_searcher.queries == []
        assert second.timeline.id == worse.id
        assert second.timeline.metadata.is_user_selected
        await second.stop()

    async def test_clear_override_returns_to_best(self, engine, cache, searcher, source):
        searcher.results[TRACK.title] = [scored(TRACK, 0.9), scored(TRACK, 0.4, starts=(1.0,))]
        source.set_track(TRACK)
        await engine.settle()
        best_id = engine.timeline.id
        engine.select_candidate(engine.candidates[1])

        engine.clear_override()
        await engine.settle()

        assert engine.timeline.id == best_id
        assert not any(t.metadata.is_user_selected for t in engine.candidates)
        assert cache.get_override(TRACK.id) is None

    async def test_offset_moves_line_and_persists(self, engine, cache, source):
        cache.put(make_timeline(track_id=TRACK.id))
        source.set_track(TRACK)
        await engine.settle()
        assert engine.line_index == 0

        engine.adjust_offset(6000)
        assert engine.line_index == 1
        assert engine.timeline.offset_ms == 6000
        assert engine.candidates[0].offset_ms == 6000

        await engine.settle()
        (stored,) = cache.get_all(TRACK.id)
        assert stored.offset_ms == 6000

    async def test_offset_while_stopped_keeps_progress_at_zero(self, engine, cache, source):
        cache.put(make_timeline(track_id=TRACK.id))
        source.set_track(TRACK)
        await engine.settle()

        engine.adjust_offset(2500)
        assert engine.line_index == 0
        assert engine.progress == 0.0

        engine.adjust_offset(3000)
        assert engine.line_index == 1
        assert engine.progress == 0.0

    async def test_mark_and_unmark(self, engine, cache, searcher, source):
        searcher.results[TRACK.title] = [scored(TRACK, 0.6)]
        source.set_track(TRACK)
        await engine.settle()

        engine.mark_no_lyrics()
        assert engine.timeline is None
        assert engine.lyrics_state.reason is NotFoundReason.USER_MARKED
        await engine.settle()
        assert cache.is_marked_no_lyrics(TRACK.id)

        engine.unmark_no_lyrics()
        await engine.settle()
        assert not cache.is_marked_no_lyrics(TRACK.id)
        assert engine.lyrics_state.status is LyricsStatus.FOUND
        assert len(searcher.queries) == 2


class TestScheduling:
    async def test_lines_follow_playback(self, engine, cache, source):
        cache.put(make_timeline(track_id=TRACK.id, starts=(0.0, 0.15, 0.3)))
        source.set_track(TRACK)
        await engine.settle()
        assert engine.line_index == 0

        seen = []
        engine.feed.subscribe(lambda e: seen.append(e.value), events.LINE_INDEX)
        source.play(0.0)
        await asyncio.sleep(0.45)

        assert seen == [1, 2]
        assert engine.progress > 0.0

    async def test_pause_resets_progress_and_keeps_line(self, engine, cache, source):
        cache.put(make_timeline(track_id=TRACK.id, starts=(0.0, 0.15, 5.0)))
        source.set_track(TRACK)
        await engine.settle()
        source.play(0.0)
        await wait_for(lambda: engine.line_index == 1)

        source.pause()
        await asyncio.sleep(0.05)
        assert engine.progress == 0.0
        assert engine.line_index == 1
        assert not engine._line_loop.running
        assert not engine._progress_loop.running

    async def test_track_change_stops_loops(self, engine, cache, source):
        cache.put(make_timeline(track_id=TRACK.id, starts=(0.0, 0.1)))
        source.set_track(TRACK)
        await engine.settle()
        source.play(0.0)
        await asyncio.sleep(0.02)
        assert engine._line_loop.running

        source.set_track(Track.empty())
        assert not engine._line_loop.running
        assert engine.progress == 0.0


class TestLifecycle:
    async def test_stop_is_idempotent_and_closes_feed(self, engine, source):
        await engine.stop()
        await engine.stop()

        assert engine.feed.closed
        assert source.on_track_changed is None
        source.set_track(TRACK)
        assert engine.track.is_empty

    async def test_feed_reports_track(self, engine, cache, source):
        cache.put(make_timeline(track_id=TRACK.id))
        fields = []
        engine.feed.subscribe(lambda e: fields.append(e.field))
        source.set_track(TRACK)
        await engine.settle()

        assert fields[0] == events.TRACK
        assert events.TIMELINE in fields
        assert engine.feed.latest(events.LYRICS_STATE).status is LyricsStatus.FOUND
