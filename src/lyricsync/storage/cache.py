"""On-disk lyrics cache.

Layout under ``<cache_dir>``::

    lyrics/<digest>/<timeline-id>.lrc|.yrc  timed text
    lyrics/<digest>/<timeline-id>.json      sidecar: track id, metadata, title, offset
    user_preferences.json                   track id -> overriding timeline id
    no_lyrics_marks.json                    track ids the user marked as lyric-less

``<digest>`` is derived from the track id; the id itself lives in each sidecar.

Timelines with word marks are stored as YRC so the marks survive a reload.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from lyricsync.core.exceptions import CacheIOError
from lyricsync.core.models import (
    LyricsFormat,
    LyricsMetadata,
    LyricsSource,
    Timeline,
    Track,
)
from lyricsync.ranking.merge import order_for_selection, select_effective
from lyricsync.timedtext.export import export_line_timed, export_word_timed
from lyricsync.timedtext.parser import parse_line_timed, parse_word_timed

logger = logging.getLogger(__name__)


def _metadata_to_dict(metadata: LyricsMetadata) -> dict:
    return {
        "source": metadata.source.value,
        "source_id": metadata.source_id,
        "quality": metadata.quality,
        "has_translation": metadata.has_translation,
        "has_word_marks": metadata.has_word_marks,
        "language": metadata.language,
        "is_user_selected": metadata.is_user_selected,
        "fetched_at": metadata.fetched_at.isoformat() if metadata.fetched_at else None,
    }


def _metadata_from_dict(data: dict) -> LyricsMetadata:
    try:
        source = LyricsSource(data.get("source", "unknown"))
    except ValueError:
        source = LyricsSource.UNKNOWN
    fetched_at = data.get("fetched_at")
    return LyricsMetadata(
        source=source,
        source_id=data.get("source_id"),
        quality=int(data.get("quality", 0)),
        has_translation=bool(data.get("has_translation", False)),
        has_word_marks=bool(data.get("has_word_marks", False)),
        language=data.get("language"),
        is_user_selected=bool(data.get("is_user_selected", False)),
        fetched_at=datetime.fromisoformat(fetched_at) if fetched_at else None,
    )


class LyricsCache:
    """File-backed store of every candidate timeline fetched per track.

    Safe to call from worker threads; the preference tables are guarded by
    a lock and rewritten whole on every change.
    """

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir).expanduser()
        self.lyrics_dir = self.cache_dir / "lyrics"
        self._prefs_path = self.cache_dir / "user_preferences.json"
        self._marks_path = self.cache_dir / "no_lyrics_marks.json"
        self._lock = threading.Lock()

        self.lyrics_dir.mkdir(parents=True, exist_ok=True)
        self._preferences: dict[str, str] = self._load_json(self._prefs_path, {})
        self._no_lyrics: set[str] = set(self._load_json(self._marks_path, []))

    # --- persistence helpers ---

    @staticmethod
    def _load_json(path: Path, default):
        """Read a JSON table; a missing or corrupt file yields ``default``."""
        if not path.is_file():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable %s: %s", path.name, e)
            return default

    @staticmethod
    def _write_json(path: Path, data) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise CacheIOError(f"Could not write {path}: {e}") from e

    def _track_dir(self, track_id: str) -> Path:
        # Track ids are arbitrary strings (often file paths), so the directory is a digest.
        return self.lyrics_dir / hashlib.sha256(track_id.encode("utf-8")).hexdigest()[:16]

    # --- timelines ---

    def put(self, timeline: Timeline) -> None:
        """Write (or overwrite) one timeline and its sidecar."""
        track_dir = self._track_dir(timeline.track_id)
        word_timed = timeline.metadata.has_word_marks
        fmt = LyricsFormat.WORD_TIMED if word_timed else LyricsFormat.LINE_TIMED
        body = export_word_timed(timeline) if word_timed else export_line_timed(timeline)

        sidecar = {
            "id": timeline.id,
            "track_id": timeline.track_id,
            "title": timeline.title,
            "artist": timeline.artist,
            "offset_ms": timeline.offset_ms,
            "format": fmt.value,
            "metadata": _metadata_to_dict(timeline.metadata),
        }
        if any(ln.translation for ln in timeline.lines):
            sidecar["translations"] = [ln.translation for ln in timeline.lines]

        # Sidecar before body: a reader that finds a body always finds its metadata.
        self._write_json(track_dir / f"{timeline.id}.json", sidecar)
        body_path = track_dir / f"{timeline.id}.{fmt.value}"
        try:
            # Drop a stale body in the other format, e.g. after marks were lost.
            for other in LyricsFormat:
                if other is not fmt:
                    (track_dir / f"{timeline.id}.{other.value}").unlink(missing_ok=True)
            tmp = body_path.with_suffix(body_path.suffix + ".tmp")
            tmp.write_text(body, encoding="utf-8")
            tmp.replace(body_path)
        except OSError as e:
            raise CacheIOError(f"Could not write lyrics {timeline.id}: {e}") from e

    def _load_one(self, body_path: Path, track_id: str) -> Timeline | None:
        sidecar = self._load_json(body_path.with_suffix(".json"), {})
        if sidecar.get("track_id", track_id) != track_id:
            logger.debug("Cache entry %s belongs to another track, skipping", body_path.name)
            return None
        metadata = _metadata_from_dict(sidecar.get("metadata", {}))
        text = body_path.read_text(encoding="utf-8")

        if body_path.suffix == f".{LyricsFormat.WORD_TIMED.value}":
            timeline = parse_word_timed(text, track_id, metadata)
        else:
            timeline = parse_line_timed(text, track_id, metadata)
        if timeline is None:
            logger.warning("Cached lyrics %s have no lines, skipping", body_path.name)
            return None

        lines = timeline.lines
        translations = sidecar.get("translations")
        if translations and len(translations) == len(lines):
            lines = [replace(ln, translation=tr) for ln, tr in zip(lines, translations)]

        return replace(
            timeline,
            id=body_path.stem,
            title=sidecar.get("title", timeline.title),
            artist=sidecar.get("artist", timeline.artist),
            offset_ms=int(sidecar.get("offset_ms", timeline.offset_ms)),
            lines=lines,
        )

    def get_all(self, track_id: str) -> list[Timeline]:
        """Every cached timeline for a track, in stable (file name) order."""
        track_dir = self._track_dir(track_id)
        suffixes = {f".{fmt.value}" for fmt in LyricsFormat}
        try:
            if not track_dir.is_dir():
                return []
            bodies = sorted(p for p in track_dir.iterdir() if p.suffix in suffixes)
        except OSError as e:
            raise CacheIOError(f"Could not list {track_dir}: {e}") from e

        timelines = []
        for body_path in bodies:
            try:
                timeline = self._load_one(body_path, track_id)
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable cache entry %s: %s", body_path.name, e)
                continue
            if timeline is not None:
                timelines.append(timeline)
        return timelines

    def get(self, track_id: str) -> Timeline | None:
        """The effective timeline: the user's override, else the best quality."""
        return select_effective(self.get_all(track_id), self.get_override(track_id))

    def get_ordered(self, track_id: str) -> list[Timeline]:
        """All cached timelines ordered for manual selection."""
        return order_for_selection(self.get_all(track_id), self.get_override(track_id))

    def track_ids(self) -> list[str]:
        """Every track id with at least one cached timeline, sorted."""
        ids = set()
        try:
            sidecars = sorted(self.lyrics_dir.glob("*/*.json"))
        except OSError as e:
            raise CacheIOError(f"Could not list {self.lyrics_dir}: {e}") from e
        for sidecar in sidecars:
            try:
                ids.add(json.loads(sidecar.read_text(encoding="utf-8"))["track_id"])
            except (OSError, ValueError, KeyError) as e:
                logger.warning("Skipping unreadable sidecar %s: %s", sidecar, e)
        return sorted(ids)

    def delete(self, timeline: Timeline) -> None:
        track_dir = self._track_dir(timeline.track_id)
        try:
            for suffix in [fmt.value for fmt in LyricsFormat] + ["json"]:
                (track_dir / f"{timeline.id}.{suffix}").unlink(missing_ok=True)
        except OSError as e:
            raise CacheIOError(f"Could not delete lyrics {timeline.id}: {e}") from e

        if self.get_override(timeline.track_id) == timeline.id:
            self.clear_override(timeline.track_id)

    # --- user override ---

    def get_override(self, track_id: str) -> str | None:
        with self._lock:
            return self._preferences.get(track_id)

    def set_override(self, timeline: Timeline) -> Timeline:
        """Pin ``timeline`` as the user's choice for its track.

        Returns the stored timeline with ``is_user_selected`` set.
        """
        previous_id = self.get_override(timeline.track_id)
        if previous_id and previous_id != timeline.id:
            for cached in self.get_all(timeline.track_id):
                if cached.id == previous_id:
                    self.put(
                        replace(cached, metadata=replace(cached.metadata, is_user_selected=False))
                    )

        selected = replace(timeline, metadata=replace(timeline.metadata, is_user_selected=True))
        self.put(selected)
        with self._lock:
            self._preferences[timeline.track_id] = timeline.id
            snapshot = dict(self._preferences)
        self._write_json(self._prefs_path, snapshot)
        return selected

    def clear_override(self, track_id: str) -> None:
        """Forget the pinned choice so the best-quality timeline is effective again."""
        with self._lock:
            pinned = self._preferences.pop(track_id, None)
            if pinned is None:
                return
            snapshot = dict(self._preferences)
        self._write_json(self._prefs_path, snapshot)

        for cached in self.get_all(track_id):
            if cached.id == pinned and cached.metadata.is_user_selected:
                self.put(replace(cached, metadata=replace(cached.metadata, is_user_selected=False)))

    # --- no-lyrics marks ---

    def mark_no_lyrics(self, track_id: str) -> None:
        with self._lock:
            self._no_lyrics.add(track_id)
            snapshot = sorted(self._no_lyrics)
        self._write_json(self._marks_path, snapshot)
        logger.info("Marked track as having no lyrics: %s", track_id)

    def unmark_no_lyrics(self, track_id: str) -> None:
        with self._lock:
            self._no_lyrics.discard(track_id)
            snapshot = sorted(self._no_lyrics)
        self._write_json(self._marks_path, snapshot)
        logger.info("Unmarked track as having no lyrics: %s", track_id)

    def is_marked_no_lyrics(self, track_id: str) -> bool:
        with self._lock:
            return track_id in self._no_lyrics

    # --- import / export ---

    def import_file(self, path: Path, track: Track) -> Timeline | None:
        """Parse a local LRC file for ``track`` and cache it.

        Returns None when the file contains no timed lines.
        """
        try:
            content = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise CacheIOError(f"Could not read {path}: {e}") from e

        metadata = LyricsMetadata(source=LyricsSource.MANUAL, fetched_at=datetime.now(timezone.utc))
        timeline = parse_line_timed(content, track.id, metadata)
        if timeline is None:
            return None
        timeline = replace(timeline, title=track.title, artist=track.artist)
        self.put(timeline)
        return timeline

    @staticmethod
    def export_file(timeline: Timeline, path: Path) -> Path:
        """Write ``timeline`` as LRC text to ``path``."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(export_line_timed(timeline), encoding="utf-8")
        except OSError as e:
            raise CacheIOError(f"Could not write {path}: {e}") from e
        return path
