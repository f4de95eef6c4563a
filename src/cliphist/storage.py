from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from cliphist.config import BUSY_TIMEOUT, DB_PATH, DEFAULT_LIST_LIMIT
from cliphist.errors import InvalidInputError, NotFoundError, StorageError
from cliphist.imaging import thumbnail_path_for
from cliphist.models import (
    Clip,
    ClipContent,
    ClipFilter,
    ContentType,
    FileRefContent,
    ImageContent,
    NewClip,
    StorageStats,
    TextContent,
)
from cliphist.utils import utc_now

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS clips (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    content_type   TEXT NOT NULL,
    text_content   TEXT,
    image_path     TEXT,
    image_width    INTEGER,
    image_height   INTEGER,
    hash           TEXT NOT NULL UNIQUE,
    size_bytes     INTEGER NOT NULL,
    pinned         INTEGER NOT NULL DEFAULT 0,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    CHECK (content_type != 'image'
           OR (image_path IS NOT NULL AND image_width IS NOT NULL AND image_height IS NOT NULL))
);

CREATE TABLE IF NOT EXISTS tags (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    clip_id        INTEGER NOT NULL REFERENCES clips(id) ON DELETE CASCADE,
    tag            TEXT NOT NULL,
    UNIQUE(clip_id, tag)
);

CREATE INDEX IF NOT EXISTS idx_clips_hash ON clips(hash);
CREATE INDEX IF NOT EXISTS idx_clips_created_at ON clips(created_at);
CREATE INDEX IF NOT EXISTS idx_tags_tag ON tags(tag);
CREATE INDEX IF NOT EXISTS idx_tags_clip_id ON tags(clip_id);
"""

# Unit separator between aggregated tags; tags containing it are rejected.
TAG_SEPARATOR = "\x1f"

# Tags are aggregated independently of any tag filter so every row carries all of its tags.
BASE_SELECT = """
SELECT clips.id, clips.content_type, clips.text_content, clips.image_path,
       clips.image_width, clips.image_height, clips.hash, clips.size_bytes,
       clips.pinned, clips.created_at, clips.updated_at,
       (SELECT GROUP_CONCAT(tags.tag, char(31)) FROM tags WHERE tags.clip_id = clips.id) AS tags
FROM clips
"""


def format_timestamp(moment: datetime) -> str:
    """Fixed-width UTC ISO-8601, so text order matches time order."""
    if moment.tzinfo is None:
        raise ValueError("timestamps must be timezone-aware")
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise StorageError(f"{action} failed: {exc}") from exc


class ClipQuery:
    """WHERE clause assembled from optional predicates, each with its own bound parameters."""

    def __init__(self) -> None:
        self._predicates: list[str] = []
        self._params: list = []

    def where(self, predicate: str, *params) -> "ClipQuery":
        self._predicates.append(predicate)
        self._params.extend(params)
        return self

    def where_clause(self) -> str:
        if not self._predicates:
            return ""
        return "WHERE " + " AND ".join(self._predicates)

    @property
    def params(self) -> list:
        return list(self._params)

    @classmethod
    def from_filter(cls, clip_filter: ClipFilter) -> "ClipQuery":
        query = cls()
        if clip_filter.content_type is not None:
            query.where("clips.content_type = ?", clip_filter.content_type.value)
        if clip_filter.pinned is not None:
            query.where("clips.pinned = ?", int(clip_filter.pinned))
        if clip_filter.tag is not None:
            query.where(
                "EXISTS (SELECT 1 FROM tags ft WHERE ft.clip_id = clips.id AND ft.tag = ?)",
                clip_filter.tag,
            )
        return query


class ClipStore:
    def __init__(self, db_path: str | Path | None = None, timeout: float = BUSY_TIMEOUT):
        self._db_path = str(db_path) if db_path else str(DB_PATH)
        with _storage_errors("Opening database"):
            self._conn = sqlite3.connect(self._db_path, timeout=timeout)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.create_function("casefold", 1, _casefold, deterministic=True)
            self.init_db()

    def init_db(self) -> None:
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def insert(self, new_clip: NewClip) -> Clip:
        now = format_timestamp(utc_now())
        with _storage_errors("Inserting clip"), self._conn:
            cursor = self._conn.execute(
                """INSERT INTO clips
                   (content_type, text_content, image_path, image_width, image_height,
                    hash, size_bytes, pinned, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)""",
                (
                    new_clip.content_type.value,
                    new_clip.text_content,
                    new_clip.image_path,
                    new_clip.image_width,
                    new_clip.image_height,
                    new_clip.hash,
                    new_clip.size_bytes,
                    now,
                    now,
                ),
            )
        logger.debug("Inserted clip %d (%s)", cursor.lastrowid, new_clip.content_type.value)
        return self.get_by_id(cursor.lastrowid)

    def get_by_id(self, clip_id: int) -> Clip:
        with _storage_errors("Reading clip"):
            row = self._conn.execute(f"{BASE_SELECT} WHERE clips.id = ?", (clip_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Clip with id {clip_id} not found")
        return self._row_to_clip(row)

    def list(self, clip_filter: ClipFilter | None = None) -> list[Clip]:
        clip_filter = clip_filter or ClipFilter()
        query = ClipQuery.from_filter(clip_filter)
        sql = f"{BASE_SELECT} {query.where_clause()} ORDER BY clips.id DESC LIMIT ? OFFSET ?"
        params = query.params + [clip_filter.effective_limit(), max(clip_filter.offset, 0)]
        with _storage_errors("Listing clips"):
            rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_clip(r) for r in rows]

    def search(self, query: str, limit: int = DEFAULT_LIST_LIMIT) -> list[Clip]:
        # LIKE only folds ASCII, so both sides are casefolded first; NULL text_content never matches.
        sql = f"""{BASE_SELECT}
                  WHERE casefold(clips.text_content) LIKE ? ESCAPE '\\'
                  ORDER BY clips.id DESC LIMIT ?"""
        with _storage_errors("Searching clips"):
            rows = self._conn.execute(
                sql, (self._like_pattern(query.casefold()), limit if limit > 0 else DEFAULT_LIST_LIMIT)
            ).fetchall()
        return [self._row_to_clip(r) for r in rows]

    def delete(self, clip_id: int) -> bool:
        with _storage_errors("Deleting clip"), self._conn:
            row = self._conn.execute("SELECT image_path FROM clips WHERE id = ?", (clip_id,)).fetchone()
            if row is None:
                return False
            self._conn.execute("DELETE FROM clips WHERE id = ?", (clip_id,))
        self._delete_side_file(row["image_path"])
        return True

    def find_by_hash(self, content_hash: str) -> Clip | None:
        with _storage_errors("Looking up hash"):
            row = self._conn.execute(f"{BASE_SELECT} WHERE clips.hash = ?", (content_hash,)).fetchone()
        return self._row_to_clip(row) if row else None

    def add_tag(self, clip_id: int, tag: str) -> None:
        tag = self._clean_tag(tag)
        with _storage_errors("Adding tag"), self._conn:
            cursor = self._conn.execute(
                "INSERT OR IGNORE INTO tags (clip_id, tag) VALUES (?, ?)", (clip_id, tag)
            )
            if cursor.rowcount:
                self._bump_updated_at(clip_id)

    def remove_tag(self, clip_id: int, tag: str) -> None:
        tag = self._clean_tag(tag)
        with _storage_errors("Removing tag"), self._conn:
            cursor = self._conn.execute("DELETE FROM tags WHERE clip_id = ? AND tag = ?", (clip_id, tag))
            if cursor.rowcount:
                self._bump_updated_at(clip_id)

    def set_pinned(self, clip_id: int, pinned: bool) -> None:
        # Unknown ids update zero rows and are not reported.
        with _storage_errors("Updating pin"), self._conn:
            self._conn.execute(
                "UPDATE clips SET pinned = ?, updated_at = ? WHERE id = ?",
                (int(pinned), format_timestamp(utc_now()), clip_id),
            )

    def clear_older_than(self, cutoff: datetime) -> int:
        params = (format_timestamp(cutoff),)
        with _storage_errors("Clearing old clips"), self._conn:
            image_paths = [
                row["image_path"]
                for row in self._conn.execute(
                    "SELECT image_path FROM clips WHERE updated_at < ? AND pinned = 0 AND image_path IS NOT NULL",
                    params,
                )
            ]
            cursor = self._conn.execute("DELETE FROM clips WHERE updated_at < ? AND pinned = 0", params)
        for image_path in image_paths:
            self._delete_side_file(image_path)
        if cursor.rowcount:
            logger.info("Pruned %d clip(s) last used before %s", cursor.rowcount, params[0])
        return cursor.rowcount

    def stats(self) -> StorageStats:
        with _storage_errors("Reading stats"):
            row = self._conn.execute(
                """SELECT
                       COUNT(*) AS total,
                       COUNT(CASE WHEN content_type = 'text' THEN 1 END) AS text_count,
                       COUNT(CASE WHEN content_type = 'image' THEN 1 END) AS image_count,
                       COUNT(CASE WHEN content_type = 'fileref' THEN 1 END) AS fileref_count,
                       COALESCE(SUM(size_bytes), 0) AS total_size,
                       MIN(created_at) AS oldest,
                       MAX(created_at) AS newest
                   FROM clips"""
            ).fetchone()
        return StorageStats(
            total_clips=row["total"],
            text_clips=row["text_count"],
            image_clips=row["image_count"],
            fileref_clips=row["fileref_count"],
            total_size=row["total_size"],
            oldest=parse_timestamp(row["oldest"]) if row["oldest"] else None,
            newest=parse_timestamp(row["newest"]) if row["newest"] else None,
        )

    def touch(self, clip_id: int) -> None:
        with _storage_errors("Touching clip"), self._conn:
            updated = self._bump_updated_at(clip_id)
        if not updated:
            raise NotFoundError(f"Clip with id {clip_id} not found")

    def count(self) -> int:
        with _storage_errors("Counting clips"):
            row = self._conn.execute("SELECT COUNT(*) AS cnt FROM clips").fetchone()
        return row["cnt"]

    def close(self) -> None:
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _bump_updated_at(self, clip_id: int) -> int:
        cursor = self._conn.execute(
            "UPDATE clips SET updated_at = ? WHERE id = ?",
            (format_timestamp(utc_now()), clip_id),
        )
        return cursor.rowcount

    @staticmethod
    def _clean_tag(tag: str) -> str:
        cleaned = tag.strip()
        if not cleaned:
            raise InvalidInputError("Tag must not be blank")
        if TAG_SEPARATOR in cleaned:
            raise InvalidInputError("Tag must not contain control character U+001F")
        return cleaned

    @staticmethod
    def _like_pattern(query: str) -> str:
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    @staticmethod
    def _delete_side_file(image_path: str | None) -> None:
        if not image_path:
            return
        for path in (Path(image_path), thumbnail_path_for(image_path)):
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove image file %s", path)

    @staticmethod
    def _content_from_row(row: sqlite3.Row) -> ClipContent:
        content_type = ContentType.parse(row["content_type"])
        if content_type == ContentType.IMAGE:
            return ImageContent(path=row["image_path"], width=row["image_width"], height=row["image_height"])
        if content_type == ContentType.FILEREF:
            return FileRefContent(path=row["text_content"] or "")
        return TextContent(text=row["text_content"] or "")

    def _row_to_clip(self, row: sqlite3.Row) -> Clip:
        tags = row["tags"].split(TAG_SEPARATOR) if row["tags"] else []
        return Clip(
            id=row["id"],
            content=self._content_from_row(row),
            hash=row["hash"],
            size_bytes=row["size_bytes"],
            pinned=bool(row["pinned"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            tags=sorted(tags),
        )
