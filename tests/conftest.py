from datetime import datetime, timezone

import pytest

from cliphist.models import FileRefContent, ImageContent, NewClip, TextContent
from cliphist.storage import ClipStore, format_timestamp
from cliphist.utils import compute_hash


@pytest.fixture
def storage():
    store = ClipStore(db_path=":memory:")
    yield store
    store.close()


@pytest.fixture
def make_clip():
    """Factory fixture to create NewClip instances for testing."""

    def _make_clip(
        text: str = "hello world",
        content_hash: str | None = None,
    ) -> NewClip:
        return NewClip(
            content=TextContent(text),
            hash=content_hash or compute_hash(text),
            size_bytes=len(text.encode("utf-8")),
        )

    return _make_clip


@pytest.fixture
def make_image_clip():
    def _make_image_clip(path: str = "/tmp/test.png", width: int = 100, height: int = 50) -> NewClip:
        return NewClip(
            content=ImageContent(path=path, width=width, height=height),
            hash=compute_hash(f"{path}:{width}x{height}"),
            size_bytes=width * height * 4,
        )

    return _make_image_clip


@pytest.fixture
def make_fileref_clip():
    def _make_fileref_clip(path: str = "/Users/test/document.pdf") -> NewClip:
        return NewClip(content=FileRefContent(path), hash=compute_hash(path), size_bytes=len(path))

    return _make_fileref_clip


@pytest.fixture
def backdate():
    """Rewrite a clip's updated_at so retention tests need not sleep."""

    def _backdate(store: ClipStore, clip_id: int, moment: datetime = datetime(2020, 1, 1, tzinfo=timezone.utc)):
        store._conn.execute(
            "UPDATE clips SET updated_at = ?, created_at = ? WHERE id = ?",
            (format_timestamp(moment), format_timestamp(moment), clip_id),
        )
        store._conn.commit()

    return _backdate
