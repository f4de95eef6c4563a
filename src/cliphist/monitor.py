import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from cliphist.clipboard import ClipboardContent
from cliphist.config import IMAGE_DIR, POLL_INTERVAL
from cliphist.errors import ClipError, StorageError
from cliphist.models import Clip, ClipContent, ContentType, FileRefContent, ImageContent, NewClip, TextContent
from cliphist.storage import ClipStore
from cliphist.utils import image_filename

logger = logging.getLogger(__name__)


class ClipboardSource(Protocol):
    def read(self) -> ClipboardContent | None: ...


class ImageEncoder(Protocol):
    def encode_to_file(self, pixels: bytes, width: int, height: int, path: Path) -> None: ...


class CapturePipeline:
    """Samples the clipboard and stores each distinct piece of content once.

    Dedup happens in two tiers: the fingerprint of the last sample is kept in
    memory so an unchanged clipboard never reaches the store, and anything else
    is looked up by fingerprint before inserting, which covers content copied
    again later or captured by a previous run.
    """

    def __init__(
        self,
        storage: ClipStore,
        source: ClipboardSource,
        codec: ImageEncoder,
        image_dir: str | Path | None = None,
        on_capture: Callable[[Clip], None] | None = None,
    ):
        self._storage = storage
        self._source = source
        self._codec = codec
        self._image_dir = Path(image_dir) if image_dir else IMAGE_DIR
        self._on_capture = on_capture
        self.last_seen_fingerprint: str | None = None

    def capture_once(self) -> Clip | None:
        """Run one sample. Returns the new clip, or None if nothing new was seen."""
        content = self._source.read()
        if content is None:
            return None

        fingerprint = content.fingerprint
        if fingerprint == self.last_seen_fingerprint:
            return None

        if self._storage.find_by_hash(fingerprint) is not None:
            self.last_seen_fingerprint = fingerprint
            return None

        image_path = self._save_image(content) if content.content_type == ContentType.IMAGE else None
        new_clip = NewClip(
            content=self._build_content(content, image_path),
            hash=fingerprint,
            size_bytes=content.size_bytes,
        )
        try:
            clip = self._storage.insert(new_clip)
        except StorageError:
            if image_path is not None:
                image_path.unlink(missing_ok=True)
            raise

        self.last_seen_fingerprint = fingerprint
        logger.info("Captured clip %d (%s, %d bytes)", clip.id, clip.content_type.value, clip.size_bytes)
        if self._on_capture:
            self._on_capture(clip)
        return clip

    def check_clipboard(self) -> Clip | None:
        """One isolated tick: failures are logged and never propagate."""
        try:
            return self.capture_once()
        except ClipError as exc:
            logger.error("Capture failed: %s", exc)
        except Exception:
            logger.exception("Unexpected error while capturing clipboard")
        return None

    def run(self, stop_event: threading.Event, interval: float = POLL_INTERVAL) -> None:
        logger.info("Watching clipboard every %.2fs", interval)
        while not stop_event.is_set():
            self.check_clipboard()
            stop_event.wait(interval)
        logger.info("Clipboard watcher stopped")

    def _save_image(self, content: ClipboardContent) -> Path:
        path = self._image_dir / image_filename(content.fingerprint)
        self._codec.encode_to_file(content.data, content.width, content.height, path)
        return path

    @staticmethod
    def _build_content(content: ClipboardContent, image_path: Path | None) -> ClipContent:
        if content.content_type == ContentType.IMAGE:
            return ImageContent(path=str(image_path), width=content.width, height=content.height)
        if content.content_type == ContentType.FILEREF:
            return FileRefContent(path=content.text or "")
        return TextContent(text=content.text or "")
