import logging
from dataclasses import dataclass
from functools import cached_property

from cliphist.config import MAX_IMAGE_SIZE, MAX_TEXT_SIZE
from cliphist.errors import ClipboardError
from cliphist.imaging import PngCodec
from cliphist.models import Clip, ContentType
from cliphist.utils import compute_hash

logger = logging.getLogger(__name__)


@dataclass
class ClipboardContent:
    """One snapshot of the clipboard.

    ``data`` is the payload that gets fingerprinted: UTF-8 text, raw RGBA pixels,
    or newline-joined file paths.
    """

    content_type: ContentType
    data: bytes
    text: str | None = None
    width: int | None = None
    height: int | None = None

    @cached_property
    def fingerprint(self) -> str:
        return compute_hash(self.data)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class PasteboardClipboard:
    """Clipboard source and sink on the macOS general pasteboard."""

    def __init__(self, codec: PngCodec | None = None):
        try:
            import AppKit
        except ImportError as exc:
            raise ClipboardError("The macOS pasteboard requires pyobjc-framework-Cocoa") from exc

        self._appkit = AppKit
        self._codec = codec or PngCodec()
        self._pasteboard = AppKit.NSPasteboard.generalPasteboard()
        self._last_change_count: int | None = None
        self._last_content: ClipboardContent | None = None

    def read(self) -> ClipboardContent | None:
        # Nothing was copied since the previous read: hand back the same snapshot.
        change_count = self._pasteboard.changeCount()
        if change_count == self._last_change_count:
            return self._last_content

        content = self._read_pasteboard()
        self._last_change_count = change_count
        self._last_content = content
        return content

    def write_text(self, text: str) -> None:
        self._pasteboard.clearContents()
        if not self._pasteboard.setString_forType_(text, self._appkit.NSPasteboardTypeString):
            raise ClipboardError("Pasteboard rejected the text")

    def write_image(self, pixels: bytes, width: int, height: int) -> None:
        png_bytes = self._codec.encode_bytes(pixels, width, height)
        ns_data = self._appkit.NSData.dataWithBytes_length_(png_bytes, len(png_bytes))
        self._pasteboard.clearContents()
        if not self._pasteboard.setData_forType_(ns_data, self._appkit.NSPasteboardTypePNG):
            raise ClipboardError("Pasteboard rejected the image")

    def _read_pasteboard(self) -> ClipboardContent | None:
        types = self._pasteboard.types()
        if types is None:
            return None

        # Finder puts the file name on the pasteboard as text too, so files win.
        if self._appkit.NSFilenamesPboardType in types:
            content = self._read_files()
            if content:
                return content

        if self._appkit.NSPasteboardTypeString in types:
            content = self._read_text()
            if content:
                return content

        for img_type in (self._appkit.NSPasteboardTypePNG, self._appkit.NSPasteboardTypeTIFF):
            if img_type in types:
                content = self._read_image(img_type)
                if content:
                    return content

        return None

    def _read_text(self) -> ClipboardContent | None:
        text = self._pasteboard.stringForType_(self._appkit.NSPasteboardTypeString)
        if not text:
            return None

        text = str(text)
        text_bytes = text.encode("utf-8")
        if len(text_bytes) > MAX_TEXT_SIZE:
            logger.warning("Text too large (%d bytes), skipping", len(text_bytes))
            return None

        return ClipboardContent(content_type=ContentType.TEXT, data=text_bytes, text=text)

    def _read_image(self, img_type) -> ClipboardContent | None:
        data = self._pasteboard.dataForType_(img_type)
        if data is None:
            return None

        img_bytes = bytes(data)
        if len(img_bytes) > MAX_IMAGE_SIZE:
            logger.warning("Image too large (%d bytes), skipping", len(img_bytes))
            return None

        decoded = self._codec.decode_bytes(img_bytes)
        return ClipboardContent(
            content_type=ContentType.IMAGE,
            data=decoded.pixels,
            width=decoded.width,
            height=decoded.height,
        )

    def _read_files(self) -> ClipboardContent | None:
        filenames = self._pasteboard.propertyListForType_(self._appkit.NSFilenamesPboardType)
        if not filenames:
            return None

        text = "\n".join(str(name) for name in filenames)
        return ClipboardContent(content_type=ContentType.FILEREF, data=text.encode("utf-8"), text=text)


def copy_clip(clip: Clip, sink: PasteboardClipboard, codec: PngCodec) -> None:
    """Put a stored clip back on the clipboard. File references go back as their path text."""
    if clip.content_type == ContentType.IMAGE:
        decoded = codec.decode_file(clip.image_path)
        sink.write_image(decoded.pixels, decoded.width, decoded.height)
    else:
        sink.write_text(clip.text_content or "")
