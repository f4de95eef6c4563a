"""PNG image codec backed by Pillow."""

import io
import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from cliphist.errors import ImageError

logger = logging.getLogger(__name__)

PIXEL_MODE = "RGBA"


@dataclass(frozen=True)
class DecodedImage:
    pixels: bytes
    width: int
    height: int


class PngCodec:
    """Converts between raw RGBA pixel buffers and PNG files or bytes."""

    extension = ".png"

    def encode_to_file(self, pixels: bytes, width: int, height: int, path: str | Path) -> None:
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._to_image(pixels, width, height).save(path, format="PNG")
        except OSError as exc:
            raise ImageError(f"Could not write {path}: {exc}") from exc

    def encode_bytes(self, pixels: bytes, width: int, height: int) -> bytes:
        buffer = io.BytesIO()
        try:
            self._to_image(pixels, width, height).save(buffer, format="PNG")
        except OSError as exc:
            raise ImageError(f"Could not encode image: {exc}") from exc
        return buffer.getvalue()

    def decode_file(self, path: str | Path) -> DecodedImage:
        try:
            with Image.open(path) as img:
                return self._from_image(img)
        except OSError as exc:
            raise ImageError(f"Could not read {path}: {exc}") from exc

    def decode_bytes(self, data: bytes) -> DecodedImage:
        """Decode any format Pillow understands (PNG, TIFF, ...) to RGBA."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                return self._from_image(img)
        except OSError as exc:
            raise ImageError(f"Could not decode image data: {exc}") from exc

    @staticmethod
    def _to_image(pixels: bytes, width: int, height: int) -> Image.Image:
        try:
            return Image.frombytes(PIXEL_MODE, (width, height), pixels)
        except ValueError as exc:
            raise ImageError(f"Pixel buffer does not match {width}x{height}: {exc}") from exc

    @staticmethod
    def _from_image(img: Image.Image) -> DecodedImage:
        rgba = img.convert(PIXEL_MODE)
        width, height = rgba.size
        return DecodedImage(pixels=rgba.tobytes(), width=width, height=height)


def thumbnail_path_for(image_path: str | Path) -> Path:
    image_path = Path(image_path)
    return image_path.with_name(image_path.stem + "_thumb.png")


def create_thumbnail(image_path: str | Path, thumb_path: str | Path, size: tuple[int, int] = (32, 32)) -> bool:
    """Create a thumbnail from an image file.

    Args:
        image_path: Path to the source image
        thumb_path: Path to save the thumbnail
        size: Bounding box in pixels (width, height); aspect ratio is kept

    Returns:
        True if the thumbnail was written, False otherwise
    """
    try:
        with Image.open(image_path) as img:
            thumb = img.convert(PIXEL_MODE)
            thumb.thumbnail(size)
            thumb.save(thumb_path, format="PNG")
        return True
    except (OSError, ValueError):
        logger.debug("Thumbnail generation failed for %s", image_path, exc_info=True)
        return False
