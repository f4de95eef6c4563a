import hashlib
from datetime import datetime, timezone
from pathlib import Path

from cliphist.config import DATA_DIR, IMAGE_DIR, PREVIEW_LENGTH
from cliphist.models import Clip, ContentType

IMAGE_EXTENSION = ".png"


def compute_hash(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def image_filename(content_hash: str) -> str:
    return content_hash[:16] + IMAGE_EXTENSION


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def truncate_text(text: str, max_len: int) -> str:
    single_line = " ".join(text.split())
    if len(single_line) <= max_len:
        return single_line
    return single_line[: max_len - 3] + "..."


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    IMAGE_DIR.mkdir(parents=True, exist_ok=True)


def clip_preview(clip: Clip, max_len: int = PREVIEW_LENGTH) -> str:
    if clip.content_type == ContentType.IMAGE:
        return f"[Image: {clip.image_width}x{clip.image_height}]"
    if clip.content_type == ContentType.FILEREF:
        paths = (clip.text_content or "").splitlines()
        if len(paths) > 1:
            return truncate_text(f"{len(paths)} files: {Path(paths[0]).name}, ...", max_len)
        return truncate_text(Path(paths[0]).name if paths else "[File]", max_len)
    return truncate_text(clip.text_content or "", max_len)


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def format_age(moment: datetime, now: datetime | None = None) -> str:
    seconds = int(((now or utc_now()) - moment).total_seconds())
    if seconds < 60:
        return "now"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"
