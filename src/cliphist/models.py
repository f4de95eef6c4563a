import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar

from cliphist.config import DEFAULT_LIST_LIMIT

logger = logging.getLogger(__name__)


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILEREF = "fileref"

    @classmethod
    def parse(cls, token: str) -> "ContentType":
        """Lenient decode used when reading rows: unknown tokens become TEXT."""
        try:
            return cls(token)
        except ValueError:
            logger.warning("Unknown content type %r, reading it as text", token)
            return cls.TEXT


@dataclass(frozen=True)
class TextContent:
    text: str
    content_type: ClassVar[ContentType] = ContentType.TEXT


@dataclass(frozen=True)
class ImageContent:
    path: str
    width: int
    height: int
    content_type: ClassVar[ContentType] = ContentType.IMAGE


@dataclass(frozen=True)
class FileRefContent:
    path: str
    content_type: ClassVar[ContentType] = ContentType.FILEREF


ClipContent = TextContent | ImageContent | FileRefContent


class _ContentColumns:
    """Flat column view over the ``content`` variant."""

    content: ClipContent

    @property
    def content_type(self) -> ContentType:
        return self.content.content_type

    @property
    def text_content(self) -> str | None:
        if isinstance(self.content, TextContent):
            return self.content.text
        if isinstance(self.content, FileRefContent):
            return self.content.path
        return None

    @property
    def image_path(self) -> str | None:
        return self.content.path if isinstance(self.content, ImageContent) else None

    @property
    def image_width(self) -> int | None:
        return self.content.width if isinstance(self.content, ImageContent) else None

    @property
    def image_height(self) -> int | None:
        return self.content.height if isinstance(self.content, ImageContent) else None


@dataclass
class NewClip(_ContentColumns):
    content: ClipContent
    hash: str
    size_bytes: int


@dataclass
class Clip(_ContentColumns):
    id: int
    content: ClipContent
    hash: str
    size_bytes: int
    pinned: bool
    created_at: datetime
    updated_at: datetime
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content_type": self.content_type.value,
            "text_content": self.text_content,
            "image_path": self.image_path,
            "image_width": self.image_width,
            "image_height": self.image_height,
            "hash": self.hash,
            "size_bytes": self.size_bytes,
            "pinned": self.pinned,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "tags": list(self.tags),
        }


@dataclass
class ClipFilter:
    content_type: ContentType | None = None
    pinned: bool | None = None
    tag: str | None = None
    limit: int = 0
    offset: int = 0

    def effective_limit(self) -> int:
        return DEFAULT_LIST_LIMIT if self.limit <= 0 else self.limit


@dataclass
class StorageStats:
    total_clips: int = 0
    text_clips: int = 0
    image_clips: int = 0
    fileref_clips: int = 0
    total_size: int = 0
    oldest: datetime | None = None
    newest: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "total_clips": self.total_clips,
            "text_clips": self.text_clips,
            "image_clips": self.image_clips,
            "fileref_clips": self.fileref_clips,
            "total_size": self.total_size,
            "oldest": self.oldest.isoformat() if self.oldest else None,
            "newest": self.newest.isoformat() if self.newest else None,
        }
