"""Error types raised by cliphist."""


class ClipError(Exception):
    """Base class for every error cliphist raises on purpose."""


class StorageError(ClipError):
    """The persistence layer failed (I/O, corruption, constraint, busy database)."""


class NotFoundError(ClipError):
    """An id-keyed lookup matched no clip."""


class InvalidInputError(ClipError):
    """A filter or tag value was malformed."""


class ClipboardError(ClipError):
    """Reading from or writing to the system clipboard failed."""


class ImageError(ClipError):
    """Encoding or decoding an image failed."""


class DaemonError(ClipError):
    """Managing the background watcher process failed."""
