import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("CLIPHIST_DATA_DIR", Path.home() / ".local" / "share" / "cliphist"))
DB_PATH = DATA_DIR / "cliphist.db"
IMAGE_DIR = DATA_DIR / "images"
PID_PATH = DATA_DIR / "cliphist.pid"
LOG_PATH = DATA_DIR / "cliphist.log"


def _parse_poll_interval() -> float:
    raw = os.environ.get("CLIPHIST_POLL_INTERVAL")
    if raw is None:
        return 0.5
    try:
        value = float(raw)
    except ValueError:
        return 0.5
    return max(0.1, min(10.0, value))


def _parse_menu_display_count() -> int:
    raw = os.environ.get("CLIPHIST_MENU_DISPLAY_COUNT")
    if raw is None:
        return 10
    try:
        value = int(raw)
    except ValueError:
        return 10
    return max(5, min(50, value))


POLL_INTERVAL = _parse_poll_interval()  # seconds between clipboard samples
DEFAULT_LIST_LIMIT = 50  # used when a filter limit is <= 0
DEFAULT_RETENTION_DAYS = 30
BUSY_TIMEOUT = 5.0  # seconds sqlite waits on a locked database
MAX_TEXT_SIZE = 1_000_000  # 1MB text limit
MAX_IMAGE_SIZE = 10_000_000  # 10MB image limit
PREVIEW_LENGTH = 60  # characters shown in listings and menu items
MENU_DISPLAY_COUNT = _parse_menu_display_count()
MENU_REFRESH_INTERVAL = 2.0  # seconds between menu-bar store checks
THUMBNAIL_SIZE = (32, 32)  # pixels, for menu icon display
