"""Background watcher process control: PID file, signals, LaunchAgent."""

import logging
import os
import shutil
import signal
import subprocess
import sys
import threading
from pathlib import Path

from cliphist import config
from cliphist.clipboard import PasteboardClipboard
from cliphist.errors import DaemonError
from cliphist.imaging import PngCodec
from cliphist.monitor import CapturePipeline
from cliphist.storage import ClipStore
from cliphist.utils import ensure_dirs

logger = logging.getLogger(__name__)

LAUNCHAGENT_LABEL = "com.cliphist.watcher"
LAUNCHAGENT_DIR = Path.home() / "Library" / "LaunchAgents"
PLIST_PATH = LAUNCHAGENT_DIR / f"{LAUNCHAGENT_LABEL}.plist"


def write_pid_file(path: Path, pid: int | None = None) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(str(pid if pid is not None else os.getpid()))
    except OSError as exc:
        raise DaemonError(f"Could not write PID file {path}: {exc}") from exc


def read_pid_file(path: Path) -> int | None:
    try:
        contents = path.read_text()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise DaemonError(f"Could not read PID file {path}: {exc}") from exc
    try:
        return int(contents.strip())
    except ValueError:
        return None


def remove_pid_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        raise DaemonError(f"Could not remove PID file {path}: {exc}") from exc


def is_process_running(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else.
        return True
    return True


def daemon_status(pid_path: Path | None = None) -> int | None:
    """Return the watcher's pid if it is running; stale PID files are removed."""
    pid_path = pid_path or config.PID_PATH
    pid = read_pid_file(pid_path)
    if pid is None:
        return None
    if is_process_running(pid):
        return pid
    logger.debug("Removing stale PID file for pid %d", pid)
    remove_pid_file(pid_path)
    return None


def stop_daemon(pid_path: Path | None = None) -> bool:
    pid_path = pid_path or config.PID_PATH
    pid = read_pid_file(pid_path)
    if pid is None:
        return False
    running = is_process_running(pid)
    if running:
        try:
            os.kill(pid, signal.SIGTERM)
        except OSError as exc:
            raise DaemonError(f"Could not signal pid {pid}: {exc}") from exc
        logger.info("Sent SIGTERM to watcher pid %d", pid)
    remove_pid_file(pid_path)
    return running


def watcher_command() -> list[str]:
    """Command line that runs the watcher in the foreground."""
    cliphist_path = shutil.which("cliphist")
    if cliphist_path:
        return [cliphist_path, "daemon", "run"]
    return [sys.executable, "-m", "cliphist", "daemon", "run"]


def start_daemon() -> int:
    """Spawn the watcher detached from this terminal and return its pid."""
    ensure_dirs()
    try:
        child = subprocess.Popen(
            watcher_command(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as exc:
        raise DaemonError(f"Could not start watcher: {exc}") from exc
    return child.pid


def run_watcher(stop_event: threading.Event | None = None) -> None:
    """Run the capture pipeline in this process until SIGTERM/SIGINT."""
    ensure_dirs()
    other = daemon_status(config.PID_PATH)
    if other is not None and other != os.getpid():
        raise DaemonError(f"Watcher already running (pid {other})")

    stop_event = stop_event or threading.Event()

    def _request_stop(signum, _frame):
        logger.info("Received signal %d, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)

    write_pid_file(config.PID_PATH)
    logger.info("Watcher started (pid %d)", os.getpid())
    try:
        codec = PngCodec()
        with ClipStore(config.DB_PATH) as storage:
            pipeline = CapturePipeline(storage, PasteboardClipboard(codec), codec, config.IMAGE_DIR)
            pipeline.run(stop_event, config.POLL_INTERVAL)
    finally:
        remove_pid_file(config.PID_PATH)


def create_plist(command: list[str], log_path: Path | None = None) -> str:
    """Generate the LaunchAgent plist content."""
    log_path = log_path or config.LOG_PATH
    arguments = "\n".join(f"        <string>{arg}</string>" for arg in command)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Label</key>
    <string>{LAUNCHAGENT_LABEL}</string>
    <key>ProgramArguments</key>
    <array>
{arguments}
    </array>
    <key>RunAtLoad</key>
    <true/>
    <key>KeepAlive</key>
    <dict>
        <key>SuccessfulExit</key>
        <false/>
    </dict>
    <key>StandardErrorPath</key>
    <string>{log_path}</string>
</dict>
</plist>
"""


def install_launchagent() -> Path:
    """Write the LaunchAgent plist and load it so the watcher starts on login."""
    ensure_dirs()
    LAUNCHAGENT_DIR.mkdir(parents=True, exist_ok=True)

    if PLIST_PATH.exists():
        subprocess.run(["launchctl", "unload", str(PLIST_PATH)], capture_output=True)

    PLIST_PATH.write_text(create_plist(watcher_command()))
    result = subprocess.run(
        ["launchctl", "load", str(PLIST_PATH)],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise DaemonError(f"Failed to load LaunchAgent: {result.stderr.strip()}")
    return PLIST_PATH


def uninstall_launchagent() -> bool:
    """Unload and remove the LaunchAgent. Returns False if it was not installed."""
    if not PLIST_PATH.exists():
        return False
    subprocess.run(["launchctl", "unload", str(PLIST_PATH)], capture_output=True)
    PLIST_PATH.unlink()
    return True
