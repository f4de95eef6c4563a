import argparse
import json
import logging
import sys
from datetime import timedelta

from cliphist import __version__, daemon
from cliphist.clipboard import PasteboardClipboard, copy_clip
from cliphist.config import DB_PATH, DEFAULT_RETENTION_DAYS, LOG_PATH
from cliphist.errors import ClipError
from cliphist.imaging import PngCodec
from cliphist.models import Clip, ClipFilter, ContentType
from cliphist.storage import ClipStore
from cliphist.utils import clip_preview, ensure_dirs, format_age, format_bytes, utc_now

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def open_store() -> ClipStore:
    ensure_dirs()
    return ClipStore(DB_PATH)


def emit_json(payload) -> None:
    print(json.dumps(payload, indent=2))


def format_clip_row(clip: Clip) -> str:
    type_icon = {ContentType.TEXT: "T", ContentType.IMAGE: "I", ContentType.FILEREF: "F"}[clip.content_type]
    pin = "*" if clip.pinned else " "
    tags = f" [{', '.join(clip.tags)}]" if clip.tags else ""
    return f"{clip.id:>4} {type_icon}{pin} {format_age(clip.updated_at):>6}  {clip_preview(clip)}{tags}"


def format_clip_detail(clip: Clip) -> str:
    lines = [
        f"ID:      {clip.id}",
        f"Type:    {clip.content_type.value}",
        f"Pinned:  {clip.pinned}",
        f"Created: {clip.created_at:%Y-%m-%d %H:%M:%S}",
        f"Updated: {clip.updated_at:%Y-%m-%d %H:%M:%S}",
        f"Hash:    {clip.hash[:16]}",
        f"Size:    {format_bytes(clip.size_bytes)}",
    ]
    if clip.tags:
        lines.append(f"Tags:    {', '.join(clip.tags)}")
    if clip.content_type == ContentType.IMAGE:
        lines.append(f"Path:    {clip.image_path}")
        lines.append(f"Pixels:  {clip.image_width}x{clip.image_height}")
    elif clip.content_type == ContentType.FILEREF:
        lines.append(f"Path:    {clip.text_content}")
    else:
        lines.append("─" * 25)
        lines.append(clip.text_content or "")
    return "\n".join(lines)


def print_clips(clips: list[Clip], as_json: bool, empty_message: str) -> None:
    if as_json:
        emit_json([c.to_dict() for c in clips])
    elif not clips:
        print(empty_message)
    else:
        for clip in clips:
            print(format_clip_row(clip))


def cmd_list(args) -> int:
    clip_filter = ClipFilter(
        content_type=ContentType(args.type) if args.type else None,
        pinned=True if args.pinned else None,
        tag=args.tag,
        limit=args.limit,
        offset=args.offset,
    )
    with open_store() as store:
        clips = store.list(clip_filter)
    print_clips(clips, args.json, "No clips found.")
    return 0


def cmd_search(args) -> int:
    with open_store() as store:
        clips = store.search(args.query, args.limit)
    print_clips(clips, args.json, f'No results for "{args.query}".')
    return 0


def cmd_get(args) -> int:
    with open_store() as store:
        clip = store.get_by_id(args.id)
    if args.json:
        emit_json(clip.to_dict())
    else:
        print(format_clip_detail(clip))
    return 0


def cmd_copy(args) -> int:
    with open_store() as store:
        clip = store.get_by_id(args.id)
        codec = PngCodec()
        copy_clip(clip, PasteboardClipboard(codec), codec)
        store.touch(clip.id)
    if args.json:
        emit_json({"id": clip.id, "copied": True})
    else:
        print(f"Copied clip #{clip.id} to clipboard.")
    return 0


def cmd_delete(args) -> int:
    with open_store() as store:
        deleted = store.delete(args.id)
    if args.json:
        emit_json({"id": args.id, "deleted": deleted})
    elif deleted:
        print(f"Deleted clip #{args.id}.")
    else:
        print(f"Clip #{args.id} not found.")
    return 0


def cmd_pin(args) -> int:
    pinned = not args.unpin
    with open_store() as store:
        store.set_pinned(args.id, pinned)
    if args.json:
        emit_json({"id": args.id, "pinned": pinned})
    else:
        print(f"{'Pinned' if pinned else 'Unpinned'} clip #{args.id}.")
    return 0


def cmd_tag(args) -> int:
    with open_store() as store:
        if args.remove:
            store.remove_tag(args.id, args.tag)
        else:
            store.add_tag(args.id, args.tag)
        tags = store.get_by_id(args.id).tags
    if args.json:
        emit_json({"id": args.id, "tags": tags})
    elif args.remove:
        print(f'Removed tag "{args.tag}" from clip #{args.id}.')
    else:
        print(f'Added tag "{args.tag}" to clip #{args.id}.')
    return 0


def cmd_clear(args) -> int:
    cutoff = utc_now() - timedelta(days=args.days)
    with open_store() as store:
        removed = store.clear_older_than(cutoff)
    if args.json:
        emit_json({"removed": removed, "days": args.days})
    else:
        print(f"Removed {removed} clip(s) older than {args.days} days.")
    return 0


def cmd_stats(args) -> int:
    with open_store() as store:
        stats = store.stats()
    pid = daemon.daemon_status()

    if args.json:
        emit_json({**stats.to_dict(), "daemon_pid": pid})
        return 0

    print("Clipboard Statistics")
    print("─" * 20)
    print(f"Total clips:  {stats.total_clips}")
    print(f"  Text:       {stats.text_clips}")
    print(f"  Image:      {stats.image_clips}")
    print(f"  File refs:  {stats.fileref_clips}")
    print(f"Total size:   {format_bytes(stats.total_size)}")
    if stats.oldest:
        print(f"Oldest:       {stats.oldest:%Y-%m-%d %H:%M}")
    if stats.newest:
        print(f"Newest:       {stats.newest:%Y-%m-%d %H:%M}")
    print(f"Daemon:       running (pid {pid})" if pid else "Daemon:       not running")
    return 0


def run_watcher() -> None:
    """Run the clipboard watcher in the foreground."""
    ensure_dirs()

    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOG_PATH),
            logging.StreamHandler(sys.stderr),
        ],
        force=True,
    )
    daemon.run_watcher()


def cmd_daemon(args) -> int:
    if args.action == "run":
        run_watcher()
        return 0

    pid = daemon.daemon_status()
    result: dict = {"action": args.action}
    if args.action == "start":
        if pid:
            message = f"Daemon already running (pid {pid})."
        else:
            pid = daemon.start_daemon()
            message = f"Started clipboard watcher (pid {pid})."
        result["pid"] = pid
    elif args.action == "stop":
        stopped = daemon.stop_daemon()
        message = "Stopped clipboard watcher." if stopped else "Daemon is not running."
        result["stopped"] = stopped
    elif args.action == "status":
        message = f"Daemon running (pid {pid})." if pid else "Daemon is not running."
        result["pid"] = pid
    elif args.action == "install":
        plist_path = daemon.install_launchagent()
        message = f"Created: {plist_path}\nThe clipboard watcher will start automatically on login."
        result["plist"] = str(plist_path)
    else:
        uninstalled = daemon.uninstall_launchagent()
        message = "LaunchAgent uninstalled." if uninstalled else "LaunchAgent not installed."
        result["uninstalled"] = uninstalled

    if args.json:
        emit_json(result)
    else:
        print(message)
    if args.action == "status" and not pid:
        return 1
    return 0


def run_menubar() -> int:
    """Run the menu-bar viewer."""
    from cliphist.app import CliphistApp

    app = CliphistApp()
    app.run()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cliphist",
        description="cliphist - persistent clipboard history",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("list", help="List recent clipboard entries")
    p.add_argument("-n", "--limit", type=int, default=10, help="Maximum number of entries to show")
    p.add_argument("-o", "--offset", type=int, default=0, help="Offset for pagination")
    p.add_argument("-t", "--type", choices=[t.value for t in ContentType], help="Filter by content type")
    p.add_argument("-p", "--pinned", action="store_true", help="Show only pinned entries")
    p.add_argument("--tag", help="Filter by tag")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("search", help="Search clipboard history")
    p.add_argument("query")
    p.add_argument("-n", "--limit", type=int, default=10, help="Maximum results")
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("get", help="Show a clip")
    p.add_argument("id", type=int)
    p.set_defaults(func=cmd_get)

    p = sub.add_parser("copy", help="Copy a clip back to the clipboard")
    p.add_argument("id", type=int)
    p.set_defaults(func=cmd_copy)

    p = sub.add_parser("delete", help="Delete a clip")
    p.add_argument("id", type=int)
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("pin", help="Pin or unpin a clip")
    p.add_argument("id", type=int)
    p.add_argument("-u", "--unpin", action="store_true", help="Unpin instead of pin")
    p.set_defaults(func=cmd_pin)

    p = sub.add_parser("tag", help="Add or remove a tag")
    p.add_argument("id", type=int)
    p.add_argument("tag")
    p.add_argument("-r", "--remove", action="store_true", help="Remove the tag instead of adding")
    p.set_defaults(func=cmd_tag)

    p = sub.add_parser("clear", help="Remove unpinned clips not used recently")
    p.add_argument("-d", "--days", type=int, default=DEFAULT_RETENTION_DAYS, help="Age threshold in days")
    p.set_defaults(func=cmd_clear)

    p = sub.add_parser("stats", help="Show storage statistics")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("daemon", help="Manage the clipboard watcher")
    p.add_argument("action", choices=["start", "stop", "status", "run", "install", "uninstall"])
    p.set_defaults(func=cmd_daemon)

    p = sub.add_parser("menubar", help="Run the menu-bar viewer")
    p.set_defaults(func=lambda _args: run_menubar())

    return parser


def run(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        # Global flags carry over to the default list command.
        flags = (["--json"] if args.json else []) + (["-v"] if args.verbose else [])
        args = parser.parse_args([*flags, "list"])

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        return args.func(args)
    except ClipError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
