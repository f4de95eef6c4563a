import logging
from datetime import timedelta

import rumps

from cliphist import daemon
from cliphist.clipboard import PasteboardClipboard, copy_clip
from cliphist.config import DB_PATH, DEFAULT_RETENTION_DAYS, MENU_DISPLAY_COUNT, MENU_REFRESH_INTERVAL, THUMBNAIL_SIZE
from cliphist.errors import ClipError
from cliphist.imaging import PngCodec, create_thumbnail, thumbnail_path_for
from cliphist.menu import MenuActions, MenuItemSpec, clip_key, clip_title, history_specs, search_result_specs
from cliphist.models import Clip, ClipFilter, ContentType
from cliphist.storage import ClipStore
from cliphist.utils import ensure_dirs, utc_now

logger = logging.getLogger(__name__)


class CliphistApp(rumps.App):
    """Menu-bar viewer over the clip store. Capturing is left to the watcher process."""

    def __init__(self):
        super().__init__("cliphist", title="📋", quit_button=None)
        self._init_app()

    def _init_app(self) -> None:
        """Initialize app components. Separated for testability."""
        ensure_dirs()
        self._storage = ClipStore(DB_PATH)
        self._codec = PngCodec()
        self._clipboard = PasteboardClipboard(self._codec)
        self._actions = MenuActions(
            on_clip_click=self._on_clip_click,
            on_delete_clip=self._on_delete_clip,
            on_search=self._on_search,
            on_show_all=lambda _: self._refresh_menu(),
            on_toggle_watcher=self._on_toggle_watcher,
            on_clear_old=self._on_clear_old,
            on_quit=self._on_quit,
        )
        self._clip_ids: dict[str, int] = {}
        self._snapshot: tuple | None = None
        self._build_menu()

    def _load_history(self) -> tuple[list[Clip], list[Clip]]:
        pinned = self._storage.list(ClipFilter(pinned=True))
        recent = self._storage.list(ClipFilter(pinned=False, limit=MENU_DISPLAY_COUNT))
        return pinned, recent

    def _build_menu(self) -> None:
        pinned, recent = self._load_history()
        watcher_pid = daemon.daemon_status()
        self._snapshot = self._history_snapshot(pinned, recent, watcher_pid)
        self._render_menu_specs(history_specs(pinned, recent, watcher_pid, self._actions, self._ensure_thumbnail))

    @staticmethod
    def _history_snapshot(pinned: list[Clip], recent: list[Clip], watcher_pid: int | None) -> tuple:
        return (
            watcher_pid,
            tuple((c.id, c.updated_at, c.pinned, tuple(c.tags)) for c in pinned + recent),
        )

    def _render_menu_specs(self, specs: list[MenuItemSpec | None]) -> None:
        """Render menu item specifications to actual rumps MenuItems."""
        self.menu.clear()
        self._clip_ids.clear()
        self.menu = [self._render_single_spec(spec) for spec in specs]

    def _render_single_spec(self, spec: MenuItemSpec | None) -> rumps.MenuItem | None:
        if spec is None:
            return None

        if spec.is_submenu and spec.children:
            submenu = rumps.MenuItem(spec.title)
            for child in spec.children:
                submenu.add(self._render_single_spec(child))
            return submenu

        kwargs = {"callback": spec.callback}
        if spec.icon:
            kwargs["icon"] = spec.icon
        if spec.dimensions:
            kwargs["dimensions"] = spec.dimensions
        if spec.template is not None:
            kwargs["template"] = spec.template

        item = rumps.MenuItem(spec.title, **kwargs)
        if spec.clip_id is not None:
            item._id = clip_key(spec.clip_id)
            self._clip_ids[item._id] = spec.clip_id
        return item

    def _ensure_thumbnail(self, clip: Clip) -> str | None:
        """Ensure a thumbnail exists beside an image clip's side file, generating if needed."""
        if clip.content_type != ContentType.IMAGE or not clip.image_path:
            return None
        thumb_path = thumbnail_path_for(clip.image_path)
        if thumb_path.exists() or create_thumbnail(clip.image_path, thumb_path, THUMBNAIL_SIZE):
            return str(thumb_path)
        return None

    def _refresh_menu(self) -> None:
        self._build_menu()

    @rumps.timer(MENU_REFRESH_INTERVAL)
    def _poll_store(self, _sender) -> None:
        # The watcher writes from another process; rebuild only when something visible changed.
        try:
            pinned, recent = self._load_history()
            snapshot = self._history_snapshot(pinned, recent, daemon.daemon_status())
        except ClipError:
            logger.exception("Error reading clip store")
            return
        if snapshot != self._snapshot:
            self._build_menu()

    def _on_clip_click(self, sender) -> None:
        clip_id = self._clip_ids.get(getattr(sender, "_id", ""))
        if clip_id is None:
            return

        try:
            clip = self._storage.get_by_id(clip_id)
        except ClipError:
            logger.exception("Clip %d vanished before it could be used", clip_id)
            self._refresh_menu()
            return

        # Option toggles the pin, Command edits tags, Shift deletes.
        try:
            from AppKit import NSAlternateKeyMask, NSCommandKeyMask, NSEvent, NSShiftKeyMask

            modifier_flags = NSEvent.modifierFlags()
            if modifier_flags & NSAlternateKeyMask:
                self._on_pin_toggle(clip)
                return
            if modifier_flags & NSCommandKeyMask:
                self._on_edit_tag(clip)
                return
            if modifier_flags & NSShiftKeyMask:
                self._actions.on_delete_clip(clip)
                return
        except ImportError:
            pass

        try:
            copy_clip(clip, self._clipboard, self._codec)
            self._storage.touch(clip.id)
        except ClipError:
            logger.exception("Error copying clip %d to clipboard", clip.id)
            rumps.notification("cliphist", "", "Could not copy to clipboard", sound=False)
            return

        self._refresh_menu()
        rumps.notification("cliphist", "", "Copied to clipboard", sound=False)

    def _on_pin_toggle(self, clip: Clip) -> None:
        try:
            self._storage.set_pinned(clip.id, not clip.pinned)
        except ClipError as exc:
            rumps.alert("cliphist", str(exc))
            return
        rumps.notification("cliphist", "", "Unpinned" if clip.pinned else "Pinned", sound=False)
        self._refresh_menu()

    def _on_delete_clip(self, clip: Clip) -> None:
        if not rumps.alert(
            "cliphist",
            f"Delete clip #{clip.id}?\n\n{clip_title(clip)}",
            ok="Delete",
            cancel="Cancel",
        ):
            return
        try:
            deleted = self._storage.delete(clip.id)
        except ClipError as exc:
            rumps.alert("cliphist", str(exc))
            return
        message = "Deleted" if deleted else f"Clip #{clip.id} not found"
        rumps.notification("cliphist", "", message, sound=False)
        self._refresh_menu()

    def _on_edit_tag(self, clip: Clip) -> None:
        response = rumps.Window(
            message=f"Tag clip #{clip.id} (prefix with - to remove):",
            title="cliphist Tags",
            default_text="",
            ok="Apply",
            cancel="Cancel",
            dimensions=(300, 24),
        ).run()

        tag = response.text.strip() if response.clicked else ""
        if not tag:
            return
        try:
            if tag.startswith("-"):
                self._storage.remove_tag(clip.id, tag[1:])
            else:
                self._storage.add_tag(clip.id, tag)
        except ClipError as exc:
            rumps.alert("cliphist", str(exc))
            return
        self._refresh_menu()

    def _on_search(self, _sender) -> None:
        response = rumps.Window(
            message="Search clipboard history:",
            title="cliphist Search",
            default_text="",
            ok="Search",
            cancel="Cancel",
            dimensions=(300, 24),
        ).run()

        if response.clicked and response.text.strip():
            query = response.text.strip()
            try:
                results = self._storage.search(query, limit=MENU_DISPLAY_COUNT)
            except ClipError as exc:
                rumps.alert("cliphist Search", str(exc))
                return

            if not results:
                rumps.alert("cliphist Search", f'No results for "{query}"')
                return

            self._render_menu_specs(search_result_specs(query, results, self._actions, self._ensure_thumbnail))

    def _on_toggle_watcher(self, _sender) -> None:
        try:
            if daemon.daemon_status() is not None:
                daemon.stop_daemon()
                rumps.notification("cliphist", "", "Watcher stopped", sound=False)
            else:
                pid = daemon.start_daemon()
                rumps.notification("cliphist", "", f"Watcher started (pid {pid})", sound=False)
        except ClipError as exc:
            rumps.alert("cliphist", str(exc))
        self._refresh_menu()

    def _on_clear_old(self, _sender) -> None:
        if rumps.alert(
            "cliphist",
            f"Remove unpinned clips not used in {DEFAULT_RETENTION_DAYS} days?",
            ok="Clear",
            cancel="Cancel",
        ):
            try:
                removed = self._storage.clear_older_than(utc_now() - timedelta(days=DEFAULT_RETENTION_DAYS))
            except ClipError as exc:
                rumps.alert("cliphist", str(exc))
                return
            rumps.notification("cliphist", "", f"Removed {removed} clip(s)", sound=False)
            self._refresh_menu()

    def _on_quit(self, _sender) -> None:
        self._storage.close()
        rumps.quit_application()
