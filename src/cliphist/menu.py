"""Menu model for the menu-bar viewer, kept free of rumps so it can be tested anywhere."""

from collections.abc import Callable
from dataclasses import dataclass

from cliphist import __version__
from cliphist.config import DEFAULT_RETENTION_DAYS
from cliphist.models import Clip, ContentType
from cliphist.utils import clip_preview

CLIP_KEY_PREFIX = "cliphist_clip_"
CLICK_HINT = "Click copies · ⌥ pins · ⌘ tags · ⇧ deletes"


@dataclass
class MenuItemSpec:
    """Specification for a menu item, separating logic from rumps rendering."""

    title: str
    callback: Callable | None = None
    icon: str | None = None
    dimensions: tuple[int, int] | None = None
    template: bool | None = None
    clip_id: int | None = None
    is_submenu: bool = False
    children: list["MenuItemSpec | None"] | None = None


@dataclass
class MenuActions:
    on_clip_click: Callable
    on_delete_clip: Callable
    on_search: Callable
    on_show_all: Callable
    on_toggle_watcher: Callable
    on_clear_old: Callable
    on_quit: Callable


def clip_key(clip_id: int) -> str:
    return f"{CLIP_KEY_PREFIX}{clip_id}"


def clip_title(clip: Clip) -> str:
    title = clip_preview(clip)
    if clip.tags:
        title += f"  [{', '.join(clip.tags)}]"
    return title


def clip_spec(clip: Clip, actions: MenuActions, thumbnail_for: Callable[[Clip], str | None] | None = None) -> MenuItemSpec:
    spec = MenuItemSpec(title=clip_title(clip), callback=actions.on_clip_click, clip_id=clip.id)
    if clip.content_type == ContentType.IMAGE and thumbnail_for is not None:
        thumb_path = thumbnail_for(clip)
        if thumb_path:
            spec.icon = thumb_path
            spec.dimensions = (32, 32)
            spec.template = False
    return spec


def history_specs(
    pinned: list[Clip],
    recent: list[Clip],
    watcher_pid: int | None,
    actions: MenuActions,
    thumbnail_for: Callable[[Clip], str | None] | None = None,
) -> list[MenuItemSpec | None]:
    """Top-level menu: pinned submenu, recent unpinned clips, watcher and maintenance items."""
    specs: list[MenuItemSpec | None] = [
        MenuItemSpec(f"cliphist v{__version__} - Clipboard History"),
        None,  # separator
        MenuItemSpec("Search...", callback=actions.on_search),
        MenuItemSpec(CLICK_HINT),
        None,  # separator
    ]

    if pinned:
        children: list[MenuItemSpec | None] = [clip_spec(c, actions, thumbnail_for) for c in pinned]
        specs.append(MenuItemSpec("📌 Pinned", is_submenu=True, children=children))
        specs.append(None)  # separator

    unpinned = [c for c in recent if not c.pinned]
    if not unpinned and not pinned:
        specs.append(MenuItemSpec("(No clipboard history)"))
    else:
        specs.extend(clip_spec(c, actions, thumbnail_for) for c in unpinned)

    if watcher_pid is not None:
        watcher_items = [
            MenuItemSpec(f"Watcher running (pid {watcher_pid})"),
            MenuItemSpec("Stop Watcher", callback=actions.on_toggle_watcher),
        ]
    else:
        watcher_items = [
            MenuItemSpec("Watcher not running"),
            MenuItemSpec("Start Watcher", callback=actions.on_toggle_watcher),
        ]

    specs.extend([
        None,  # separator
        *watcher_items,
        MenuItemSpec(f"Clear Older Than {DEFAULT_RETENTION_DAYS} Days", callback=actions.on_clear_old),
        None,  # separator
        MenuItemSpec("Quit cliphist", callback=actions.on_quit),
    ])
    return specs


def search_result_specs(
    query: str,
    results: list[Clip],
    actions: MenuActions,
    thumbnail_for: Callable[[Clip], str | None] | None = None,
) -> list[MenuItemSpec | None]:
    specs: list[MenuItemSpec | None] = [
        MenuItemSpec(f'Search: "{query}" ({len(results)} results)'),
        None,
        MenuItemSpec("Show All", callback=actions.on_show_all),
        None,
    ]
    specs.extend(clip_spec(c, actions, thumbnail_for) for c in results)
    specs.extend([
        None,
        MenuItemSpec("Quit cliphist", callback=actions.on_quit),
    ])
    return specs
