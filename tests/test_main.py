"""Tests for the cliphist command line."""

import json
from unittest.mock import patch

import pytest

from cliphist import __version__
from cliphist.__main__ import build_parser, format_clip_row, main, run
from cliphist.errors import DaemonError
from cliphist.storage import ClipStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cliphist.db"


@pytest.fixture
def seeded(db_path, tmp_path, make_clip, make_image_clip):
    """A store on disk with two text clips and one image, plus a patched open_store."""
    with ClipStore(db_path) as store:
        first = store.insert(make_clip("first clip"))
        second = store.insert(make_clip("second clip"))
        image = store.insert(make_image_clip(str(tmp_path / "shot.png"), 20, 10))
        store.add_tag(first.id, "work")
    with patch("cliphist.__main__.open_store", side_effect=lambda: ClipStore(db_path)):
        yield {"first": first, "second": second, "image": image}


@pytest.fixture(autouse=True)
def no_daemon():
    with patch("cliphist.__main__.daemon.daemon_status", return_value=None):
        yield


class TestParser:
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_list_defaults(self):
        args = build_parser().parse_args(["list"])
        assert args.limit == 10
        assert args.offset == 0
        assert args.type is None
        assert args.pinned is False

    def test_clear_default_days(self):
        assert build_parser().parse_args(["clear"]).days == 30

    def test_unknown_type_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["list", "-t", "video"])


class TestList:
    def test_lists_newest_first(self, seeded, capsys):
        assert run(["list"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert "[Image: 20x10]" in lines[0]
        assert "second clip" in lines[1]
        assert "first clip" in lines[2]
        assert "[work]" in lines[2]

    def test_no_command_lists(self, seeded, capsys):
        assert run([]) == 0
        assert "first clip" in capsys.readouterr().out

    @patch("cliphist.__main__.logging.basicConfig")
    def test_no_command_keeps_verbose(self, mock_logging, seeded, capsys):
        assert run(["-v"]) == 0
        assert mock_logging.call_args[1]["level"] == 10  # logging.DEBUG
        assert "first clip" in capsys.readouterr().out

    @patch("cliphist.__main__.logging.basicConfig")
    def test_no_command_keeps_json_and_verbose(self, mock_logging, seeded, capsys):
        assert run(["--json", "-v"]) == 0
        assert mock_logging.call_args[1]["level"] == 10  # logging.DEBUG
        assert len(json.loads(capsys.readouterr().out)) == 3

    def test_json(self, seeded, capsys):
        assert run(["--json", "list"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [d["id"] for d in data] == [seeded["image"].id, seeded["second"].id, seeded["first"].id]
        assert data[2]["tags"] == ["work"]

    def test_filters(self, seeded, capsys):
        assert run(["--json", "list", "-t", "text", "--tag", "work"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [d["id"] for d in data] == [seeded["first"].id]

    def test_empty(self, seeded, capsys):
        assert run(["list", "-p"]) == 0
        assert capsys.readouterr().out.strip() == "No clips found."


class TestSearch:
    def test_match(self, seeded, capsys):
        assert run(["search", "SECOND"]) == 0
        out = capsys.readouterr().out
        assert "second clip" in out
        assert "first clip" not in out

    def test_no_results(self, seeded, capsys):
        assert run(["search", "nothing"]) == 0
        assert capsys.readouterr().out.strip() == 'No results for "nothing".'


class TestGet:
    def test_detail(self, seeded, capsys):
        assert run(["get", str(seeded["first"].id)]) == 0
        out = capsys.readouterr().out
        assert f"ID:      {seeded['first'].id}" in out
        assert "Tags:    work" in out
        assert out.rstrip().endswith("first clip")

    def test_missing_clip(self, seeded, capsys):
        assert run(["get", "999"]) == 1
        assert "error:" in capsys.readouterr().err


class TestCopy:
    def test_copies_and_touches(self, seeded, db_path, capsys):
        with patch("cliphist.__main__.PasteboardClipboard") as mock_clipboard_class:
            assert run(["copy", str(seeded["first"].id)]) == 0
        mock_clipboard_class.return_value.write_text.assert_called_once_with("first clip")
        assert capsys.readouterr().out.strip() == f"Copied clip #{seeded['first'].id} to clipboard."

    def test_json(self, seeded, db_path, capsys):
        with patch("cliphist.__main__.PasteboardClipboard"):
            assert run(["--json", "copy", str(seeded["first"].id)]) == 0
        assert json.loads(capsys.readouterr().out) == {"id": seeded["first"].id, "copied": True}
        with ClipStore(db_path) as store:
            assert store.get_by_id(seeded["first"].id).updated_at > seeded["first"].updated_at


class TestDelete:
    def test_delete(self, seeded, db_path, capsys):
        assert run(["delete", str(seeded["second"].id)]) == 0
        assert capsys.readouterr().out.strip() == f"Deleted clip #{seeded['second'].id}."
        with ClipStore(db_path) as store:
            assert store.count() == 2

    def test_delete_missing(self, seeded, capsys):
        assert run(["delete", "999"]) == 0
        assert capsys.readouterr().out.strip() == "Clip #999 not found."


class TestPinAndTag:
    def test_pin_then_unpin(self, seeded, db_path, capsys):
        clip_id = seeded["second"].id
        assert run(["pin", str(clip_id)]) == 0
        with ClipStore(db_path) as store:
            assert store.get_by_id(clip_id).pinned is True
        assert run(["pin", "-u", str(clip_id)]) == 0
        with ClipStore(db_path) as store:
            assert store.get_by_id(clip_id).pinned is False
        assert capsys.readouterr().out.splitlines() == [f"Pinned clip #{clip_id}.", f"Unpinned clip #{clip_id}."]

    def test_add_and_remove_tag(self, seeded, db_path, capsys):
        clip_id = seeded["second"].id
        assert run(["tag", str(clip_id), "later"]) == 0
        with ClipStore(db_path) as store:
            assert store.get_by_id(clip_id).tags == ["later"]
        assert run(["tag", "-r", str(clip_id), "later"]) == 0
        with ClipStore(db_path) as store:
            assert store.get_by_id(clip_id).tags == []

    def test_pin_json(self, seeded, capsys):
        clip_id = seeded["second"].id
        assert run(["--json", "pin", str(clip_id)]) == 0
        assert json.loads(capsys.readouterr().out) == {"id": clip_id, "pinned": True}

    def test_tag_json_reports_current_tags(self, seeded, capsys):
        clip_id = seeded["first"].id
        assert run(["--json", "tag", str(clip_id), "later"]) == 0
        assert json.loads(capsys.readouterr().out) == {"id": clip_id, "tags": ["later", "work"]}

    def test_blank_tag_is_an_error(self, seeded, capsys):
        assert run(["tag", str(seeded["second"].id), " "]) == 1
        assert "blank" in capsys.readouterr().err


class TestClear:
    def test_nothing_old_enough(self, seeded, capsys):
        assert run(["clear"]) == 0
        assert capsys.readouterr().out.strip() == "Removed 0 clip(s) older than 30 days."

    def test_zero_days_clears_unpinned(self, seeded, db_path, capsys):
        with ClipStore(db_path) as store:
            store.set_pinned(seeded["first"].id, True)
        assert run(["--json", "clear", "-d", "0"]) == 0
        assert json.loads(capsys.readouterr().out) == {"removed": 2, "days": 0}
        with ClipStore(db_path) as store:
            assert [c.id for c in store.list()] == [seeded["first"].id]


class TestStats:
    def test_text(self, seeded, capsys):
        assert run(["stats"]) == 0
        out = capsys.readouterr().out
        assert "Total clips:  3" in out
        assert "  Image:      1" in out
        assert "Daemon:       not running" in out

    def test_json(self, seeded, capsys):
        assert run(["--json", "stats"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["total_clips"] == 3
        assert data["text_clips"] == 2
        assert data["daemon_pid"] is None


class TestDaemonCommand:
    @patch("cliphist.__main__.daemon.start_daemon", return_value=321)
    def test_start(self, mock_start, capsys):
        assert run(["daemon", "start"]) == 0
        mock_start.assert_called_once()
        assert "321" in capsys.readouterr().out

    @patch("cliphist.__main__.daemon.start_daemon")
    @patch("cliphist.__main__.daemon.daemon_status", return_value=77)
    def test_start_when_running(self, _mock_status, mock_start, capsys):
        assert run(["daemon", "start"]) == 0
        mock_start.assert_not_called()
        assert capsys.readouterr().out.strip() == "Daemon already running (pid 77)."

    @patch("cliphist.__main__.daemon.daemon_status", return_value=77)
    def test_status_running(self, _mock_status, capsys):
        assert run(["daemon", "status"]) == 0
        assert capsys.readouterr().out.strip() == "Daemon running (pid 77)."

    def test_status_stopped(self, capsys):
        assert run(["daemon", "status"]) == 1
        assert capsys.readouterr().out.strip() == "Daemon is not running."

    @patch("cliphist.__main__.daemon.daemon_status", return_value=77)
    def test_status_json(self, _mock_status, capsys):
        assert run(["--json", "daemon", "status"]) == 0
        assert json.loads(capsys.readouterr().out) == {"action": "status", "pid": 77}

    def test_status_stopped_json(self, capsys):
        assert run(["--json", "daemon", "status"]) == 1
        assert json.loads(capsys.readouterr().out) == {"action": "status", "pid": None}

    @patch("cliphist.__main__.daemon.start_daemon", return_value=321)
    def test_start_json(self, _mock_start, capsys):
        assert run(["--json", "daemon", "start"]) == 0
        assert json.loads(capsys.readouterr().out) == {"action": "start", "pid": 321}

    @patch("cliphist.__main__.daemon.stop_daemon", return_value=False)
    def test_stop_not_running(self, _mock_stop, capsys):
        assert run(["daemon", "stop"]) == 0
        assert capsys.readouterr().out.strip() == "Daemon is not running."

    @patch("cliphist.__main__.daemon.install_launchagent", side_effect=DaemonError("Failed to load LaunchAgent: nope"))
    def test_install_failure(self, _mock_install, capsys):
        assert run(["daemon", "install"]) == 1
        assert "Failed to load LaunchAgent" in capsys.readouterr().err

    @patch("cliphist.__main__.daemon.uninstall_launchagent", return_value=False)
    def test_uninstall_not_installed(self, _mock_uninstall, capsys):
        assert run(["daemon", "uninstall"]) == 0
        assert capsys.readouterr().out.strip() == "LaunchAgent not installed."


class TestRunWatcher:
    @patch("cliphist.__main__.daemon.run_watcher")
    @patch("cliphist.__main__.logging.StreamHandler")
    @patch("cliphist.__main__.logging.FileHandler")
    @patch("cliphist.__main__.logging.basicConfig")
    @patch("cliphist.__main__.ensure_dirs")
    def test_configures_logging_and_runs(
        self, mock_dirs, mock_logging, _mock_file_handler, _mock_stream_handler, mock_run_watcher
    ):
        assert run(["daemon", "run"]) == 0

        mock_dirs.assert_called_once()
        mock_run_watcher.assert_called_once()
        call_kwargs = mock_logging.call_args[1]
        assert call_kwargs["level"] == 20  # logging.INFO
        assert "%(asctime)s" in call_kwargs["format"]
        assert len(call_kwargs["handlers"]) == 2


class TestMenubar:
    @patch("cliphist.__main__.run_menubar", return_value=0)
    def test_menubar_command(self, mock_run_menubar):
        with patch("sys.argv", ["cliphist", "menubar"]):
            with pytest.raises(SystemExit) as exc:
                main()
        assert exc.value.code == 0
        mock_run_menubar.assert_called_once()


class TestFormatClipRow:
    def test_pinned_marker(self, storage, make_clip):
        clip = storage.insert(make_clip("pinned text"))
        storage.set_pinned(clip.id, True)
        row = format_clip_row(storage.get_by_id(clip.id))
        assert "T*" in row
        assert row.endswith("pinned text")


def test_main_exits_with_status():
    with patch("cliphist.__main__.run", return_value=3), patch("sys.argv", ["cliphist"]):
        with pytest.raises(SystemExit) as exc:
            main()
    assert exc.value.code == 3
