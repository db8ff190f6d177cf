"""
Tests for per-job staging directories.
"""

from __future__ import annotations

import logging

import pytest

from imgassembly.workspace import Workspace, acquire_workspace


class TestWorkspace:
    def test_acquire_creates_root_and_unique_dirs(self, temp_root):
        a = Workspace.acquire(temp_root)
        b = Workspace.acquire(temp_root)
        try:
            assert temp_root.is_dir()
            assert a.path != b.path
            assert a.path.parent == temp_root
            assert a.path.name.startswith("job_")
        finally:
            a.release()
            b.release()

    def test_frame_naming(self, temp_root):
        with acquire_workspace(temp_root) as ws:
            path = ws.write_frame(7, b"data")
            assert path.name == "frame_0007.png"
            assert ws.frame_pattern.endswith("frame_%04d.png")
            ws.write_frame(0, b"data")
            assert [p.name for p in ws.frame_paths()] == [
                "frame_0000.png", "frame_0007.png"]

    def test_release_removes_everything(self, temp_root):
        ws = Workspace.acquire(temp_root)
        ws.write_frame(0, b"x")
        (ws.path / "nested").mkdir()
        (ws.path / "nested" / "file").write_bytes(b"y")
        ws.release()
        assert ws.released
        assert not ws.path.exists()

    def test_release_is_idempotent(self, temp_root):
        ws = Workspace.acquire(temp_root)
        ws.release()
        ws.release()
        assert list(temp_root.iterdir()) == []

    def test_released_on_error(self, temp_root):
        with pytest.raises(RuntimeError):
            with acquire_workspace(temp_root) as ws:
                ws.write_frame(0, b"x")
                raise RuntimeError("boom")
        assert list(temp_root.iterdir()) == []

    def test_release_of_missing_dir_is_quiet(self, temp_root, caplog):
        ws = Workspace.acquire(temp_root)
        ws.path.rmdir()
        with caplog.at_level(logging.WARNING):
            ws.release()
        assert "Could not remove" not in caplog.text

    def test_cleanup_failure_is_logged_not_raised(self, temp_root, caplog, monkeypatch):
        ws = Workspace.acquire(temp_root)

        def refuse(self):
            raise PermissionError("denied")

        monkeypatch.setattr(type(ws.path), "rmdir", refuse)
        with caplog.at_level(logging.WARNING, logger="imgassembly.workspace"):
            ws.release()
        assert "Could not remove workspace" in caplog.text
        monkeypatch.undo()
        ws.path.rmdir()
