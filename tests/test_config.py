"""
Tests for settings, option files, tool discovery and local publishing.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from imgassembly import config, detection
from imgassembly.config import ResolvedTools, Settings, load_options, probe_tools
from imgassembly.detection import (
    diagnostics_report,
    library_version,
    primary_backend,
    tool_version,
)
from imgassembly.exceptions import PublishError
from imgassembly.storage import LocalPublisher
from imgassembly.types import ArtifactKind


class TestSettings:
    def test_defaults(self):
        s = Settings.from_env({})
        assert s.temp_root == config.default_temp_root()
        assert s.output_dir.name == "outputs"
        assert s.base_url == "http://localhost:3000"

    def test_environment(self, tmp_dir):
        s = Settings.from_env({
            "IMGASSEMBLY_TEMP_DIR": str(tmp_dir / "t"),
            "IMGASSEMBLY_OUTPUT_DIR": str(tmp_dir / "o"),
            "BASE_URL": "https://cdn.example.com/",
        })
        assert s.temp_root == tmp_dir / "t"
        assert s.output_dir == tmp_dir / "o"
        assert s.base_url == "https://cdn.example.com"

    def test_port_in_default_url(self):
        assert Settings.from_env({"PORT": "8080"}).base_url == "http://localhost:8080"


class TestLoadOptions:
    def test_yaml_file(self, tmp_dir):
        path = tmp_dir / "opts.yaml"
        path.write_text(
            "delay_ms: 250\n"
            "quality: low\n"
            "page_format: Letter\n"
            "metadata:\n"
            "  title: Sketches\n"
            "  keywords: [art]\n"
        )
        opts = load_options(path)
        assert opts.delay_ms == 250
        assert opts.quality == "low"
        assert opts.page_format == "Letter"
        assert opts.metadata.title == "Sketches"
        assert opts.metadata.keywords == ["art"]

    def test_empty_file_gives_defaults(self, tmp_dir):
        path = tmp_dir / "empty.yaml"
        path.write_text("")
        assert load_options(path).delay_ms == 2000

    def test_non_mapping_rejected(self, tmp_dir):
        path = tmp_dir / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_options(path)


class TestToolDiscovery:
    def test_nothing_installed(self, monkeypatch):
        monkeypatch.setattr(config.shutil, "which", lambda name: None)
        tools = probe_tools()
        assert tools == ResolvedTools()
        assert not tools.has_ffmpeg
        assert not tools.has_imagemagick

    def test_prefers_magick(self, monkeypatch):
        monkeypatch.setattr(config.shutil, "which", lambda name: f"/opt/bin/{name}")
        tools = probe_tools()
        assert tools.ffmpeg == Path("/opt/bin/ffmpeg")
        assert tools.magick == Path("/opt/bin/magick")
        assert tools.magick_name == "magick"

    def test_primary_backend(self):
        assert primary_backend(ResolvedTools()) == "pillow"
        assert primary_backend(ResolvedTools(magick=Path("magick"))) == "imagemagick"
        assert primary_backend(ResolvedTools(ffmpeg=Path("ffmpeg"))) == "ffmpeg"

    def test_diagnostics_report(self):
        report = diagnostics_report(ResolvedTools())
        assert report.startswith("imgassembly diagnostics")
        assert "Primary animation backend: pillow" in report
        assert "static single-frame" in report

    def test_report_uses_resolved_tools_only(self, monkeypatch):
        calls = []

        def fake_probe():
            calls.append(1)
            return ResolvedTools(magick=Path("/nonexistent/magick"), magick_name="magick")

        monkeypatch.setattr(detection, "probe_tools", fake_probe)
        report = diagnostics_report()
        assert calls == [1]
        assert "imagemagick (magick)" in report
        assert "[/nonexistent/magick]" in report
        assert "Primary animation backend: imagemagick" in report

    def test_versions(self):
        assert tool_version(None) is None
        assert tool_version(Path("/nonexistent/ffmpeg")) is None
        assert library_version("Pillow")
        assert library_version("no-such-distribution-xyz") is None


class TestLocalPublisher:
    def test_writes_under_extension_dir(self, tmp_dir):
        publisher = LocalPublisher(tmp_dir / "out", "http://host:9000/")
        url = publisher(b"GIF89a...", ArtifactKind.ANIMATION)
        name = url.rsplit("/", 1)[-1]
        assert url == f"http://host:9000/outputs/gif/{name}"
        assert (tmp_dir / "out" / "gif" / name).read_bytes() == b"GIF89a..."

    def test_explicit_filename(self, tmp_dir):
        publisher = LocalPublisher(tmp_dir)
        url = publisher(b"%PDF", ArtifactKind.DOCUMENT, filename="book.pdf")
        assert url.endswith("/outputs/pdf/book.pdf")

    def test_failure_raises_publish_error(self, tmp_dir):
        blocker = tmp_dir / "file"
        blocker.write_bytes(b"")
        with pytest.raises(PublishError):
            LocalPublisher(blocker)(b"x", ArtifactKind.ANIMATION)
