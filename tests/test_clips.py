"""
Tests for mapping reward titles onto clip files (clips.py)
"""
from __future__ import annotations

from pathlib import Path

import pytest

from redeemplayer.clips import ClipResolver, slug_from_title


class TestSlugFromTitle:
    """Reward title -> clip name"""

    @pytest.mark.parametrize(
        "title, slug",
        [
            ("Play: Tasty Clip!", "tasty-clip"),
            ("  play:   Big   Win  ", "big-win"),
            ("PLAY: under_score-ok", "under_score-ok"),
            ("Play:NoSpace", "nospace"),
        ],
    )
    def test_matching_titles(self, title: str, slug: str):
        assert slug_from_title(title, "Play:") == slug

    @pytest.mark.parametrize("title", ["Other: Tasty", "", "Play:", "Play:   ", "Play: !!!"])
    def test_titles_without_a_clip_name(self, title: str):
        assert slug_from_title(title, "Play:") is None

    def test_prefix_is_trimmed(self):
        assert slug_from_title("Clip hello there", " Clip ") == "hello-there"


class TestClipResolver:
    """Looking the clip name up in the clips directory"""

    def test_resolves_existing_clip(self, clips_dir: Path):
        clip = clips_dir / "tasty-clip.mp4"
        clip.touch()
        resolver = ClipResolver(clips_dir, "Play:", [".mp4", ".mov"])
        assert resolver.resolve("Play: Tasty Clip!") == clip.resolve()

    def test_extension_order(self, clips_dir: Path):
        (clips_dir / "win.webm").touch()
        (clips_dir / "win.mp4").touch()
        assert ClipResolver(clips_dir, "Play:", [".mp4", ".webm"]).resolve("Play: win").suffix == ".mp4"
        assert ClipResolver(clips_dir, "Play:", [".webm", ".mp4"]).resolve("Play: win").suffix == ".webm"

    def test_falls_through_to_next_extension(self, clips_dir: Path):
        (clips_dir / "win.mkv").touch()
        resolver = ClipResolver(clips_dir, "Play:", [".mp4", ".webm", ".mkv"])
        assert resolver.resolve("Play: win") == (clips_dir / "win.mkv").resolve()

    def test_missing_clip(self, clips_dir: Path):
        resolver = ClipResolver(clips_dir, "Play:", [".mp4"])
        assert resolver.resolve("Play: nothing here") is None

    def test_non_matching_prefix(self, clips_dir: Path):
        (clips_dir / "tasty.mp4").touch()
        resolver = ClipResolver(clips_dir, "Play:", [".mp4"])
        assert resolver.resolve("Hydrate: tasty") is None

    def test_directories_are_not_clips(self, clips_dir: Path):
        (clips_dir / "folder.mp4").mkdir()
        resolver = ClipResolver(clips_dir, "Play:", [".mp4"])
        assert resolver.resolve("Play: folder") is None

    def test_expected_pattern(self, clips_dir: Path):
        resolver = ClipResolver(clips_dir, "Play:", [".mp4", ".webm"])
        pattern = resolver.expected_pattern()
        assert pattern.startswith("\"Play: <name>\"")
        assert pattern.endswith("<name>.{.mp4, .webm}")

    def test_ensure_dir(self, tmp_path: Path):
        resolver = ClipResolver(tmp_path / "nested" / "clips", "Play:", [".mp4"])
        resolver.ensure_dir()
        assert (tmp_path / "nested" / "clips").is_dir()
        # calling it again is fine
        resolver.ensure_dir()

    def test_from_settings(self, settings, tmp_path: Path):
        resolver = ClipResolver.from_settings(settings)
        assert resolver.clips_dir == (tmp_path / "clips").resolve()
        assert resolver.title_prefix == "Play:"
        assert resolver.extensions == [".mp4", ".webm", ".mov", ".mkv"]
