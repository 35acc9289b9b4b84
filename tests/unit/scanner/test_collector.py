"""Tests for video file discovery."""

from pathlib import Path

import pytest

from transcoder.scanner import gather_files
from transcoder.scanner.collector import is_excluded


@pytest.fixture
def library(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    (root / "shows" / "s01").mkdir(parents=True)
    (root / "trash").mkdir()
    (root / "movie.mkv").write_bytes(b"x" * 100)
    (root / "notes.txt").write_text("not a video")
    (root / "shows" / "s01" / "ep1.MP4").write_bytes(b"x" * 50)
    (root / "shows" / "s01" / "ep2.webm").write_bytes(b"x" * 5)
    (root / "trash" / "old.mkv").write_bytes(b"x" * 10)
    return root


def names(files) -> list[str]:
    return [f.path.name for f in files]


class TestGatherFiles:
    """Tests for gather_files."""

    def test_walks_recursively_in_sorted_order(self, library: Path):
        files = gather_files(library)

        assert names(files) == ["movie.mkv", "ep1.MP4", "ep2.webm", "old.mkv"]
        assert files[0].size == 100

    def test_excluded_directory_is_pruned(self, library: Path):
        assert "old.mkv" not in names(gather_files(library, exclude=["trash"]))

    def test_excluded_file(self, library: Path):
        assert names(gather_files(library, exclude=["ep2"])) == [
            "movie.mkv",
            "ep1.MP4",
            "old.mkv",
        ]

    def test_min_size(self, library: Path):
        assert names(gather_files(library, min_size=50)) == ["movie.mkv", "ep1.MP4"]

    def test_extensions_ignore_case_and_dot(self, library: Path):
        assert names(gather_files(library, extensions=[".MKV"])) == [
            "movie.mkv",
            "old.mkv",
        ]

    def test_single_file_is_returned_unfiltered(self, library: Path):
        notes = library / "notes.txt"

        files = gather_files(notes, min_size=1000)

        assert [f.path for f in files] == [notes]

    def test_missing_path(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            gather_files(tmp_path / "nope")

    def test_empty_directory(self, tmp_path: Path):
        assert gather_files(tmp_path) == []


def test_is_excluded():
    assert is_excluded("/media/trash/a.mkv", ["trash"])
    assert not is_excluded("/media/tv/a.mkv", ["trash", "sample"])
    assert not is_excluded("/media/tv/a.mkv", [])
