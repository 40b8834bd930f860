import os
from pathlib import Path

import pytest

from tapelib import library
from tapelib.library import AUDIO_EXTENSIONS, LibraryScanner, ScanError, normalize_side
from tapelib.metadata_cache import MetadataEntry
from tapelib.tags import TrackTags


@pytest.fixture
def counting_reader(monkeypatch):
    """Replace the tag reader with one that records every path it parses."""
    calls = []

    def fake_read_tags(path):
        calls.append(path)
        return TrackTags(title=f"Tagged {Path(path).stem}", artist="Artist", album="Album")

    monkeypatch.setattr(library, "read_tags", fake_read_tags)
    return calls


def test_untagged_files_use_filename_fallbacks(scanner, side_a, add_files):
    add_files(side_a, "01_song.mp3", "02-track.mp3")

    tracks = scanner.scan_side("A")

    assert [t.id for t in tracks] == ["A-0", "A-1"]
    assert [t.ordinal for t in tracks] == [1, 2]
    assert [t.title for t in tracks] == ["01 song", "02 track"]
    assert all(t.artist == "Unknown Artist" for t in tracks)
    assert all(t.album == "Unknown Album" for t in tracks)
    assert all(t.album_cover_url is None for t in tracks)


def test_track_fields(scanner, side_b, add_files):
    add_files(side_b, "my song.flac", data=b"12345")

    (track,) = scanner.scan_side("B")

    assert track.to_dict() == {
        "id": "B-0",
        "title": "my song",
        "artist": "Unknown Artist",
        "album": "Unknown Album",
        "filename": "my song.flac",
        "url": "/musics/side b/my%20song.flac",
        "albumCoverUrl": None,
        "sizeBytes": 5,
        "ordinal": 1,
    }


def test_count_matches_allow_listed_files(scanner, side_a, side_b, add_files):
    add_files(side_a, "a.mp3", "b.WAV", "c.Ogg", "d.m4a", "e.FLAC", "notes.txt", "cover.jpg", "f.mp4")
    add_files(side_b, "x.mp3", "readme")
    (side_a / "folder.mp3").mkdir()

    playlists = scanner.scan()

    assert len(playlists.side_a) == 5
    assert len(playlists.side_b) == 1
    assert {Path(t.filename).suffix.lower() for t in playlists.side_a} == AUDIO_EXTENSIONS


def test_missing_directories_give_empty_lists(scanner):
    playlists = scanner.scan()

    assert playlists.side_a == []
    assert playlists.side_b == []
    assert playlists.to_dict() == {"sideA": [], "sideB": []}


def test_ids_unique_and_stable_across_scans(scanner, side_a, add_files):
    add_files(side_a, "c.mp3", "A.mp3", "b.mp3", "D.mp3")

    first = [(t.id, t.filename) for t in scanner.scan_side("A")]
    second = [(t.id, t.filename) for t in scanner.scan_side("A")]

    assert first == second
    assert len({tid for tid, _ in first}) == len(first)
    assert [name for _, name in first] == ["A.mp3", "b.mp3", "c.mp3", "D.mp3"]


def test_cache_hit_skips_tag_reader(scanner, side_a, add_files, counting_reader):
    add_files(side_a, "one.mp3", "two.mp3")

    first = scanner.scan_side("A")
    second = scanner.scan_side("A")

    assert len(counting_reader) == 2
    assert [t.to_dict() for t in first] == [t.to_dict() for t in second]
    assert first[0].title == "Tagged one"


def test_clearing_cache_forces_reextraction(scanner, side_a, add_files, counting_reader):
    add_files(side_a, "one.mp3")
    scanner.scan_side("A")

    scanner.cache.clear()
    scanner.scan_side("A")

    assert len(counting_reader) == 2


def test_cached_entry_is_reused_verbatim(scanner, side_a, add_files, counting_reader):
    add_files(side_a, "one.mp3")
    key = os.path.abspath(side_a / "one.mp3")
    scanner.cache.put(key, MetadataEntry("Cached", "Someone", "Somewhere", "/covers/old.jpg"))

    (track,) = scanner.scan_side("A")

    assert counting_reader == []
    assert (track.title, track.artist, track.album, track.album_cover_url) == (
        "Cached", "Someone", "Somewhere", "/covers/old.jpg")


def test_parse_failure_is_cached_as_fallback(scanner, side_a, add_files, monkeypatch):
    calls = []

    def failing_reader(path):
        calls.append(path)
        return None

    monkeypatch.setattr(library, "read_tags", failing_reader)
    add_files(side_a, "broken_file.mp3")

    scanner.scan_side("A")
    (track,) = scanner.scan_side("A")

    assert len(calls) == 1
    assert track.title == "broken file"


def test_partial_tags_keep_fallbacks(scanner, side_a, add_files, monkeypatch):
    monkeypatch.setattr(library, "read_tags", lambda path: TrackTags(artist="Only Artist"))
    add_files(side_a, "03_untitled.ogg")

    (track,) = scanner.scan_side("A")

    assert (track.title, track.artist, track.album) == ("03 untitled", "Only Artist", "Unknown Album")


def test_embedded_cover_written_by_track_id(scanner, tmp_path, side_b, add_files, monkeypatch):
    monkeypatch.setattr(library, "read_tags", lambda path: TrackTags(title="T", cover=b"raw cover"))
    add_files(side_b, "first.mp3", "second.mp3")

    tracks = scanner.scan_side("B")

    assert [t.album_cover_url for t in tracks] == ["/covers/B-0.jpg", "/covers/B-1.jpg"]
    assert (tmp_path / "covers" / "B-1.jpg").read_bytes() == b"raw cover"


def test_unlistable_directory_raises_scan_error(scanner, side_a, add_files, monkeypatch):
    add_files(side_a, "one.mp3")

    def denied(self):
        raise PermissionError("denied")

    monkeypatch.setattr(Path, "iterdir", denied)

    with pytest.raises(ScanError):
        scanner.scan()


def test_ensure_folders(tmp_path):
    scanner = LibraryScanner(tmp_path)

    scanner.ensure_folders()

    assert (tmp_path / "musics" / "side a").is_dir()
    assert (tmp_path / "musics" / "side b").is_dir()
    assert (tmp_path / "covers").is_dir()


@pytest.mark.parametrize("raw, expected", [
    ("A", "A"), ("b", "B"), (" a ", "A"), ("C", None), ("", None), (None, None), (1, None),
])
def test_normalize_side(raw, expected):
    assert normalize_side(raw) == expected
