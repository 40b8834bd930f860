from pathlib import Path

import pytest

from tapelib.library import LibraryScanner
from tapelib.metadata_cache import MetadataCache


def _add_files(folder: Path, *names: str, data: bytes = b"not really audio") -> None:
    folder.mkdir(parents=True, exist_ok=True)
    for name in names:
        (folder / name).write_bytes(data)


@pytest.fixture
def add_files():
    return _add_files


@pytest.fixture
def side_a(tmp_path) -> Path:
    return tmp_path / "musics" / "side a"


@pytest.fixture
def side_b(tmp_path) -> Path:
    return tmp_path / "musics" / "side b"


@pytest.fixture
def scanner(tmp_path) -> LibraryScanner:
    return LibraryScanner(tmp_path, cache=MetadataCache())
