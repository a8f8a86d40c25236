from pathlib import Path

import pytest

from gamerelay.settings import ScanningConfig
from gamerelay.tokens import PathRoots
from gamerelay.utils import EMPTY_VERSION

MB = 1_000_000


def make_exe(path: Path, size: int = 2 * MB) -> Path:
    """Sparse file of `size` bytes; only st_size matters to the scanner."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)
    return path


def no_version(exe_path: str):
    return EMPTY_VERSION


@pytest.fixture
def rules():
    return ScanningConfig()


@pytest.fixture
def games(tmp_path):
    root = tmp_path / "Games"
    root.mkdir()
    return root


@pytest.fixture
def roots(tmp_path, games):
    return PathRoots(games_root=str(games), cache_root=str(tmp_path / "Cache"), relay_dir=str(tmp_path))
