"""
Shared fixtures for the checkpoint archiver tests.
"""

import tempfile
from pathlib import Path

import pytest


def write_checkpoint(root: Path, epoch: int, with_files: bool = True) -> Path:
    """Create ``root/epoch_<epoch>`` with two files and a nested one."""
    path = root / f"epoch_{epoch}"
    path.mkdir(parents=True)
    if with_files:
        (path / "file1").write_bytes(b"Lorem ipsum")
        (path / "file2").write_bytes(b"Lorem ipsum")
        (path / "data").mkdir()
        (path / "data" / "file3").write_bytes(b"Lorem ipsum")
    return path


def read_tree(root: Path) -> dict:
    """Every file below ``root`` as relative path -> bytes."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()
    }


@pytest.fixture
def local_dir():
    """Temporary local checkpoint directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def remote_dir():
    """Temporary directory acting as the remote archive."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_checkpoint():
    """Factory creating a checkpoint directory."""
    return write_checkpoint


@pytest.fixture
def tree():
    """Reader returning a directory's files."""
    return read_tree
