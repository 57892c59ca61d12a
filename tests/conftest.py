import copy
import pytest

from fs_volume_search.config.config import DEFAULT_CONFIG
from fs_volume_search.volumes import Volume, VolumeType


class StaticEnumerator:
    """Volume source returning a fixed list and counting calls."""

    def __init__(self, volumes):
        self.volumes = list(volumes)
        self.calls = 0

    def enumerate(self):
        self.calls += 1
        return list(self.volumes)


def make_volume(path, identifier=None, volume_type=VolumeType.LOCAL, total=0, free=0):
    return Volume(
        identifier=identifier or str(path),
        mountpoint=str(path),
        type=volume_type,
        fstype='ext4',
        total_bytes=total,
        free_bytes=free,
    )


def build_tree(root, files):
    """Create ``files`` (paths relative to ``root``) with small contents."""
    root.mkdir(parents=True, exist_ok=True)
    for rel in files:
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"content of {rel}")
    return root


@pytest.fixture
def test_config():
    config = copy.deepcopy(DEFAULT_CONFIG)
    config['search']['poll_interval_ms'] = 10
    config['search']['progress_every'] = 2
    config['logging']['file'] = ''
    config['logging']['console'] = False
    return config


@pytest.fixture
def volume_factory():
    return make_volume


@pytest.fixture
def enumerator_factory():
    return StaticEnumerator


@pytest.fixture
def tree_factory():
    return build_tree
