from pathlib import Path

import pytest

from addon_events import CommandContext
from addon_registry import AddonRegistry


@pytest.fixture
def registry():
    registry = AddonRegistry(':memory:')
    yield registry
    registry.close()


@pytest.fixture
def wow_root(tmp_path):
    """A retail install layout with enough artifacts to verify."""
    root = tmp_path / 'World of Warcraft'
    (root / 'Data').mkdir(parents=True)
    (root / '.build.info').write_text('build', encoding='utf-8')
    retail = root / '_retail_'
    (retail / 'Interface' / 'AddOns').mkdir(parents=True)
    (retail / 'Wow.exe').write_bytes(b'')
    return root


@pytest.fixture
def addons_dir(wow_root) -> Path:
    return wow_root / '_retail_' / 'Interface' / 'AddOns'


@pytest.fixture
def recorded_events():
    """A CommandContext plus the list every emitted event is appended to."""
    events = []
    return CommandContext([events.append]), events
