"""Pytest configuration and fixtures."""

import asyncio
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from click.testing import CliRunner

from vocabtrace.api import VocabTrace
from vocabtrace.dictionary import Dictionary
from vocabtrace.storage.sqlite import SQLiteStorage

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

# Rank 1 is the most common word; the scan gate admits rank >= 2000
DICTIONARY_WORDS = [
    ("the", 1),
    ("of", 2),
    ("is", 5),
    ("cat", 1500),
    ("ubiquitous", 8123),
    ("ephemeral", 9050),
    ("serendipity", 12000),
    ("quixotic", 15400),
    ("laconic", 17800),
    ("obfuscate", 19000),
]


class FakeClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli():
    """Get the actual CLI command for testing."""
    from vocabtrace.cli import main
    return main


@pytest.fixture
def home(tmp_path, monkeypatch):
    """Point the home directory (and the config file) at a temp dir."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    return tmp_path


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dictionary():
    return Dictionary.from_entries(DICTIONARY_WORDS)


@pytest.fixture
def storage(tmp_path):
    """Fresh SQLite store."""
    return SQLiteStorage(tmp_path / "storage.db")


@pytest.fixture
def engine(tmp_path, dictionary, clock):
    """Open engine on a temp database with a small dictionary and a fake clock."""
    engine = VocabTrace(tmp_path / "vocabtrace.db", dictionary=dictionary, clock=clock)
    asyncio.run(engine.open())
    yield engine
    asyncio.run(engine.close())


@pytest.fixture
def dictionary_file(temp_dir):
    """Dictionary file in the four-line block format."""
    path = temp_dir / "dictionary.txt"
    blocks = []
    for word, rank in DICTIONARY_WORDS:
        blocks.append(f"{word} {rank}\n/{word}/\nadj. meaning of {word}\n")
    path.write_text("\n".join(blocks), encoding="utf-8")
    return path
