"""Dictionary service.

Holds the frequency-ranked word list the scan gate consults. A
Dictionary is created by the caller and handed to the engine; the engine
never loads or owns it.

File format, four lines per entry:

    word  rank
    phonetic
    meaning
    (blank)
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from vocabtrace.exceptions import ConfigError
from vocabtrace.models import normalize_lemma

logger = logging.getLogger(__name__)

_POS_SPLIT_RE = re.compile(r",\s*(?=[a-z]{1,5}\.)")
_POS_PREFIX_RE = re.compile(r"^\s*[a-z]{1,5}\.\s*", re.IGNORECASE)
_PAREN_RE = re.compile(r"[（(][^）)]*[）)]")

MAX_CONCISE_MEANING = 15


@dataclass(frozen=True)
class DictEntry:
    """One dictionary entry.

    Attributes:
        lemma: Normalized headword
        rank: Frequency rank (1 is most common)
        phonetic: Pronunciation
        meaning: Full meaning text
    """

    lemma: str
    rank: Optional[int] = None
    phonetic: str = ""
    meaning: str = ""


def parse_dictionary(text: str) -> dict[str, DictEntry]:
    """Parse dictionary text into entries keyed by lemma.

    Blocks with a missing header or a non-numeric rank are skipped.
    """
    entries: dict[str, DictEntry] = {}
    lines = text.splitlines()

    for i in range(0, len(lines) - 2, 4):
        header = lines[i].strip()
        if not header:
            continue

        parts = header.split()
        if len(parts) < 2:
            continue

        try:
            rank = int(parts[-1])
        except ValueError:
            continue

        lemma = normalize_lemma(parts[0])
        if not lemma:
            continue

        entries[lemma] = DictEntry(
            lemma=lemma,
            rank=rank,
            phonetic=lines[i + 1].strip(),
            meaning=lines[i + 2].strip(),
        )

    return entries


def extract_concise_meaning(full_meaning: str) -> str:
    """Shorten a dictionary meaning to its first sense."""
    trimmed = (full_meaning or "").strip()
    if not trimmed:
        return ""

    first_pos = _POS_SPLIT_RE.split(trimmed)[0]
    bare = _POS_PREFIX_RE.sub("", first_pos).strip()
    if not bare:
        return ""

    first = bare.split("；")[0]
    clean = _PAREN_RE.sub("", first).strip()
    return clean[:MAX_CONCISE_MEANING]


class Dictionary:
    """In-memory dictionary with rank lookup.

    Example:
        >>> dictionary = Dictionary.load("30k-explained.txt")
        >>> dictionary.rank("ubiquitous")
        8123
    """

    def __init__(self, entries: Optional[dict[str, DictEntry]] = None):
        self._entries: dict[str, DictEntry] = dict(entries or {})

    @classmethod
    def from_entries(cls, entries: Iterable[DictEntry | tuple]) -> "Dictionary":
        """Build a dictionary from entries or (lemma, rank) tuples."""
        result = {}
        for item in entries:
            if not isinstance(item, DictEntry):
                lemma, rank, *rest = item
                item = DictEntry(normalize_lemma(lemma), rank, *rest)
            result[item.lemma] = item
        return cls(result)

    @classmethod
    def load(cls, path: str | Path) -> "Dictionary":
        """Load a dictionary file.

        Raises:
            ConfigError: If the file cannot be read
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Dictionary load failed: {path}: {e}") from e

        dictionary = cls(parse_dictionary(text))
        logger.info(f"Dictionary loaded: {len(dictionary)} entries from {path}")
        return dictionary

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, lemma: object) -> bool:
        return isinstance(lemma, str) and normalize_lemma(lemma) in self._entries

    def lookup(self, lemma: str) -> Optional[DictEntry]:
        return self._entries.get(normalize_lemma(lemma))

    def rank(self, lemma: str) -> Optional[int]:
        entry = self.lookup(lemma)
        return entry.rank if entry else None

    def lookup_meaning(self, lemma: str) -> Optional[str]:
        """Concise meaning for a lemma, or None."""
        entry = self.lookup(lemma)
        if entry is None:
            return None
        return extract_concise_meaning(entry.meaning) or None

    def close(self) -> None:
        """Release the loaded entries."""
        self._entries.clear()
