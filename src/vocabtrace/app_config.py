"""App-specific configuration for vocabtrace databases.

Provides isolated database paths for each app embedding the engine, so
one app's vocabulary never mixes with another's.

Example:
    >>> from vocabtrace.app_config import AppConfig
    >>> config = AppConfig("reader")
    >>> engine = VocabTrace(config.vocab_db)
    >>> # Creates: ~/.reader/data/vocabulary.db
"""

from pathlib import Path

from vocabtrace.constants import APP_NAME


class AppConfig:
    """App-specific configuration for database paths.

    Each app gets isolated storage in its own directory:
    - ~/.{app_name}/data/vocabulary.db - Vocabulary, encounters and settings
    - ~/.{app_name}/data/dictionary.txt - Default dictionary location

    Args:
        app_name: Unique app identifier (e.g., 'reader')
        base_dir: Override base directory (default: ~/.{app_name})
    """

    def __init__(
        self,
        app_name: str = APP_NAME,
        base_dir: Path | None = None,
    ):
        self.app_name = app_name
        self._base_dir = base_dir or Path.home() / f".{app_name}"
        self._data_dir = self._base_dir / "data"

    @property
    def base_dir(self) -> Path:
        """Base directory for all app data."""
        return self._base_dir

    @property
    def data_dir(self) -> Path:
        """Data directory (created on access)."""
        self._data_dir.mkdir(parents=True, exist_ok=True)
        return self._data_dir

    @property
    def vocab_db(self) -> Path:
        """Path to vocabulary database."""
        return self.data_dir / "vocabulary.db"

    @property
    def dictionary_path(self) -> Path:
        """Default dictionary file."""
        return self.data_dir / "dictionary.txt"

    def __repr__(self) -> str:
        return f"AppConfig(app_name={self.app_name!r}, base_dir={self._base_dir})"


DEFAULT_APP = AppConfig()
