"""User preferences stored as a small JSON document next to the database."""

from __future__ import annotations

import json
import logging
import shutil
import time
from dataclasses import asdict, dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from src.db.question_cache import DEFAULT_CACHE_TTL


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Preferences:
    """Settings the user can change at runtime."""

    interrogations_enabled: bool = True
    question_cache_ttl_days: Optional[float] = None


def _from_document(document: dict) -> Preferences:
    defaults = Preferences()
    enabled = document.get("interrogations_enabled")
    if not isinstance(enabled, bool):
        enabled = defaults.interrogations_enabled

    ttl_days = document.get("question_cache_ttl_days")
    if isinstance(ttl_days, bool) or not isinstance(ttl_days, (int, float)) or ttl_days <= 0:
        ttl_days = defaults.question_cache_ttl_days

    return Preferences(interrogations_enabled=enabled, question_cache_ttl_days=ttl_days)


class PreferencesStore:
    """Read and write ``Preferences`` in a JSON file.

    A missing file is created with defaults. A file that cannot be parsed is
    copied to ``<stem>.backup.<millis>.json`` and replaced with defaults.

    The file is read once and kept in memory; ``save`` and ``update`` refresh
    the copy, and ``reload`` picks up edits made outside this store.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._current: Optional[Preferences] = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Preferences:
        if self._current is None:
            self._current = self._read()
        return self._current

    def reload(self) -> Preferences:
        self._current = self._read()
        return self._current

    def _read(self) -> Preferences:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            LOGGER.info("Preferences file %s not found, creating it with defaults.", self._path)
            return self.save(Preferences())

        try:
            document: Any = json.loads(raw)
        except json.JSONDecodeError as exc:
            LOGGER.error("Preferences file %s is not valid JSON: %s", self._path, exc)
            return self._recover_corrupt_file()

        if not isinstance(document, dict):
            LOGGER.error("Preferences file %s does not contain a JSON object.", self._path)
            return self._recover_corrupt_file()

        return _from_document(document)

    def save(self, preferences: Preferences) -> Preferences:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(asdict(preferences), indent=2), encoding="utf-8")
        self._current = preferences
        return preferences

    def update(self, **changes: Any) -> Preferences:
        """Apply ``changes`` on top of the stored preferences and persist them."""
        updated = replace(self.load(), **changes)
        return self.save(_from_document(asdict(updated)))

    def cache_ttl(self, override: Optional[timedelta] = None) -> timedelta:
        """Question cache lifetime: explicit override, then the file, then seven days."""
        if override is not None:
            return override
        ttl_days = self.load().question_cache_ttl_days
        if ttl_days is not None:
            return timedelta(days=ttl_days)
        return DEFAULT_CACHE_TTL

    def _recover_corrupt_file(self) -> Preferences:
        backup = self._path.with_name(f"{self._path.stem}.backup.{int(time.time() * 1000)}.json")
        try:
            shutil.copyfile(self._path, backup)
        except OSError:
            LOGGER.exception("Could not back up corrupt preferences file %s.", self._path)
        else:
            LOGGER.warning("Backed up corrupt preferences file to %s.", backup)
        return self.save(Preferences())
