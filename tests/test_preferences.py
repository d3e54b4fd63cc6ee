from __future__ import annotations

import json
from datetime import timedelta

from src.app.preferences import Preferences, PreferencesStore


def test_missing_file_is_created_with_defaults(tmp_path) -> None:
    path = tmp_path / "nested" / "preferences.json"
    store = PreferencesStore(path)

    preferences = store.load()

    assert preferences == Preferences()
    assert json.loads(path.read_text(encoding="utf-8")) == {
        "interrogations_enabled": True,
        "question_cache_ttl_days": None,
    }


def test_update_persists_changes(tmp_path) -> None:
    store = PreferencesStore(tmp_path / "preferences.json")

    updated = store.update(interrogations_enabled=False, question_cache_ttl_days=3)

    assert updated.interrogations_enabled is False
    assert store.load() == Preferences(interrogations_enabled=False, question_cache_ttl_days=3)


def test_corrupt_file_is_backed_up_and_reset(tmp_path) -> None:
    path = tmp_path / "preferences.json"
    path.write_text("{not json", encoding="utf-8")
    store = PreferencesStore(path)

    preferences = store.load()

    assert preferences == Preferences()
    backups = list(tmp_path.glob("preferences.backup.*.json"))
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "{not json"
    assert json.loads(path.read_text(encoding="utf-8"))["interrogations_enabled"] is True


def test_non_object_document_is_treated_as_corrupt(tmp_path) -> None:
    path = tmp_path / "preferences.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert PreferencesStore(path).load() == Preferences()
    assert len(list(tmp_path.glob("preferences.backup.*.json"))) == 1


def test_invalid_values_fall_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "preferences.json"
    path.write_text(json.dumps({"interrogations_enabled": "no", "question_cache_ttl_days": -2}), encoding="utf-8")

    assert PreferencesStore(path).load() == Preferences()


def test_cache_ttl_resolution_order(tmp_path) -> None:
    store = PreferencesStore(tmp_path / "preferences.json")

    assert store.cache_ttl() == timedelta(days=7)

    store.update(question_cache_ttl_days=2)
    assert store.cache_ttl() == timedelta(days=2)
    assert store.cache_ttl(timedelta(hours=5)) == timedelta(hours=5)


def test_loaded_preferences_are_kept_in_memory(tmp_path) -> None:
    path = tmp_path / "preferences.json"
    store = PreferencesStore(path)
    store.save(Preferences(interrogations_enabled=False))

    path.write_text(json.dumps({"interrogations_enabled": True}), encoding="utf-8")
    assert store.load().interrogations_enabled is False

    path.unlink()
    assert store.load().interrogations_enabled is False
    assert not path.exists()

    path.write_text(json.dumps({"interrogations_enabled": True}), encoding="utf-8")
    assert store.reload().interrogations_enabled is True
    assert store.update(question_cache_ttl_days=4).question_cache_ttl_days == 4
    assert store.load() == Preferences(interrogations_enabled=True, question_cache_ttl_days=4)
