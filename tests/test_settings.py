"""Tests for settings stores."""

import pytest

from plugin_system import JsonFileSettingsStore, MemorySettingsStore


class TestMemorySettingsStore:
    def test_values_are_copied(self):
        value = {"acme": {"autoUpdateEnabled": True}}
        store = MemorySettingsStore()

        store.set("pluginSettings", value)
        value["acme"]["autoUpdateEnabled"] = False
        loaded = store.get("pluginSettings")
        loaded["other"] = {}

        assert store.get("pluginSettings") == {"acme": {"autoUpdateEnabled": True}}

    def test_default(self):
        assert MemorySettingsStore().get("missing", 42) == 42


class TestJsonFileSettingsStore:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "settings.json"
        JsonFileSettingsStore(path).set("pluginSettings", {"acme": {"disabled": True}})
        JsonFileSettingsStore(path).set("theme", "dark")

        store = JsonFileSettingsStore(path)

        assert store.get("pluginSettings") == {"acme": {"disabled": True}}
        assert store.get("theme") == "dark"
        assert [p.name for p in path.parent.iterdir()] == ["settings.json"]

    def test_missing_file(self, tmp_path):
        assert JsonFileSettingsStore(tmp_path / "settings.json").get("pluginSettings") is None

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{broken", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid settings file"):
            JsonFileSettingsStore(path).get("pluginSettings")
