"""Tests for settings defaults, env overrides and TOML discovery."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from graph_loader.records import LoadMode
from graph_loader.settings import CONFIG_FILENAME, GraphDBSettings, LoaderSettings, LoadSettings, _find_config_toml


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = LoaderSettings()
    assert settings.graph.uri == "bolt://localhost:7687"
    assert settings.graph.database == ""
    assert settings.load.batch_size == 5000
    assert settings.load.progress_interval == 1000
    assert settings.load.mode is LoadMode.INSERT
    assert str(settings.load.csv_dir) == "csv_output"
    assert settings.load.strict_labels is True
    assert settings.observability.enabled is False


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GRAPH_LOADER_GRAPH__PORT", "7688")
    monkeypatch.setenv("GRAPH_LOADER_LOAD__MODE", "upsert")
    monkeypatch.setenv("GRAPH_LOADER_LOAD__BATCH_SIZE", "250")
    settings = LoaderSettings()
    assert settings.graph.port == 7688
    assert settings.load.mode is LoadMode.UPSERT
    assert settings.load.batch_size == 250


def test_toml_discovered_from_parent(tmp_path, monkeypatch):
    (tmp_path / CONFIG_FILENAME).write_text(
        '[graph]\nhost = "graphdb"\ndatabase = "social"\n\n[load]\nprogress_interval = 0\n',
        encoding="utf-8",
    )
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert _find_config_toml() == tmp_path / CONFIG_FILENAME
    settings = LoaderSettings()
    assert settings.graph.uri == "bolt://graphdb:7687"
    assert settings.graph.database == "social"
    assert settings.load.progress_interval == 0


def test_batch_size_must_be_positive():
    with pytest.raises(ValidationError):
        LoadSettings(batch_size=0)


def test_progress_interval_not_negative():
    with pytest.raises(ValidationError):
        LoadSettings(progress_interval=-1)


def test_uri_from_host_and_port():
    assert GraphDBSettings(host="db", port=1234).uri == "bolt://db:1234"
