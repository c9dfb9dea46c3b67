"""Tests for settings, exceptions, logging and width storage."""

import json
import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from reflex_grid_engine import log
from reflex_grid_engine.config import GridSettings, clear_settings, get_settings
from reflex_grid_engine.exceptions import (
    ColumnCapabilityError,
    DuplicateColumnError,
    GridConfigError,
    GridEngineError,
    UnknownRowError,
)
from reflex_grid_engine.storage import InMemoryWidthStore, JsonFileWidthStore


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings()
    yield
    clear_settings()


class TestGridSettings:
    def test_defaults(self) -> None:
        settings = GridSettings()
        assert settings.min_column_width == 50
        assert settings.default_row_height == 50
        assert settings.min_row_height == 30
        assert settings.page_size == 50
        assert settings.load_more_threshold == 20

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REFLEX_GRID_PAGE_SIZE", "100")
        monkeypatch.setenv("REFLEX_GRID_LOG_LEVEL", "DEBUG")
        settings = GridSettings()
        assert settings.page_size == 100
        assert settings.log_level == "DEBUG"

    def test_bounds_are_validated(self, monkeypatch: pytest.MonkeyPatch) -> None:
        with pytest.raises(ValidationError):
            GridSettings(page_size=0)
        with pytest.raises(ValidationError):
            GridSettings(default_row_height=20)

    def test_get_settings_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = get_settings()
        assert get_settings() is first
        monkeypatch.setenv("REFLEX_GRID_PAGE_SIZE", "10")
        assert get_settings().page_size == first.page_size
        clear_settings()
        assert get_settings().page_size == 10


class TestExceptions:
    def test_hierarchy(self) -> None:
        assert issubclass(DuplicateColumnError, GridConfigError)
        assert issubclass(GridConfigError, GridEngineError)
        assert issubclass(UnknownRowError, GridEngineError)

    def test_context_in_message(self) -> None:
        exc = ColumnCapabilityError("id", "sortable")
        assert str(exc) == "Column 'id' is not sortable (column_id='id', capability='sortable')"
        assert exc.message == "Column 'id' is not sortable"

    def test_plain_message(self) -> None:
        assert str(GridEngineError("boom")) == "boom"


class TestLogging:
    def test_warnings_reach_package_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger=log.LOGGER_NAME):
            log.warn("[Test] something ignored")
        assert "[Test] something ignored" in caplog.text

    def test_set_level_by_name(self) -> None:
        previous = log.get_logger().level
        try:
            log.set_level("error")
            assert log.get_logger().level == logging.ERROR
        finally:
            log.set_level(previous)


class TestWidthStores:
    def test_in_memory(self) -> None:
        store = InMemoryWidthStore({"a": 10})
        store.save("b", 20)
        assert store.load("a") == 10
        assert store.load("b") == 20
        assert store.load("c") is None
        assert "b" in store

    def test_json_file_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "widths.json"
        store = JsonFileWidthStore(path)
        assert store.load("grid.name") is None
        store.save("grid.name", 240)
        store.save("grid.age", 80)
        assert JsonFileWidthStore(path).load("grid.name") == 240
        assert json.loads(path.read_text()) == {"grid.age": 80, "grid.name": 240}

    def test_corrupt_file_is_treated_as_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "widths.json"
        path.write_text("{broken")
        store = JsonFileWidthStore(path)
        assert store.load("grid.name") is None
        store.save("grid.name", 120)
        assert store.load("grid.name") == 120

    def test_non_numeric_entries_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "widths.json"
        path.write_text(json.dumps({"a": "wide", "b": 90.0}))
        store = JsonFileWidthStore(path)
        assert store.load("a") is None
        assert store.load("b") == 90
