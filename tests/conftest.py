"""Shared fixtures: a small people table as rows, columns and a LazyFrame."""

from datetime import date

import polars as pl
import pytest

from reflex_grid_engine.config import GridSettings
from reflex_grid_engine.types import Column, ColumnType


@pytest.fixture
def settings() -> GridSettings:
    return GridSettings()


@pytest.fixture
def people_rows() -> list[dict]:
    return [
        {"id": 1, "name": "Ann", "age": 34, "joined": date(2024, 1, 15), "active": True},
        {"id": 2, "name": "bob", "age": 27, "joined": date(2023, 11, 2), "active": False},
        {"id": 3, "name": "Cleo", "age": None, "joined": date(2024, 6, 30), "active": True},
        {"id": 4, "name": "", "age": 41, "joined": None, "active": None},
        {"id": 5, "name": "Annika", "age": 27, "joined": date(2024, 3, 1), "active": False},
    ]


@pytest.fixture
def people_columns() -> list[Column]:
    return [
        Column("name"),
        Column("age", column_type=ColumnType.NUMBER),
        Column("joined", column_type=ColumnType.DATE),
        Column("active", column_type=ColumnType.BOOLEAN),
    ]


@pytest.fixture
def people_lf(people_rows: list[dict]) -> pl.LazyFrame:
    return pl.DataFrame(people_rows).lazy()
