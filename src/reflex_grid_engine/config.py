"""Grid engine settings backed by pydantic-settings.

Every numeric policy of the engine (width floors, row heights, page size,
load-more threshold) lives here so a deployment can tune it through the
environment::

    REFLEX_GRID_PAGE_SIZE=100
    REFLEX_GRID_MIN_COLUMN_WIDTH=60

Components accept an explicit :class:`GridSettings`; when none is given
they use the cached :func:`get_settings` instance.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GridSettings(BaseSettings):
    """Layout, paging and logging policy for a grid session.

    Environment prefix: REFLEX_GRID_
    Example: REFLEX_GRID_DEFAULT_ROW_HEIGHT=40
    """

    model_config = SettingsConfigDict(
        env_prefix="REFLEX_GRID_",
        extra="ignore",
    )

    # Columns
    default_column_width: int = Field(default=150, ge=1, description="Width of a column without stored or initial width")
    min_column_width: int = Field(default=50, ge=1, description="Global lower bound for every column width")
    autosize_padding: int = Field(default=20, ge=0, description="Added to the widest measured cell when autosizing")
    scrollbar_width: int = Field(default=20, ge=0, description="Reserved when fitting columns to the container")

    # Gutters
    selection_column_width: int = Field(default=48, ge=0, description="Width of the checkbox gutter")
    index_digit_width: int = Field(default=15, ge=1, description="Per-digit width of the row-number gutter")
    index_padding: int = Field(default=20, ge=0, description="Padding of the row-number gutter")

    # Rows
    default_row_height: int = Field(default=50, ge=1, description="Height seeded for rows entering the window")
    min_row_height: int = Field(default=30, ge=1, description="Lower bound for row resizing")

    # Data window
    page_size: int = Field(default=50, ge=1, description="Rows per incremental load")
    load_more_threshold: int = Field(default=20, ge=0, description="Distance from the end that triggers a load")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    @model_validator(mode="after")
    def _check_row_heights(self) -> "GridSettings":
        if self.default_row_height < self.min_row_height:
            raise ValueError("default_row_height must not be below min_row_height")
        return self


@lru_cache(maxsize=1)
def get_settings() -> GridSettings:
    """Return the process-wide settings (cached).

    Call :func:`clear_settings` to re-read the environment.
    """
    return GridSettings()


def clear_settings() -> None:
    """Drop the cached settings."""
    get_settings.cache_clear()
