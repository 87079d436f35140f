"""Engine defaults and environment-driven settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from device_matrix.columns import Column

DEFAULT_PAGE: int = 1
DEFAULT_PAGE_SIZE: int = 10

# Queries longer than this skip the extended-syntax matcher and fall back to
# plain substring containment.
MAX_EXTENDED_QUERY_LENGTH: int = 40

DEFAULT_SEARCH_FIELDS: tuple[Column, ...] = (Column.DEVICE_MODEL, Column.DEVICE_SOURCE)

DEFAULT_FETCH_TIMEOUT: float = 30.0

# Number of facet options a dropdown shows per "show more" step.  The engine
# always returns every option; consumers truncate.
MAX_FILTER_OPTIONS: int = 80

EXPORT_TITLE: str = "eWeLink Device Compatibility Matrix"
EXPORT_SHEET_NAME: str = "template"


class EngineSettings(BaseSettings):
    """Settings overridable through ``DEVICE_MATRIX_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="DEVICE_MATRIX_", env_file=".env", extra="ignore")

    data_url: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    log_level: str = "INFO"


def get_settings() -> EngineSettings:
    """Read settings from the environment (not cached)."""
    return EngineSettings()
