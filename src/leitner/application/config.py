from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from leitner.domain.constants import DEFAULT_REVIEW_INTERVALS, REQUEST_TIMEOUT
from leitner.domain.models import DuePolicy
from leitner.domain.scheduling import IntervalTable


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/leitner/config.toml",
        Path.home() / ".leitner.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for leitner.
    Supports loading from:
    1. Environment variables (LEITNER_*)
    2. Config file (~/.config/leitner/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="LEITNER_",
        extra="ignore",
    )

    # Store
    backend: Literal["memory", "sqlite", "rest"] = "sqlite"
    db_path: Path = Field(default_factory=lambda: Path.home() / ".config/leitner/leitner.db")
    rest_url: str = "http://localhost:54321/rest/v1"
    rest_api_key: str | None = None
    request_timeout: float = REQUEST_TIMEOUT

    # Identity
    user_id: str = "local"

    # Scheduling
    review_intervals: list[int] = Field(default_factory=lambda: list(DEFAULT_REVIEW_INTERVALS))
    due_policy: DuePolicy = DuePolicy.CALENDAR_DAY
    await_persistence: bool = True

    # Logging
    verbose: int = 0  # 0 warnings, 1 info, 2+ debug

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in config_files() if f.exists()), None)

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("review_intervals")
    @classmethod
    def validate_intervals(cls, v: list[int]) -> list[int]:
        # Raises ValueError, which pydantic reports as a validation error
        IntervalTable.from_sequence(v)
        return v

    @field_validator("db_path", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @property
    def interval_table(self) -> IntervalTable:
        return IntervalTable.from_sequence(self.review_intervals)


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/leitner/config.toml (if exists)
    3. Environment variables (LEITNER_*)
    4. cli_overrides (passed from Typer)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
