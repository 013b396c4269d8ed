from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from unilex.domain import constants

from .scheduler import SchedulerPolicy


class AppConfig(BaseSettings):
    """
    Configuration model for unilex.
    Supports loading from:
    1. Environment variables (UNILEX_*)
    2. Config file (~/.config/unilex/config.toml or ~/.unilex.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="UNILEX_",
        extra="ignore",
    )

    # Storage
    backend: Literal["memory", "json"] = "json"
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/unilex")

    # Sessions
    profile_id: str = "default"
    default_question_count: int = Field(default=constants.DEFAULT_QUESTION_COUNT, ge=0)
    recap_accuracy_threshold: float = Field(
        default=constants.RECAP_ACCURACY_THRESHOLD, ge=0.0, le=1.0
    )

    # Scheduler policy
    initial_ease: float = Field(default=constants.INITIAL_EASE_FACTOR, gt=0)
    min_ease: float = Field(default=constants.MIN_EASE_FACTOR, gt=0)
    max_ease: float = Field(default=constants.MAX_EASE_FACTOR, gt=0)
    min_interval_hours: float = Field(default=constants.MIN_INTERVAL_HOURS, gt=0)
    second_interval_hours: float = Field(default=constants.SECOND_INTERVAL_HOURS, gt=0)
    max_interval_hours: float = Field(default=constants.MAX_INTERVAL_HOURS, gt=0)
    priority_interval_hours: float = Field(default=constants.PRIORITY_INTERVAL_HOURS, gt=0)

    # 0 = warnings only, 1 = info, 2+ = debug
    verbose: int = Field(default=0, ge=0)

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

        # Init (CLI overrides) wins over env, env wins over the TOML file
        toml_file = next((f for f in _config_files() if f.exists()), None)

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

    @field_validator("data_dir", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("max_ease")
    @classmethod
    def check_ease_bounds(cls, v: float, info: ValidationInfo) -> float:
        min_ease = info.data.get("min_ease")
        if min_ease is not None and v < min_ease:
            raise ValueError(f"max_ease ({v}) must be >= min_ease ({min_ease})")
        return v

    def scheduler_policy(self) -> SchedulerPolicy:
        return SchedulerPolicy(
            initial_ease=self.initial_ease,
            min_ease=self.min_ease,
            max_ease=self.max_ease,
            min_interval_hours=self.min_interval_hours,
            second_interval_hours=self.second_interval_hours,
            max_interval_hours=self.max_interval_hours,
            priority_interval_hours=self.priority_interval_hours,
        )


def _config_files() -> list[Path]:
    # Re-evaluated on each call so a patched HOME is honoured
    return [
        Path.home() / ".config/unilex/config.toml",
        Path.home() / ".unilex.toml",
    ]


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/unilex/config.toml (if exists)
    3. Environment variables (UNILEX_*)
    4. cli_overrides (passed from Typer; None values are ignored)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
