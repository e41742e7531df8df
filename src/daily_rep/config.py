"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'generation' in data:
            generation = data['generation']
            flattened['generation_model'] = generation.get('model')
            flattened['generation_temperature'] = generation.get('temperature')
            flattened['generation_timeout_seconds'] = generation.get('timeout_seconds')
            flattened['history_window'] = generation.get('history_window')
            flattened['openai_base_url'] = generation.get('base_url')
        if 'selection' in data:
            flattened['selection_strategy'] = data['selection'].get('strategy')
        if 'scheduler' in data:
            flattened['scheduler_mode'] = data['scheduler'].get('mode')
            flattened['batch_concurrency'] = data['scheduler'].get('concurrency')
        if 'push' in data:
            flattened['device_push_url'] = data['push'].get('device_url')
            flattened['vapid_subject'] = data['push'].get('vapid_subject')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Text generation (OpenAI-compatible gateway)
    openai_api_key: str = Field(default="", description="API key for the generation gateway")
    openai_base_url: str | None = Field(default=None)
    generation_model: str = Field(default="gpt-4o-mini")
    generation_temperature: float = Field(default=0.9, ge=0.0, le=2.0)
    generation_timeout_seconds: float = Field(default=20.0, gt=0)
    history_window: int = Field(default=50, ge=0)

    # Rep selection
    selection_strategy: Literal["catalog", "generative"] = Field(default="generative")

    # Access
    trial_days: int = Field(default=7, ge=0)

    # Authentication (optional: None disables auth)
    app_secret: str | None = Field(default=None)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Scheduled batch
    scheduler_mode: Literal["hourly", "daily"] = Field(default="hourly")
    batch_concurrency: int = Field(default=5, ge=1)

    # Push transports (unset disables the transport)
    device_push_url: str | None = Field(default=None)
    device_push_key: str | None = Field(default=None)
    vapid_private_key: str | None = Field(default=None)
    vapid_subject: str = Field(default="mailto:support@dailyrep.app")

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)
    data_dir: Path | None = Field(default=None)

    @property
    def store_dir(self) -> Path:
        d = self.data_dir or self.project_root / "data"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def prompts_dir(self) -> Path:
        return self.project_root / "config" / "prompts"

    @property
    def seed_path(self) -> Path:
        return self.project_root / "config" / "seed" / "catalog.yaml"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()


def load_generation_prompts() -> dict:
    """Load the rep generation prompt templates from YAML file."""
    prompts_path = get_settings().prompts_dir / "generation.yaml"
    if not prompts_path.exists():
        raise FileNotFoundError(f"Prompts file not found: {prompts_path}")
    with open(prompts_path, encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return data.get('generation', {})
