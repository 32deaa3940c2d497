"""Configuration management for scanchat."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from scanchat.exceptions import ConfigurationError


# Paths
DEFAULT_CONFIG_PATH = Path("~/.scanchat/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"


class ModelConfig(BaseModel):
    """Model provider configuration."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    default_temperature: float = 0.4
    default_max_tokens: int = 1000
    request_timeout: int = 120
    token_limits: dict[str, int] = Field(
        default_factory=lambda: {
            "gpt-3.5-turbo-instruct": 8000,
            "gpt-3.5-turbo": 8000,
            "gpt-4": 8000,
        }
    )
    reserved_tokens: int = 2000
    # Requested model id -> upstream model name. Unmapped ids are sent as-is.
    upstream_models: dict[str, str] = Field(default_factory=dict)
    system_prompt: str = "You are a helpful cybersecurity assistant."


class ChatConfig(BaseModel):
    """Chat endpoint behaviour."""

    usage_cap_warning: str = "Hold On! You've Hit Your Usage Cap."
    browsing_model: str = "gpt-3.5-turbo"


class StatusCheckConfig(BaseModel):
    """External user status and tool rate-limit collaborators."""

    skip: bool = False
    url: str = ""
    tool_rate_limit_url: str = ""
    timeout: int = 15


class RetrievalConfig(BaseModel):
    """Vector-store context augmentation."""

    enabled: bool = False
    embedding_model: str = "text-embedding-ada-002"
    index_url: str = ""
    api_key: str = ""
    namespace: str = ""
    top_k: int = 5
    min_matches: int = 3
    score_threshold: float = 0.8
    max_context_chars: int = 7500
    min_message_chars: int = 30
    max_message_chars: int = 3000
    english_threshold: int = 20
    system_prompt: str = ""
    translation_base_url: str = "https://openrouter.ai/api/v1"
    translation_api_key: str = ""
    translation_model: str = ""
    timeout: int = 20


class BrowsingConfig(BaseModel):
    """Live web search used by the browsing model."""

    enabled: bool = False
    api_key: str = ""
    base_url: str = "https://api.search.brave.com/res/v1/web/search"
    max_results: int = 5
    timeout: int = 20


class PluginToolConfig(BaseModel):
    """Per-tool switches."""

    enabled: bool = False
    heartbeat_interval: float | None = None
    request_timeout: float | None = None


class PluginsConfig(BaseModel):
    """Remote scanning plugin service configuration."""

    base_url: str = "http://localhost:8080"
    auth_token: str = ""
    host_header: str = "plugins.hackergpt.co"
    alterx: PluginToolConfig = Field(default_factory=PluginToolConfig)
    katana: PluginToolConfig = Field(default_factory=PluginToolConfig)
    subfinder: PluginToolConfig = Field(default_factory=PluginToolConfig)

    def for_tool(self, name: str) -> PluginToolConfig:
        """Return the switches of one tool by its command name."""
        return getattr(self, name, None) or PluginToolConfig()


class StreamingConfig(BaseModel):
    """Client stream framing."""

    progress_framing: Literal["sse", "plain"] = "sse"


class WebConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origin: str = "https://www.hackergpt.chat"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for scanchat."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    status: StatusCheckConfig = Field(default_factory=StatusCheckConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    browsing: BrowsingConfig = Field(default_factory=BrowsingConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="SCANCHAT_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read config {config_path}: {e}") from e

        return cls(**data)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Environment and .env win over YAML values passed as init kwargs."""
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def load(cls) -> "Config":
        """Load configuration, preferring env vars over YAML."""
        return cls.from_yaml()

    def upstream_model_for(self, model: str) -> str:
        """Provider model name for a client-facing model id."""
        return self.model.upstream_models.get(model, model)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
