"""
Configuration management for chainkit.

Supports TOML configuration files with named model sections:
    [runnable]               # Library defaults for runnables
    max_concurrency = 8

    [logging]
    level = "INFO"

    [llm.openai]             # Named model configuration
    model = "gpt-4o-mini"
    base_url = "https://api.openai.com/v1"
    api_key = "sk-..."

    [llm.gpt4]
    model = "gpt-4"
    temperature = 0.7

The file is looked up in $CHAINKIT_CONFIG, then config/config.toml, then
config/config.example.toml. Without any file the library runs on defaults.
"""
import os
import threading
import tomllib
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field, ValidationError


CONFIG_ENV_VAR = "CHAINKIT_CONFIG"


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = get_project_root()


class LLMSettings(BaseModel):
    """Model backend configuration settings."""

    model: str = Field(..., description="Model name")
    base_url: Optional[str] = Field(None, description="API base URL (None = provider default)")
    api_key: Optional[str] = Field(None, description="API key (None = read from the environment)")
    max_tokens: Optional[int] = Field(None, description="Maximum number of tokens per request")
    temperature: Optional[float] = Field(None, description="Sampling temperature")
    max_retries: int = Field(2, description="Retries on transient API errors")
    timeout: Optional[float] = Field(None, description="Request timeout in seconds")


class RunnableSettings(BaseModel):
    """Library defaults applied to every runnable call."""

    max_concurrency: Optional[int] = Field(
        None, description="Default cap on concurrent invocations in a batch (None = unbounded)"
    )


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    level: str = Field("INFO", description="Console log level")
    file_level: str = Field("DEBUG", description="Log file level")
    enable_file: bool = Field(False, description="Write logs under <project>/logs")


class AppConfig(BaseModel):
    """Library configuration."""

    llm: Dict[str, LLMSettings] = Field(default_factory=dict)
    runnable: RunnableSettings = Field(default_factory=RunnableSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


class Config:
    """
    Configuration manager with singleton pattern.

    Usage:
        from chainkit.config import config
        settings = config.get_llm_config("openai")
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize configuration (only once)."""
        if not self._initialized:
            with self._lock:
                if not self._initialized:
                    self._load_config()
                    self._initialized = True

    @staticmethod
    def _get_config_path() -> Optional[Path]:
        """
        Get configuration file path.

        Returns:
            Path to the config file, or None if there is none
        """
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            path = Path(env_path)
            if not path.exists():
                raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to a missing file: {path}")
            return path

        config_dir = PROJECT_ROOT / "config"
        for candidate in ("config.toml", "config.example.toml"):
            path = config_dir / candidate
            if path.exists():
                return path
        return None

    def _load_config_file(self) -> dict:
        """Load and parse the TOML configuration file."""
        config_path = self._get_config_path()
        if config_path is None:
            return {}
        try:
            with config_path.open("rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML format in {config_path}: {e}") from e

    def _parse_llm_config(self, raw_config: dict) -> Dict[str, LLMSettings]:
        """
        Parse model configuration from raw TOML data.

        Only nested tables ([llm.openai], [llm.gpt4], ...) are configurations;
        scalar keys directly under [llm] are shared defaults for all of them.

        Args:
            raw_config: Raw TOML configuration dictionary

        Returns:
            Dictionary mapping config names to LLMSettings objects
        """
        llm_section = raw_config.get("llm", {})
        shared = {k: v for k, v in llm_section.items() if not isinstance(v, dict)}

        configs = {}
        for name, config_dict in llm_section.items():
            if not isinstance(config_dict, dict):
                continue
            try:
                configs[name] = LLMSettings(**{**shared, **config_dict})
            except ValidationError as e:
                raise ValueError(f"Invalid configuration for 'llm.{name}': {e}") from e

        if "openai" in configs and "default" not in configs:
            configs["default"] = configs["openai"]

        return configs

    @staticmethod
    def _parse_section(raw_config: dict, name: str, model: type[BaseModel]) -> BaseModel:
        try:
            return model(**raw_config.get(name, {}))
        except ValidationError as e:
            raise ValueError(f"Invalid '{name}' configuration: {e}") from e

    def _load_config(self):
        """Load and validate configuration."""
        raw_config = self._load_config_file()
        self._config = AppConfig(
            llm=self._parse_llm_config(raw_config),
            runnable=self._parse_section(raw_config, "runnable", RunnableSettings),
            logging=self._parse_section(raw_config, "logging", LoggingSettings),
        )

    @property
    def llm(self) -> Dict[str, LLMSettings]:
        return self._config.llm

    @property
    def runnable(self) -> RunnableSettings:
        return self._config.runnable

    @property
    def logging(self) -> LoggingSettings:
        return self._config.logging

    def get_llm_config(self, name: str = "default") -> LLMSettings:
        """
        Get model configuration by name.

        Raises:
            KeyError: If configuration name not found
        """
        if name not in self.llm:
            available = ", ".join(self.llm.keys()) or "none"
            raise KeyError(
                f"LLM configuration '{name}' not found. "
                f"Available: {available}"
            )
        return self.llm[name]

    def reload(self):
        """Reload configuration from file (useful for testing)."""
        with self._lock:
            self._initialized = False
            self._load_config()
            self._initialized = True


# Global singleton instance
config = Config()
