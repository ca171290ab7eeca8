"""
Configuration Management
Loads settings from YAML files and environment variables
"""
import yaml
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    environment: str = "development"
    debug: bool = True

    # API Settings
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Externally visible base URL (scheme + host) used for webhook signatures
    public_base_url: Optional[str] = None

    # Twilio webhook shared secret
    twilio_auth_token: Optional[str] = None

    # Supabase
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None

    # AskBob completion service
    llm_provider: str = "groq"
    groq_api_key: Optional[str] = None
    askbob_model: Optional[str] = None
    askbob_timeout_seconds: float = 30.0
    askbob_temperature: float = 0.3
    askbob_max_tokens: int = 1500

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()


class ConfigManager:
    """Manages loading and merging configuration from multiple sources"""

    def __init__(self, env: str = "development"):
        self.env = env
        self.config_dir = Path(__file__).parent.parent.parent / "config"
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration files in order of precedence"""
        default_path = self.config_dir / "default.yaml"
        if default_path.exists():
            self._config = self._load_yaml(default_path)

        env_path = self.config_dir / f"{self.env}.yaml"
        if env_path.exists():
            self._deep_merge(self._config, self._load_yaml(env_path))

        providers_path = self.config_dir / "providers.yaml"
        if providers_path.exists():
            self._deep_merge(self._config, self._load_yaml(providers_path))

        self._substitute_env_vars(self._config)

    def _load_yaml(self, path: Path) -> Dict:
        """Load YAML file"""
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def _substitute_env_vars(self, config: Dict) -> None:
        """Replace ${VAR_NAME} with environment variable values (empty when unset)"""
        for key, value in config.items():
            if isinstance(value, dict):
                self._substitute_env_vars(value)
            elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
                config[key] = os.getenv(value[2:-1]) or None

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Recursively merge override into base"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: config.get("providers.llm.active") -> "groq"
        """
        value = self._config

        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_provider_config(self, provider_type: str) -> Dict:
        """Get active provider configuration"""
        active = self.get(f"providers.{provider_type}.active")
        if not active:
            raise ValueError(f"No active {provider_type} provider configured")

        return dict(self.get(f"providers.{provider_type}.{active}", {}) or {})


def get_llm_provider_settings(settings: Settings) -> tuple[str, dict]:
    """
    Resolve the active completion provider and its config.

    YAML supplies defaults; GROQ_API_KEY and ASKBOB_MODEL override them.
    """
    manager = ConfigManager(env=settings.environment)
    name = manager.get("providers.llm.active") or settings.llm_provider

    try:
        config = manager.get_provider_config("llm")
    except ValueError:
        config = {}

    if settings.groq_api_key:
        config["api_key"] = settings.groq_api_key
    if settings.askbob_model:
        config["model"] = settings.askbob_model
    config.setdefault("temperature", settings.askbob_temperature)
    config.setdefault("max_tokens", settings.askbob_max_tokens)
    config.setdefault("timeout_seconds", settings.askbob_timeout_seconds)
    return name, config
