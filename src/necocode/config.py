"""Provider configuration.

Built-in provider defaults are merged with an optional TOML file at
``$XDG_CONFIG_HOME/neco/config.toml`` (``~/.config/neco/config.toml``).
API keys are read from the environment variable named by each provider.

Example config file::

    [general]
    active_provider = "anthropic"

    [model_providers.proxy]
    base_url = "https://llm-proxy.internal"
    api_key_env = "PROXY_TOKEN"
    default_model = "claude-sonnet-4-5"
"""

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from necocode.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "anthropic"
DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MODEL = "claude-opus-4-5"
DEFAULT_MAX_TOKENS = 8192


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ProviderConfigFile(BaseModel):
    """A provider entry as written in the config file."""

    base_url: str | None = None
    api_key: str | None = None
    # Takes precedence over api_key when the variable is set
    api_key_env: str | None = None
    default_model: str | None = None

    def is_available(self) -> bool:
        return self.api_key is not None or (
            self.api_key_env is not None and self.api_key_env in os.environ
        )


class GeneralConfig(BaseModel):
    active_provider: str | None = None


def _builtin_providers() -> dict[str, ProviderConfigFile]:
    return {
        DEFAULT_PROVIDER: ProviderConfigFile(
            base_url=DEFAULT_BASE_URL,
            api_key_env="ANTHROPIC_AUTH_TOKEN",
            default_model=DEFAULT_MODEL,
        ),
    }


def default_config_path() -> Path:
    base = os.getenv("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / "neco" / "config.toml"


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    model_providers: dict[str, ProviderConfigFile] = Field(default_factory=_builtin_providers)

    @classmethod
    def load(cls, path: Path | None = None) -> "AppConfig":
        """Load the config file and merge it over the built-in providers.

        A missing file yields the defaults; an unreadable or invalid one
        is logged and ignored.
        """
        config = cls()
        path = path or default_config_path()
        if not path.is_file():
            return config

        try:
            with path.open("rb") as f:
                user_config = cls.model_validate(tomllib.load(f))
        except (OSError, tomllib.TOMLDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring invalid config file {path}: {e}")
            return config

        # model_validate fills in the built-ins only when the key is absent
        config.model_providers.update(user_config.model_providers)
        config.general = user_config.general
        return config

    def default_provider_name(self) -> str:
        return self.general.active_provider or DEFAULT_PROVIDER


class ProviderSettings(BaseModel):
    """Everything the API client needs to talk to one provider."""

    name: str = DEFAULT_PROVIDER
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    api_key: str = ""
    max_tokens: int = DEFAULT_MAX_TOKENS

    def masked_api_key(self) -> str:
        if not self.api_key:
            return "(no key)"
        if len(self.api_key) <= 8:
            return "*" * len(self.api_key)
        return f"{self.api_key[:4]}...{self.api_key[-4:]}"

    @classmethod
    def from_file_entry(cls, name: str, entry: ProviderConfigFile) -> "ProviderSettings":
        api_key = None
        if entry.api_key_env:
            api_key = os.getenv(entry.api_key_env)
        if api_key is None:
            api_key = entry.api_key or ""
        base_url = os.getenv("ANTHROPIC_BASE_URL") or entry.base_url or DEFAULT_BASE_URL
        return cls(
            name=name,
            base_url=base_url.rstrip("/"),
            model=entry.default_model or DEFAULT_MODEL,
            api_key=api_key,
        )


class ProviderRegistry:
    """Known providers, constructed explicitly and passed to the session.

    Args:
        app_config: Configuration to register providers from. Defaults
            to :meth:`AppConfig.load`.
    """

    def __init__(self, app_config: AppConfig | None = None):
        self.app_config = app_config or AppConfig.load()
        self._providers: dict[str, ProviderConfigFile] = {}
        for name, entry in self.app_config.model_providers.items():
            self.register(name, entry)

    def register(self, name: str, entry: ProviderConfigFile) -> None:
        self._providers[name] = entry

    def get(self, name: str) -> ProviderConfigFile | None:
        return self._providers.get(name)

    def names(self) -> list[str]:
        return list(self._providers)

    def detect(self) -> ProviderSettings:
        """Settings for the first provider with an available API key.

        Falls back to the default provider, then to the first registered.
        """
        for name, entry in self._providers.items():
            if entry.is_available():
                return ProviderSettings.from_file_entry(name, entry)

        name = self.app_config.default_provider_name()
        if name not in self._providers:
            if not self._providers:
                raise ConfigError("No providers registered")
            name = next(iter(self._providers))
        return ProviderSettings.from_file_entry(name, self._providers[name])

    def resolve(self, model_str: str | None = None, validate: bool | None = None) -> ProviderSettings:
        """Settings for ``provider/model``, a bare model name, or ``None``.

        Raises:
            ConfigError: The provider is unknown, the model string is
                malformed, or the API key is missing while validation is
                enabled (``NECO_VALIDATE_MODEL``, default true).
        """
        if validate is None:
            validate = _env_bool("NECO_VALIDATE_MODEL", True)

        if model_str is None:
            settings = self.detect()
        else:
            if "/" in model_str:
                provider_name, _, model = model_str.partition("/")
                if not provider_name or not model:
                    raise ConfigError(
                        f"Invalid model format: '{model_str}'. Expected 'provider/model'"
                    )
            else:
                provider_name, model = self.app_config.default_provider_name(), model_str

            entry = self._providers.get(provider_name)
            if entry is None:
                raise ConfigError(f"Provider '{provider_name}' not found in configuration")
            settings = ProviderSettings.from_file_entry(provider_name, entry)
            settings = settings.model_copy(update={"model": model})

        if validate and not settings.api_key:
            entry = self._providers[settings.name]
            env_var = entry.api_key_env or "API_KEY"
            raise ConfigError(
                f"API key is missing for provider '{settings.name}'. Set the {env_var} "
                "environment variable or configure api_key in the config file"
            )
        return settings
