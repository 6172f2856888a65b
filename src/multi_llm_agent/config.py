"""Application configuration repository.

Centralizes access to configuration values loaded from environment variables
or other sources. Provides a clean interface for all application layers.

This module implements the Repository pattern for configuration management,
decoupling adapters, sessions and failover from environment variable access.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_SERVICES = ["openai:gpt-4o"]


@dataclass
class AppConfig:
    """Application configuration container.

    Values are typically loaded from environment variables during
    initialization (see ``init_runtime()``).
    """

    # API Keys
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    google_api_key: Optional[str] = None

    # Backend services, tried in order by the failover controller
    services: List[str] = field(default_factory=lambda: list(DEFAULT_SERVICES))

    # Generation settings
    parse_tool_calls: bool = False
    streaming: bool = True
    temperature: float = 0.7
    max_tokens: Optional[int] = None

    # Dispatch loop / failover settings (max_hops=0 means unbounded)
    max_hops: int = 25
    failover_rounds: int = 3

    def validate(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            list[str]: List of warning messages for missing or invalid configuration.
        """
        issues = []

        providers = {service.split(":", 1)[0].strip().lower() for service in self.services}

        if "openai" in providers and not self.openai_api_key:
            issues.append("OPENAI_API_KEY not set - OpenAI services will be unavailable")

        if "gemini" in providers and not self.google_api_key:
            issues.append("GOOGLE_API_KEY not set - Gemini services will be unavailable")

        if not self.services:
            issues.append("LLM_SERVICES is empty - no backend service configured")

        if not 0.0 <= self.temperature <= 2.0:
            issues.append(f"Invalid LLM_TEMPERATURE: {self.temperature}")

        if self.max_tokens is not None and self.max_tokens <= 0:
            issues.append(f"Invalid LLM_MAX_TOKENS: {self.max_tokens}")

        if self.max_hops < 0:
            issues.append(f"Invalid AGENT_MAX_HOPS: {self.max_hops}")

        if self.failover_rounds <= 0:
            issues.append(f"Invalid FAILOVER_ROUNDS: {self.failover_rounds}")

        return issues


# Global configuration instance (set once at startup)
_config: Optional[AppConfig] = None


def _get_env_bool(key: str, default: bool) -> bool:
    val_str = os.getenv(key)
    if val_str is None:
        return default
    return val_str.strip().lower() in ("true", "1", "yes")


def _get_env_float(key: str, default: float) -> float:
    """Safely parse float from environment variable with fallback."""
    val_str = os.getenv(key)
    if val_str is None:
        return default
    try:
        return float(val_str)
    except (ValueError, TypeError):
        logger.warning("Invalid value for %s: '%s'. Using default value: %s.", key, val_str, default)
        return default


def _get_env_int(key: str, default: Optional[int]) -> Optional[int]:
    """Safely parse int from environment variable with fallback."""
    val_str = os.getenv(key)
    if val_str is None or val_str.strip() == "":
        return default
    try:
        return int(val_str)
    except (ValueError, TypeError):
        logger.warning("Invalid value for %s: '%s'. Using default value: %s.", key, val_str, default)
        return default


def _parse_services(raw: Optional[str]) -> List[str]:
    if raw is None:
        return list(DEFAULT_SERVICES)
    return [service.strip() for service in raw.split(",") if service.strip()]


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables.

    This should be called once during application initialization
    (typically from init_runtime()).

    Returns:
        AppConfig: Configuration instance populated from environment variables.
    """
    config = AppConfig(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_base_url=os.getenv("OPENAI_BASE_URL"),
        google_api_key=os.getenv("GOOGLE_API_KEY"),
        services=_parse_services(os.getenv("LLM_SERVICES")),
        parse_tool_calls=_get_env_bool("LLM_PARSE_TOOL_CALLS", False),
        streaming=_get_env_bool("LLM_STREAMING", True),
        temperature=_get_env_float("LLM_TEMPERATURE", 0.7),
        max_tokens=_get_env_int("LLM_MAX_TOKENS", None),
        max_hops=_get_env_int("AGENT_MAX_HOPS", 25),
        failover_rounds=_get_env_int("FAILOVER_ROUNDS", 3),
    )

    # Log validation issues
    for issue in config.validate():
        logger.warning(issue)

    return config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance.

    Args:
        config: AppConfig instance to use globally.

    Raises:
        RuntimeError: If configuration has already been set.
    """
    global _config
    if _config is not None:
        raise RuntimeError("Configuration already set. Call reset_config() first.")
    _config = config
    logger.debug("Configuration initialized")


def get_config() -> AppConfig:
    """Get the global configuration instance.

    Raises:
        RuntimeError: If configuration has not been initialized.
                     Call init_runtime() first.
    """
    if _config is None:
        raise RuntimeError(
            "Configuration not initialized. Call init_runtime() at application startup."
        )
    return _config


def reset_config() -> None:
    """Reset configuration state (for testing purposes only)."""
    global _config
    _config = None


def is_config_initialized() -> bool:
    """Check if configuration has been initialized."""
    return _config is not None
