"""Configuration management using Pydantic settings.

Two-layer configuration system:
1. Environment: Loads raw values from environment variables (UPPER_CASE)
2. Settings: Clean settings with lowercase fields

List and mapping values are read as JSON, e.g.
METRICS_TAGS='{"env": "prod"}' or METRICS_DENY='["python_gc"]'.
"""

import re

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from metrics_bootstrap.exceptions import ConfigurationError
from metrics_bootstrap.metrics.binders import BINDERS

_DEFAULT_BINDERS = list(BINDERS)
_LABEL_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_RESERVED_TAG_KEYS = frozenset({"le", "quantile"})


class Environment(BaseSettings):
    """Raw environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    METRICS_USE_GLOBAL_REGISTRY: bool = Field(default=True)
    METRICS_TAGS: dict[str, str] = Field(default_factory=dict)
    METRICS_BINDERS: list[str] = Field(default_factory=lambda: list(_DEFAULT_BINDERS))
    METRICS_DENY: list[str] = Field(default_factory=list)
    METRICS_ACCEPT: list[str] = Field(default_factory=list)


class Settings(BaseModel):
    """Metrics settings with lowercase fields."""

    model_config = ConfigDict(from_attributes=True)

    metrics_use_global_registry: bool = True
    metrics_tags: dict[str, str] = Field(default_factory=dict)
    metrics_binders: list[str] = Field(default_factory=lambda: list(_DEFAULT_BINDERS))
    metrics_deny: list[str] = Field(default_factory=list)
    metrics_accept: list[str] = Field(default_factory=list)

    def validate_config(self) -> None:
        errors: list[str] = []

        for key in self.metrics_tags:
            if not _LABEL_NAME.match(key) or key.startswith("__"):
                errors.append(f"METRICS_TAGS key {key!r} is not a valid label name")
            elif key in _RESERVED_TAG_KEYS:
                errors.append(f"METRICS_TAGS key {key!r} is reserved")

        unknown = [name for name in self.metrics_binders if name not in BINDERS]
        if unknown:
            errors.append(
                f"METRICS_BINDERS contains unknown binders {unknown}; "
                f"expected any of {sorted(BINDERS)}"
            )

        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            )

    @classmethod
    def load(cls, env: "Environment | None" = None) -> "Settings":
        if env is None:
            env = Environment()

        return cls(
            metrics_use_global_registry=env.METRICS_USE_GLOBAL_REGISTRY,
            metrics_tags=env.METRICS_TAGS,
            metrics_binders=env.METRICS_BINDERS,
            metrics_deny=env.METRICS_DENY,
            metrics_accept=env.METRICS_ACCEPT,
        )
