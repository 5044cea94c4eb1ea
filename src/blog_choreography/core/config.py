"""Settings for the bus and the four services.

One file describes the whole deployment: every role reads the same TOML
and picks its own section.  Environment variables prefixed with ``BLOG_``
(``BLOG_BUS__PORT=9000``) fill in whatever the file leaves unset.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from .enums import ServiceRole
from .errors import ConfigError


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int


class SubscriberConfig(BaseModel):
    name: str
    url: str  # Base URL; events are POSTed to <url>/events
    timeout_seconds: float = 5.0


class BusConfig(ServerConfig):
    port: int = 4005
    subscribers: list[SubscriberConfig] = Field(default_factory=list)
    max_concurrency: int = 16  # Concurrent sends per event
    failure_journal_size: int = 1000


class ReplayConfig(BaseModel):
    timeout_seconds: float = 10.0


class ModerationPolicyConfig(BaseModel):
    disallowed_tokens: list[str] = Field(default_factory=lambda: ["orange"])


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    metrics_port: int = 0  # 0 disables the Prometheus endpoint


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level application settings.

    Keyword arguments (the TOML data) take precedence over ``BLOG_*``
    environment variables, which take precedence over the defaults.
    """

    bus: BusConfig = Field(default_factory=BusConfig)
    posts: ServerConfig = Field(default_factory=lambda: ServerConfig(port=4000))
    comments: ServerConfig = Field(default_factory=lambda: ServerConfig(port=4001))
    query: ServerConfig = Field(default_factory=lambda: ServerConfig(port=4002))
    moderation: ServerConfig = Field(default_factory=lambda: ServerConfig(port=4003))

    # Where services reach the bus
    bus_url: str = "http://localhost:4005"
    # Host name services are reachable under from the bus
    service_host: str = "localhost"

    replay: ReplayConfig = Field(default_factory=ReplayConfig)
    moderation_policy: ModerationPolicyConfig = Field(
        default_factory=ModerationPolicyConfig
    )
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "BLOG_", "env_nested_delimiter": "__"}

    def server_for(self, role: ServiceRole) -> ServerConfig:
        return getattr(self, role.value)

    def subscriber_urls(self) -> list[SubscriberConfig]:
        """Subscribers the bus broadcasts to.

        Explicitly configured subscribers win. Otherwise every service role
        is subscribed at ``service_host`` on its configured port.
        """
        if self.bus.subscribers:
            return list(self.bus.subscribers)
        return [
            SubscriberConfig(
                name=role.value,
                url=f"http://{self.service_host}:{self.server_for(role).port}",
            )
            for role in ServiceRole
            if role is not ServiceRole.BUS
        ]


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Build :class:`Settings` from an optional TOML file.

    *overrides* replace top-level keys from the file.

    Raises:
        ConfigError: the file is missing, is not TOML or holds bad values.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        import tomli

        with open(path, "rb") as f:
            try:
                data = tomli.load(f)
            except tomli.TOMLDecodeError as exc:
                raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    if overrides:
        data.update(overrides)

    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
