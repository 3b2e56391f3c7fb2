"""Process settings with environment variable support."""

from __future__ import annotations

from typing import Any, Literal, Optional, Tuple

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from valkey_manager.cluster.errors import SettingsError

DEFAULT_LISTEN_ADDR = ":8087"


class Settings(BaseSettings):
    """Manager settings, read from the environment or a ``.env`` file."""

    # Kubernetes Settings
    NAMESPACE: str = Field(..., min_length=1, description="Namespace in which the manager and valkey run")
    LABEL_SELECTOR: str = Field("", description="Label selector that uniquely selects our StatefulSet")
    INDEX: int = Field(..., ge=0, description="Ordinal index of this StatefulSet member")
    DEFAULT_RESYNC: float = Field(60.0, gt=0, description="Seconds between full re-lists of the StatefulSet")

    # Valkey Settings
    LOCAL_ADDRESS: str = "127.0.0.1"
    VALKEY_PORT: int = Field(6379, gt=0, le=65535)
    NODE_NAME_PREFIX: str = "valkey-"
    SERVICE_DOMAIN: Optional[str] = None
    RESOLVER: Literal["hostname", "dns"] = "hostname"
    PING_INTERVAL: float = Field(1.0, gt=0)

    # Health Settings
    LISTEN_ADDR: str = DEFAULT_LISTEN_ADDR
    DEBUG: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("LISTEN_ADDR")
    @classmethod
    def _check_listen_addr(cls, value: str) -> str:
        split_listen_addr(value)
        return value

    @property
    def listen_host(self) -> str:
        return split_listen_addr(self.LISTEN_ADDR)[0]

    @property
    def listen_port(self) -> int:
        return split_listen_addr(self.LISTEN_ADDR)[1]

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.DEBUG else "INFO"


def split_listen_addr(addr: str) -> Tuple[str, int]:
    """Split a Go-style ``host:port`` (``:8087`` binds every interface)."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit() or not 0 < int(port) <= 65535:
        raise ValueError(f"invalid listen address {addr!r}, expected host:port")
    return host.strip("[]") or "0.0.0.0", int(port)


def load_settings(**overrides: Any) -> Settings:
    """Load settings, letting ``overrides`` (e.g. CLI flags) win over the environment.

    Raises:
        SettingsError: if a required value is missing or invalid.
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}" for err in e.errors()
        )
        raise SettingsError(f"invalid configuration: {problems}") from e
