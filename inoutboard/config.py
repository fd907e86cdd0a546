"""Board configuration.

Settings is the central configuration object, frozen after creation and read
from ``INOUTBOARD_*`` environment variables by ``Settings.from_env``.
"""

import logging
import os
import secrets
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from inoutboard.errors import ValidationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "INOUTBOARD_"
DEFAULT_ADMIN_PASSWORD = "admin"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class Settings:
    """Configuration for a board process.

    Attributes:
        database_url: SQLAlchemy URL of the persisted store.
        host: Bind address for ``inoutboard serve``.
        port: Bind port for ``inoutboard serve``.
        admin_password: Shared admin secret.
        cookie_secret: Key used to sign the admin session cookie. A fresh
            random key is generated per process when not configured, which
            logs every admin out on restart.
        auth_enabled: Guard structural mutations behind the admin session.
        heartbeat_interval: Seconds between liveness probes.
        send_queue_size: Outbound messages buffered per observer before
            new events are dropped for it.
        logo_path: Where uploaded logos are written.
        static_dir: Dashboard assets, mounted at ``/`` when the directory exists.
        log_level: Root log level for the CLI.

    """

    database_url: str = "sqlite:///inoutboard.db"
    host: str = "127.0.0.1"
    port: int = 3000
    admin_password: str = DEFAULT_ADMIN_PASSWORD
    cookie_secret: str = field(default_factory=lambda: secrets.token_hex(32))
    auth_enabled: bool = True
    heartbeat_interval: float = 30.0
    send_queue_size: int = 256
    logo_path: Path = field(default_factory=lambda: Path("public/images/logo.png"))
    static_dir: Path = field(default_factory=lambda: Path("public"))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from the environment, falling back to defaults."""
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name.upper())
            return value if value not in (None, "") else None

        kwargs: dict[str, object] = {}
        for name in ("database_url", "host", "admin_password", "cookie_secret", "log_level"):
            value = get(name)
            if value is not None:
                kwargs[name] = value
        for name in ("logo_path", "static_dir"):
            value = get(name)
            if value is not None:
                kwargs[name] = Path(value)
        for name, cast in (
            ("port", int),
            ("send_queue_size", int),
            ("heartbeat_interval", float),
        ):
            value = get(name)
            if value is not None:
                try:
                    kwargs[name] = cast(value)
                except ValueError as exc:
                    msg = f"{ENV_PREFIX}{name.upper()} must be a number, got {value!r}"
                    raise ValidationError(msg) from exc
        auth = get("auth_enabled")
        if auth is not None:
            kwargs["auth_enabled"] = _parse_bool("auth_enabled", auth)

        if "admin_password" not in kwargs:
            logger.warning(
                "%sADMIN_PASSWORD not set, using default password %r",
                ENV_PREFIX,
                DEFAULT_ADMIN_PASSWORD,
            )
        return cls(**kwargs)

    def __post_init__(self) -> None:
        if self.heartbeat_interval <= 0:
            msg = "heartbeat_interval must be positive"
            raise ValidationError(msg)
        if self.send_queue_size < 1:
            msg = "send_queue_size must be at least 1"
            raise ValidationError(msg)


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    msg = f"{ENV_PREFIX}{name.upper()} must be a boolean, got {value!r}"
    raise ValidationError(msg)
