"""
Environment-driven configuration.

Credentials and deployment settings come from CONSUMERVIEW_* environment
variables, optionally loaded from a .env file in the working directory.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from .api import PRODUCTION_URL, AuthenticatedApiClient
from .client import LookupOrchestrator
from .errors import ConfigurationError
from .token_cache import (
    DEFAULT_RACE_GRACE_WINDOW,
    DEFAULT_REFRESH_LEASE,
    MemoryTokenStore,
    TokenCache,
    TokenStore,
    token_cache_key,
)

ENV_PREFIX = "CONSUMERVIEW_"
REQUIRED_VARS = ["USER_ID", "PASSWORD", "CLIENT_ID", "ASSET_ID"]


def load_env(env_path: Optional[Path] = None) -> bool:
    """Load .env from the working directory (or `env_path`) if present.

    Existing environment variables win over values in the file.
    """
    env_path = env_path or Path.cwd() / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(dotenv_path=env_path, override=False)


@dataclass(frozen=True)
class Settings:
    user_id: str
    password: str
    client_id: str
    asset_id: str
    base_url: str = PRODUCTION_URL
    token_db: Optional[str] = None
    timeout: float = 30.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from CONSUMERVIEW_* variables.

        Raises:
            ConfigurationError: If credentials are missing or a value is invalid
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            value = env.get(ENV_PREFIX + name, default)
            return value.strip() if isinstance(value, str) else value

        missing = [ENV_PREFIX + name for name in REQUIRED_VARS if not get(name)]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

        raw_timeout = get("TIMEOUT", "30")
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise ConfigurationError(f"{ENV_PREFIX}TIMEOUT must be a number, got {raw_timeout!r}") from None

        return cls(
            user_id=get("USER_ID"),
            password=get("PASSWORD"),
            client_id=get("CLIENT_ID"),
            asset_id=get("ASSET_ID"),
            base_url=get("BASE_URL") or PRODUCTION_URL,
            token_db=get("TOKEN_DB") or None,
            timeout=timeout,
            log_level=(get("LOG_LEVEL") or "INFO").upper(),
        )


def refresh_lease_for(timeout: float) -> float:
    """Refresh lease that outlasts a login taking the whole request timeout."""
    return max(DEFAULT_REFRESH_LEASE, timeout + DEFAULT_RACE_GRACE_WINDOW)


def build_token_store(token_db: Optional[str]) -> TokenStore:
    """SQL store when a database is configured, otherwise in-memory.

    `token_db` is either a SQLAlchemy URL or a path to a SQLite file.
    """
    if not token_db:
        return MemoryTokenStore()

    from .database import SqlTokenStore

    if "://" in token_db:
        return SqlTokenStore(token_db)
    return SqlTokenStore.for_sqlite(Path(token_db))


def build_orchestrator(settings: Settings, transformer: Optional[Any] = None, transport: Optional[Any] = None) -> LookupOrchestrator:
    """Wire a LookupOrchestrator from settings."""
    api = AuthenticatedApiClient(base_url=settings.base_url, transport=transport, timeout=settings.timeout)
    cache = TokenCache(
        build_token_store(settings.token_db),
        key=token_cache_key(settings.user_id),
        refresh_lease=refresh_lease_for(settings.timeout),
    )
    return LookupOrchestrator(
        user_id=settings.user_id,
        password=settings.password,
        client_id=settings.client_id,
        asset_id=settings.asset_id,
        api=api,
        token_cache=cache,
        transformer=transformer,
    )
