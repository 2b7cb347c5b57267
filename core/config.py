"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SessionGuard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead,
or better, receive the values through a constructor.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_secret -> ACCESS_SECRET). Type coercion is built in.

  @model_validator(mode="after"): Runs cross-field validation once all fields
      are resolved. Secrets and TTLs are checked eagerly so a bad deployment
      fails at startup instead of on the first login request.

Security notes:
  [M6] Secrets shorter than 32 chars are rejected. HS256 signing relies on key
       entropy -- a short key weakens every token issued with it.

  [M7] ACCESS_SECRET and REFRESH_SECRET are both mandatory and must differ.
       With a shared secret an access token would verify as a refresh token
       (and vice versa), which is exactly the token-class confusion the split
       is meant to prevent.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessionguard.config")

_MIN_SECRET_LENGTH = 32
_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'sessionguard.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Secrets have an empty-string sentinel meaning "not configured"; the
    validator below refuses to build a Settings object while either is unset.
    Tests construct Settings(...) directly with explicit values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Token signing
    # ------------------------------------------------------------------

    access_secret: str = ""
    refresh_secret: str = ""
    access_ttl_seconds: int = 900  # 15 minutes
    refresh_ttl_seconds: int = 604800  # 7 days

    # ------------------------------------------------------------------
    # Session policy
    # ------------------------------------------------------------------

    # Single-use refresh tokens: every refresh revokes the presented session
    # and opens a new one.
    refresh_rotation_enabled: bool = False
    # Revoke every existing session of a user before creating the login session.
    single_session_per_user: bool = False

    # ------------------------------------------------------------------
    # Persistence / runtime
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Cadence of the background expired-session sweep in the HTTP app. 0 = off.
    session_sweep_interval_seconds: int = 3600
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing-secret policy [M6] [M7] and sane TTLs.

        Raises ValueError (surfaced by pydantic as ValidationError) so the
        process refuses to start rather than issuing weak or confusable tokens.
        """
        for name in ("access_secret", "refresh_secret"):
            value = getattr(self, name)
            if not value:
                raise ValueError(
                    f"{name.upper()} is required. Set it in your environment or .env file."
                )
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{name.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.access_secret == self.refresh_secret:
            raise ValueError("ACCESS_SECRET and REFRESH_SECRET must be different.")
        if self.access_ttl_seconds <= 0:
            raise ValueError("ACCESS_TTL_SECONDS must be positive.")
        if self.refresh_ttl_seconds <= 0:
            raise ValueError("REFRESH_TTL_SECONDS must be positive.")
        if self.session_sweep_interval_seconds < 0:
            raise ValueError("SESSION_SWEEP_INTERVAL_SECONDS must not be negative.")
        if self.refresh_ttl_seconds < self.access_ttl_seconds:
            logger.warning(
                "REFRESH_TTL_SECONDS (%d) is shorter than ACCESS_TTL_SECONDS (%d)",
                self.refresh_ttl_seconds,
                self.access_ttl_seconds,
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All entry points (api/main.py, main.py) call get_settings() and hand the
    result to the components they construct.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
