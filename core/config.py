"""
core/config.py -- User service settings, read from the environment.

Every knob of the service (listener ports, storage URL, token lifetime,
bcrypt cost, bootstrap admin) is a field on Settings. Nothing else in the
tree reads os.environ; call get_settings() instead.

  get_settings() is wrapped in lru_cache, so the environment and .env are
      parsed once per process. Tests that change the environment between
      cases clear the cache or build Settings(...) directly.

  Field names double as env var names (token_ttl_seconds ->
      TOKEN_TTL_SECONDS). pydantic coerces and range-checks each value.

  The model_validator runs after all fields resolve: a bootstrap admin login
      without a password is refused at startup, as are two listeners on the
      same port.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or storage/.
"""

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("userservice.config")


class Settings(BaseSettings):
    """Service settings from the environment, with .env as a fallback.

    Every field has a default, so a bare Settings() works with no environment
    at all: in-memory store, no bootstrap admin, listeners on 8080/8081.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Listeners
    #
    # The public listener serves login / sign-up / user management. The
    # private listener serves identity resolution for other services and is
    # expected to be firewalled off from the outside world.
    # ------------------------------------------------------------------

    host: str = "127.0.0.1"
    public_port: int = Field(default=8080, ge=1, le=65535)
    private_port: int = Field(default=8081, ge=1, le=65535)
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # Empty string selects the in-memory store. Anything else is a SQLAlchemy
    # URL: "sqlite:///users.db", "postgresql://user:pw@host/db".
    database_url: str = ""

    # ------------------------------------------------------------------
    # Bootstrap administrator (optional -- empty login disables seeding)
    # ------------------------------------------------------------------

    admin_login: str = ""
    admin_password: str = ""

    # ------------------------------------------------------------------
    # Tokens and credentials
    # ------------------------------------------------------------------

    token_ttl_seconds: int = Field(default=600, gt=0)
    token_bytes: int = Field(default=64, ge=16)
    token_generate_retries: int = Field(default=5, ge=1)
    # bcrypt cost factor. 4 is the library minimum and only sensible in tests.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_consistency(self) -> "Settings":
        """Refuse half-configured admin seeding and clashing listener ports."""
        if bool(self.admin_login) != bool(self.admin_password):
            raise ValueError("ADMIN_LOGIN and ADMIN_PASSWORD must be set together.")
        if self.public_port == self.private_port:
            raise ValueError("PUBLIC_PORT and PRIVATE_PORT must differ.")
        if self.debug and self.bcrypt_rounds < 10:
            logger.warning("bcrypt cost %d is only suitable for tests", self.bcrypt_rounds)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, parsing the environment on first use.

    Modules that read settings at import time (auth/tokens.py) see whatever
    the environment held at that moment; tests set variables before importing.
    """
    return Settings()
