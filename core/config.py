"""
core/config.py -- Runtime settings for the session auth service.

Every tunable lives on Settings and is read from the process environment (or
a local .env) by pydantic-settings. Field names double as env var names, so
session_max_age_seconds is set with SESSION_MAX_AGE_SECONDS. Other modules
take a Settings argument or call get_settings(); nothing else reads os.environ.

get_settings() builds the object once and caches it for the life of the
process, which is also how FastAPI recommends sharing config.

Startup checks (see check_startup_rules):
  - SECRET_KEY signs the sid cookie and the OAuth state cookie. It must be at
    least 32 characters. With DEBUG=true an empty key is replaced by a random
    one, so sessions are lost on restart; without DEBUG the service refuses
    to start.
  - SESSION_MAX_AGE_SECONDS must be positive.

Argon2 cost parameters apply to new digests only. A stored digest keeps its
own parameters until the owner's next successful login rehashes it.

Layer rule: core/ may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessionauth.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'sessionauth.db'}"


class Settings(BaseSettings):
    """Service configuration. Every field has a default except where DEBUG=false demands a SECRET_KEY."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; check_startup_rules replaces or rejects it.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie_name: str = "sid"
    # Absolute lifetime measured from login. Not extended by activity.
    session_max_age_seconds: int = 3600

    # ------------------------------------------------------------------
    # Password hashing (argon2id)
    # ------------------------------------------------------------------

    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536  # KiB
    argon2_parallelism: int = 4

    # ------------------------------------------------------------------
    # Browser client
    # ------------------------------------------------------------------

    client_origin: str = "http://localhost:5173"
    oauth_failure_path: str = "/api/v1/auth/failure"

    # ------------------------------------------------------------------
    # OAuth providers. A provider is enabled only when its id and secret are both set.
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    github_client_id: str = ""
    github_client_secret: str = ""

    # Any OpenID Connect issuer with a discovery document.
    oidc_client_id: str = ""
    oidc_client_secret: str = ""
    oidc_discovery_url: str = ""
    oidc_display_name: str = "SSO"

    @model_validator(mode="after")
    def check_startup_rules(self) -> "Settings":
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("SECRET_KEY not set; generated a throwaway key for this DEBUG process.")
            else:
                raise ValueError("SECRET_KEY must be set unless DEBUG=true.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY is shorter than 32 characters.")
        if self.session_max_age_seconds <= 0:
            raise ValueError("SESSION_MAX_AGE_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Process-wide Settings. Call get_settings.cache_clear() after changing the environment."""
    return Settings()
