"""
Growth Coach — Configuration
All secrets loaded from environment variables.
Put a .env next to this file (or export the variables) before starting the app.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load .env before any os.getenv() calls in dataclass defaults
_ENV_PATH = Path(__file__).parent / ".env"
load_dotenv(_ENV_PATH, override=True)


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


@dataclass
class HubSpotConfig:
    api_key: str = os.getenv("HUBSPOT_API_KEY", "")
    client_id: str = os.getenv("HUBSPOT_CLIENT_ID", "")
    client_secret: str = os.getenv("HUBSPOT_CLIENT_SECRET", "")
    base_url: str = "https://api.hubapi.com"
    authorize_url: str = "https://app.hubspot.com/oauth/authorize"
    token_url: str = "https://api.hubapi.com/oauth/v1/token"
    scope: str = "crm.objects.contacts.read"
    # Contacts endpoint caps a page at 100 records
    page_size: int = 100
    contact_properties: List[str] = field(default_factory=lambda: [
        "email", "firstname", "lastname", "company", "phone", "website",
        "lifecyclestage", "hs_lead_status", "createdate", "lastmodifieddate",
    ])
    # Unset = follow cursors until HubSpot stops returning one
    max_pages: Optional[int] = _optional_int("HUBSPOT_MAX_PAGES")
    timeout: float = 30.0


@dataclass
class ClaudeConfig:
    api_key: str = os.getenv("ANTHROPIC_API_KEY", "")
    model: str = os.getenv("COACH_CLAUDE_MODEL", "claude-sonnet-4-5")
    max_tokens: int = 4096
    temperature: float = 0.7
    # Rate-limit retry policy for the completion call
    max_retries: int = 3
    retry_base_delay: float = 1.0
    timeout: float = 120.0


@dataclass
class RateLimitConfig:
    # Per-client quota in front of the completion endpoint
    window_seconds: int = 60
    max_requests: int = 10


@dataclass
class PostgresConfig:
    host: str = os.getenv("POSTGRES_HOST", "localhost")
    port: int = int(os.getenv("POSTGRES_PORT", "5432"))
    database: str = os.getenv("POSTGRES_DB", "coach")
    user: str = os.getenv("POSTGRES_USER", "coach")
    password: str = os.getenv("POSTGRES_PASSWORD", "")
    sslmode: str = os.getenv("POSTGRES_SSLMODE", "prefer")

    @property
    def dsn_params(self) -> dict:
        """Return connection params dict for psycopg2."""
        params = {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.user,
            "password": self.password,
        }
        if self.sslmode and self.sslmode != "disable":
            params["sslmode"] = self.sslmode
        return params


@dataclass
class AppConfig:
    # Public URL of this deployment; OAuth callback and redirects hang off it
    base_url: str = os.getenv("COACH_BASE_URL", "http://localhost:3002")
    api_key: str = os.getenv("COACH_API_KEY", "")
    allowed_origins: List[str] = field(default_factory=lambda: [
        o.strip()
        for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3002").split(",")
        if o.strip()
    ])
    secure_cookies: bool = os.getenv("COACH_ENV", "development").lower() == "production"

    @property
    def hubspot_redirect_uri(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/auth/hubspot/callback"


@dataclass
class CoachConfig:
    hubspot: HubSpotConfig = field(default_factory=HubSpotConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    app: AppConfig = field(default_factory=AppConfig)
    debug: bool = os.getenv("COACH_DEBUG", "false").lower() == "true"


# Global config instance
config = CoachConfig()
