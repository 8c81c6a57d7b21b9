"""
Configuration for CARS-G Backend
================================

Environment variables:
- IDENTITY_JWT_SECRET: Secret used to verify bearer credentials
- IDENTITY_JWT_ALGORITHM: Signing algorithm (default: HS256)
- IDENTITY_JWT_AUDIENCE / IDENTITY_JWT_ISSUER: Optional claim checks
- CORS_ALLOW_ORIGINS: Comma separated list (default: http://localhost:5173)
- RATE_LIMIT_ENABLED: true|false (default: false)
- RATE_LIMIT_MAX_REQUESTS: Requests per window per client (default: 100)
- RATE_LIMIT_WINDOW_SECONDS: Window length (default: 900)
- REDIS_URL: Redis for rate limiting (default: redis://localhost:6379/0)
- TRUSTED_PROXIES: Comma separated proxy addresses allowed to set X-Forwarded-For
- RESOLUTION_REWARD_POINTS: Points awarded on resolution (default: 10)
- STRICT_STATUS_TRANSITIONS: Enforce the report transition table (default: false)

DATABASE_URL is read by db/session.py directly.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings
from functools import lru_cache

DEV_JWT_SECRET = "dev-identity-secret-change-in-production"


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Service info
    service_name: str = "CARS-G API Server"
    service_version: str = "1.0.0"

    # Identity verifier
    identity_jwt_secret: str = DEV_JWT_SECRET
    identity_jwt_algorithm: str = "HS256"
    identity_jwt_audience: Optional[str] = None
    identity_jwt_issuer: Optional[str] = None
    identity_token_expire_minutes: int = 60

    # CORS
    cors_allow_origins: str = "http://localhost:5173"

    # Rate limiting (fixed window per client address)
    rate_limit_enabled: bool = False
    rate_limit_max_requests: int = 100
    rate_limit_window_seconds: int = 900
    redis_url: str = "redis://localhost:6379/0"
    # proxies whose X-Forwarded-For is believed (comma list of addresses)
    trusted_proxies: str = ""

    # Report lifecycle
    resolution_reward_points: int = 10
    strict_status_transitions: bool = False

    # Pagination
    default_page_size: int = 50
    max_page_size: int = 200
    leaderboard_default_size: int = 10
    leaderboard_max_size: int = 100
    conversation_default_size: int = 100
    conversation_max_size: int = 500

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def cors_origins(self) -> List[str]:
        origins: List[str] = []
        for item in self.cors_allow_origins.split(","):
            origin = item.strip().strip('"').strip("'").rstrip("/")
            if origin:
                origins.append(origin)
        return origins

    @property
    def trusted_proxy_hosts(self) -> List[str]:
        return [h.strip() for h in self.trusted_proxies.split(",") if h.strip()]

    def validate_config(self) -> List[str]:
        """Validate configuration, return list of warnings"""
        warnings = []

        if self.identity_jwt_secret == DEV_JWT_SECRET:
            warnings.append("IDENTITY_JWT_SECRET not set; using the development secret")

        if self.rate_limit_max_requests <= 0:
            warnings.append("RATE_LIMIT_MAX_REQUESTS must be positive; rate limiting will block everything")

        if self.resolution_reward_points < 0:
            warnings.append("RESOLUTION_REWARD_POINTS is negative; resolving reports will remove points")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
