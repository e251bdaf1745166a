"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    
    # Environment
    ENV: str = "dev"
    
    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.04.00"
    
    # Proxy/Load Balancer Settings
    # Set to True when running behind a reverse proxy to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False
    
    # Database
    DATABASE_URL: str = "sqlite+pysqlite:///./traffic.db"
    
    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 8
    
    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"
    
    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""
    
    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 60  # General API
    RATE_LIMIT_EXPORT: int = 10  # CSV exports
    
    # Audience export paging (rows per fetch)
    EXPORT_BATCH_SIZE: int = 1000
    
    # Duplicate-email scan paging for bulk conversation merges
    MERGE_SCAN_BATCH_SIZE: int = 500
    
    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
    
    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets


settings = Settings()
