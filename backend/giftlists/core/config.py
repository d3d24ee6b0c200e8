from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Gift Lists API"
    frontend_url: str = "http://localhost:3000"
    environment: str = "local"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
    }

    # Database: sqlite+aiosqlite:///./giftlists.db (dev) | postgresql+asyncpg://... (prod)
    database_dsn: str = "sqlite+aiosqlite:///./giftlists.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_recycle: int = 1800
    db_pool_timeout: int = 30

    # Empty keeps access grants in process memory
    redis_dsn: str = ""

    access_token_expire_minutes: int = 60 * 24 * 7
    csrf_token_expire_minutes: int = 60 * 2
    # SECURITY: override via JWT_SECRET_KEY env var
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"

    session_cookie_name: str = "sid"
    access_grant_ttl_seconds: int = 3600
    anonymous_display_name: str = "Anonymous"

    # SMTP settings (optional)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "noreply@giftlists.local"
    smtp_use_tls: bool = True
    email_notifications_enabled: bool = True

    log_level: str = "INFO"
    log_file: str = ""
    # Audit records (giftlists.audit) also go here when set
    audit_log_file: str = ""
    # Comma separated, each pinned to WARNING
    quiet_loggers: str = "sqlalchemy.engine,aiosqlite,asyncpg,passlib"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host.strip())


settings = Settings()
