import os
from dataclasses import dataclass
from typing import Dict, List


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


class ConfigError(ValueError):
    pass


@dataclass
class Settings:
    # App
    APP_ENV: str = os.getenv("APP_ENV", "development")
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    APP_VERSION: str = os.getenv("APP_VERSION", "1.0.0")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database (SQLite by default in a Docker volume)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:////data/claimlink.db")
    DB_BUSY_TIMEOUT: float = float(os.getenv("DB_BUSY_TIMEOUT", "30"))

    # Redis
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USERNAME: str = os.getenv("REDIS_USERNAME", "")
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _get_bool("REDIS_SSL", False)

    # Rate limiting (fixed window, counted in Redis)
    RATE_LIMIT_ENABLED: bool = _get_bool("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_MS: int = int(os.getenv("RATE_LIMIT_WINDOW_MS", "900000"))
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
    STRICT_RATE_LIMIT_WINDOW_MS: int = int(os.getenv("STRICT_RATE_LIMIT_WINDOW_MS", "900000"))
    STRICT_RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("STRICT_RATE_LIMIT_MAX_REQUESTS", "10"))

    # Admin accounts
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))
    SESSION_TIMEOUT_HOURS: int = int(os.getenv("SESSION_TIMEOUT_HOURS", "24"))
    PASSWORD_MIN_LENGTH: int = int(os.getenv("PASSWORD_MIN_LENGTH", "8"))
    PASSWORD_MAX_LENGTH: int = int(os.getenv("PASSWORD_MAX_LENGTH", "128"))
    MAX_FAILED_LOGINS: int = int(os.getenv("MAX_FAILED_LOGINS", "5"))
    LOCKOUT_MINUTES: int = int(os.getenv("LOCKOUT_MINUTES", "30"))
    DEFAULT_ADMIN_USERNAME: str = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
    DEFAULT_ADMIN_PASSWORD: str = os.getenv("DEFAULT_ADMIN_PASSWORD", "password")

    # Order policy defaults, copied into the settings table on first start
    DEFAULT_EXPIRATION_DAYS: int = int(os.getenv("DEFAULT_EXPIRATION_DAYS", "30"))
    DEFAULT_ONE_TIME_USE: bool = _get_bool("DEFAULT_ONE_TIME_USE", True)
    # Flipping a multi-use order to one-time-use zeroes its claim count
    RESET_CLAIMS_ON_ONE_TIME_USE: bool = _get_bool("RESET_CLAIMS_ON_ONE_TIME_USE", True)

    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    def rate_limit(self) -> Dict[str, int]:
        return {"window_ms": self.RATE_LIMIT_WINDOW_MS, "max": self.RATE_LIMIT_MAX_REQUESTS}

    def api_rate_limit(self) -> Dict[str, int]:
        # Claim endpoint: half of the general budget
        return {"window_ms": self.RATE_LIMIT_WINDOW_MS, "max": max(self.RATE_LIMIT_MAX_REQUESTS // 2, 1)}

    def strict_rate_limit(self) -> Dict[str, int]:
        return {"window_ms": self.STRICT_RATE_LIMIT_WINDOW_MS, "max": self.STRICT_RATE_LIMIT_MAX_REQUESTS}

    def validate(self) -> None:
        errors: List[str] = []
        if self.RATE_LIMIT_WINDOW_MS < 60000:
            errors.append("RATE_LIMIT_WINDOW_MS must be at least 60000 (1 minute)")
        if self.RATE_LIMIT_MAX_REQUESTS < 10:
            errors.append("RATE_LIMIT_MAX_REQUESTS must be at least 10")
        if not 10 <= self.BCRYPT_ROUNDS <= 15:
            errors.append("BCRYPT_ROUNDS must be between 10 and 15")
        if self.PASSWORD_MIN_LENGTH > self.PASSWORD_MAX_LENGTH:
            errors.append("PASSWORD_MIN_LENGTH must not exceed PASSWORD_MAX_LENGTH")
        if self.SESSION_TIMEOUT_HOURS < 1:
            errors.append("SESSION_TIMEOUT_HOURS must be at least 1")
        if self.DEFAULT_EXPIRATION_DAYS < 0 or self.DEFAULT_EXPIRATION_DAYS > 365:
            errors.append("DEFAULT_EXPIRATION_DAYS must be between 0 and 365")
        if self.is_production() and self.DEFAULT_ADMIN_PASSWORD == "password":
            errors.append("DEFAULT_ADMIN_PASSWORD must be changed from its default value in production")
        if errors:
            raise ConfigError("Configuration validation failed:\n" + "\n".join(errors))


settings = Settings()
