import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str
    elevated_database_url: str
    redis_url: str | None
    redis_prefix: str
    cors_origins: tuple[str, ...]
    tz: str
    log_level: str
    log_json: bool
    access_token_ttl: int
    refresh_token_ttl: int
    password_min_len: int
    login_rate_limit: int
    login_rate_window: int
    login_user_rate_limit: int
    register_rate_limit: int
    register_rate_window: int
    db_pool_min: int
    db_pool_max: int
    db_pool_timeout: float
    db_pool_max_waiting: int
    apply_schema: bool


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL", "")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")

    # Service-role connection; falls back to the regular one for single-role setups.
    elevated_database_url = (os.getenv("ELEVATED_DATABASE_URL") or "").strip() or database_url

    origins_raw = os.getenv("CORS_ORIGINS", "*")
    cors_origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip()) or ("*",)

    db_pool_min = max(1, int(os.getenv("DB_POOL_MIN", "1")))
    db_pool_max = max(db_pool_min, int(os.getenv("DB_POOL_MAX", "10")))

    return Settings(
        database_url=database_url,
        elevated_database_url=elevated_database_url,
        redis_url=(os.getenv("REDIS_URL") or "").strip() or None,
        redis_prefix=(os.getenv("REDIS_PREFIX") or "pocketledger").strip() or "pocketledger",
        cors_origins=cors_origins,
        tz=os.getenv("TZ", "UTC"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        log_json=_env_bool("LOG_JSON", "true"),
        access_token_ttl=max(60, int(os.getenv("ACCESS_TOKEN_TTL", "3600"))),
        refresh_token_ttl=max(300, int(os.getenv("REFRESH_TOKEN_TTL", str(30 * 24 * 3600)))),
        password_min_len=int(os.getenv("PASSWORD_MIN_LEN", "8")),
        login_rate_limit=int(os.getenv("LOGIN_RATE_LIMIT", "10")),
        login_rate_window=int(os.getenv("LOGIN_RATE_WINDOW", "300")),
        login_user_rate_limit=int(os.getenv("LOGIN_USER_RATE_LIMIT", "5")),
        register_rate_limit=int(os.getenv("REGISTER_RATE_LIMIT", "5")),
        register_rate_window=int(os.getenv("REGISTER_RATE_WINDOW", "900")),
        db_pool_min=db_pool_min,
        db_pool_max=db_pool_max,
        db_pool_timeout=float(os.getenv("DB_POOL_TIMEOUT", "30")),
        db_pool_max_waiting=int(os.getenv("DB_POOL_MAX_WAITING", "100")),
        apply_schema=_env_bool("APPLY_SCHEMA"),
    )


settings = load_settings()
