import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_MEDIA_MAX_BYTES = 5 * 1024 * 1024


def _require_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise RuntimeError(f"Missing required env var: {name}")
    return value


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc


def _env_truthy(name: str) -> bool:
    value = os.getenv(name, "").strip().lower()
    return value in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    DatabaseUrl: str | None = None
    PoolSize: int = 10
    MaxOverflow: int = 20
    PoolTimeout: int = 60
    RedisUrl: str | None = None
    RedisHost: str = "localhost"
    RedisPort: int = 6379
    RedisDb: int = 0
    RedisPassword: str | None = None
    JwtSecretKey: str = ""
    JwtAccessTtlMinutes: int = 60
    JwtRefreshTtlDays: int = 7
    PasswordMinLength: int = 8
    MediaMaxBytes: int = DEFAULT_MEDIA_MAX_BYTES
    CacheTtlNote: int = 600
    CacheTtlList: int = 300
    CacheTtlSearch: int = 600
    CacheTtlVersions: int = 1800
    AllowedOrigins: tuple[str, ...] = ()
    RunMigrationsOnStartup: bool = False


def LoadSettings(env_file: str | None = None) -> Settings:
    """Read settings from the process environment (and an optional .env file)."""
    if env_file:
        load_dotenv(dotenv_path=env_file)
    else:
        load_dotenv()

    allowed_origins = os.getenv("ALLOWED_ORIGINS", "")
    origin_list = tuple(origin.strip() for origin in allowed_origins.split(",") if origin.strip())

    return Settings(
        DatabaseUrl=os.getenv("DATABASE_URL", "").strip() or None,
        PoolSize=_read_int_env("SQLALCHEMY_POOL_SIZE", 10),
        MaxOverflow=_read_int_env("SQLALCHEMY_MAX_OVERFLOW", 20),
        PoolTimeout=_read_int_env("SQLALCHEMY_POOL_TIMEOUT", 60),
        RedisUrl=os.getenv("REDIS_URL", "").strip() or None,
        RedisHost=os.getenv("REDIS_HOST", "localhost").strip() or "localhost",
        RedisPort=_read_int_env("REDIS_PORT", 6379),
        RedisDb=_read_int_env("REDIS_DB", 0),
        RedisPassword=os.getenv("REDIS_PASSWORD", "").strip() or None,
        JwtSecretKey=_require_env("JWT_SECRET_KEY"),
        JwtAccessTtlMinutes=_read_int_env("JWT_ACCESS_TTL_MINUTES", 60),
        JwtRefreshTtlDays=_read_int_env("JWT_REFRESH_TTL_DAYS", 7),
        PasswordMinLength=_read_int_env("AUTH_PASSWORD_MIN_LENGTH", 8),
        MediaMaxBytes=max(1, _read_int_env("NOTE_MEDIA_MAX_BYTES", DEFAULT_MEDIA_MAX_BYTES)),
        CacheTtlNote=_read_int_env("CACHE_TTL_NOTE", 600),
        CacheTtlList=_read_int_env("CACHE_TTL_LIST", 300),
        CacheTtlSearch=_read_int_env("CACHE_TTL_SEARCH", 600),
        CacheTtlVersions=_read_int_env("CACHE_TTL_VERSIONS", 1800),
        AllowedOrigins=origin_list,
        RunMigrationsOnStartup=_env_truthy("RUN_MIGRATIONS_ON_STARTUP"),
    )
