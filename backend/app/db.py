import os
from urllib.parse import quote_plus

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.core.settings import Settings

Base = declarative_base()


def _build_connection_url(login_env: str, password_env: str) -> str:
    driver = os.getenv("SQLSERVER_DRIVER", "")
    host = os.getenv("SQLSERVER_HOST", "")
    port = os.getenv("SQLSERVER_PORT", "")
    database = os.getenv("SQLSERVER_DB", "")
    user = os.getenv(login_env, "")
    password = os.getenv(password_env, "")

    missing = [key for key, value in {
        "SQLSERVER_HOST": host,
        "SQLSERVER_PORT": port,
        "SQLSERVER_DB": database,
        "SQLSERVER_DRIVER": driver,
        login_env: user,
        password_env: password,
    }.items() if not value]
    if missing:
        raise RuntimeError(f"Missing database configuration: {', '.join(missing)}")

    driver_encoded = quote_plus(driver)
    password_encoded = quote_plus(password)
    return (
        f"mssql+pyodbc://{user}:{password_encoded}@{host}:{port}/{database}"
        f"?driver={driver_encoded}&Encrypt=yes&TrustServerCertificate=yes"
    )


def BuildConnectionUrl(settings: Settings) -> str:
    if settings.DatabaseUrl:
        return settings.DatabaseUrl
    return _build_connection_url("SQLSERVER_USER_LOGIN", "SQLSERVER_USER_PASSWORD")


def BuildConnectionUrlFromEnv() -> str:
    """Connection url for tooling that runs without the app settings (alembic, scripts)."""
    override = os.getenv("DATABASE_URL", "").strip()
    if override:
        return override
    return _build_connection_url("SQLSERVER_USER_LOGIN", "SQLSERVER_USER_PASSWORD")


def _EnableSqliteForeignKeys(dbapi_connection, _connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless enabled per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def CreateDbEngine(settings: Settings) -> Engine:
    url = BuildConnectionUrl(settings)
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
        event.listen(engine, "connect", _EnableSqliteForeignKeys)
        return engine
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.PoolSize,
        max_overflow=settings.MaxOverflow,
        pool_timeout=settings.PoolTimeout,
    )


def CreateSessionFactory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def GetDb(request: Request):
    session_factory = request.app.state.session_factory
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
