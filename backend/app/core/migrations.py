from pathlib import Path
import logging
import threading
import time
import traceback

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Connection

from app.core.settings import _read_int_env

logger = logging.getLogger("app.migrations")

BACKEND_DIR = Path(__file__).resolve().parents[2]


def BuildAlembicConfig(database_url: str) -> Config:
    config_path = BACKEND_DIR / "alembic.ini"
    if not config_path.exists():
        raise RuntimeError("Missing alembic.ini for migrations")

    alembic_cfg = Config(str(config_path))
    # configparser treats % as interpolation; escape it in passwords.
    alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    alembic_cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    return alembic_cfg


def HeadRevision() -> str | None:
    script = ScriptDirectory(str(BACKEND_DIR / "alembic"))
    return script.get_current_head()


def CurrentRevision(connection: Connection) -> str | None:
    """Revision stamped in the database, or None when alembic never ran."""
    return MigrationContext.configure(connection).get_current_revision()


def RunMigrations(database_url: str, revision: str = "head") -> None:
    alembic_cfg = BuildAlembicConfig(database_url)
    timeout_seconds = _read_int_env("MIGRATIONS_TIMEOUT_SECONDS", 600)
    progress_seconds = max(1, _read_int_env("MIGRATIONS_PROGRESS_LOG_SECONDS", 20))

    logger.info(
        "upgrading schema to %s (timeout=%ss, progress_log=%ss)",
        revision,
        timeout_seconds,
        progress_seconds,
    )

    error: dict[str, str] = {}
    done = threading.Event()

    def _run() -> None:
        try:
            command.upgrade(alembic_cfg, revision)
        except Exception:  # noqa: BLE001
            error["trace"] = traceback.format_exc()
        finally:
            done.set()

    thread = threading.Thread(target=_run, name="alembic-upgrade", daemon=True)
    thread.start()
    start = time.monotonic()

    while not done.wait(timeout=progress_seconds):
        elapsed = int(time.monotonic() - start)
        logger.info("migrations still running (%ss elapsed)", elapsed)
        if timeout_seconds > 0 and elapsed >= timeout_seconds:
            logger.error("migrations timed out after %ss", elapsed)
            raise TimeoutError(f"migrations timed out after {elapsed}s")

    if "trace" in error:
        logger.error("migrations failed:\n%s", error["trace"])
        raise RuntimeError("migrations failed")

    logger.info("schema at %s", revision)
