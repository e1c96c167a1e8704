import logging
import os
import time
from logging.handlers import RotatingFileHandler


class LocalTimeFormatter(logging.Formatter):
    converter = time.localtime


def setup_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_file_path = os.getenv("LOG_FILE_PATH", "").strip()
    max_bytes = int(os.getenv("LOG_MAX_BYTES", "5000000"))
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", "5"))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = LocalTimeFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file_path, maxBytes=max_bytes, backupCount=backup_count
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    sql_level = os.getenv("SQL_LOG_LEVEL", "").strip().upper()
    if sql_level:
        logging.getLogger("sqlalchemy.engine").setLevel(sql_level)

    # argon2 is the only hashing scheme configured.
    logging.getLogger("passlib").setLevel(logging.ERROR)
    logging.getLogger("uvicorn.access").handlers.clear()
