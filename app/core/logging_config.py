# app/core/logging_config.py
import logging
import sys
from logging.handlers import RotatingFileHandler

from app.core.config import settings

_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s"


def setup_logging() -> None:
    """Configura el logger raíz una sola vez (consola + archivo opcional)."""
    root = logging.getLogger()
    if getattr(root, "_erp_configurado", False):
        return

    formatter = logging.Formatter(_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if settings.LOG_FILE:
        file_handler = RotatingFileHandler(
            settings.LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(settings.LOG_LEVEL.upper())
    # el echo de SQLAlchemy va por su propio logger
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.SQL_ECHO else logging.WARNING
    )
    root._erp_configurado = True
