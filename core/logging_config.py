import logging
import os
from logging.handlers import RotatingFileHandler

from core.settings import Settings

LOG_FORMAT = "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"


def setup_logging(settings: Settings) -> None:
    """Configura logging para la aplicación (consola y, opcionalmente, archivos rotativos)."""
    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())

    # Evitar handlers duplicados si create_app() se llama más de una vez
    for handler in list(root.handlers):
        if getattr(handler, "_gestion_obras", False):
            root.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler._gestion_obras = True
    root.addHandler(console_handler)

    if not settings.log_dir:
        return

    os.makedirs(settings.log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        os.path.join(settings.log_dir, "app.log"),
        maxBytes=10485760,  # 10MB
        backupCount=10,
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.INFO)
    file_handler._gestion_obras = True

    error_handler = RotatingFileHandler(
        os.path.join(settings.log_dir, "errors.log"),
        maxBytes=10485760,
        backupCount=10,
    )
    error_handler.setFormatter(formatter)
    error_handler.setLevel(logging.ERROR)
    error_handler._gestion_obras = True

    root.addHandler(file_handler)
    root.addHandler(error_handler)
    root.info("Logs guardados en: %s", settings.log_dir)
