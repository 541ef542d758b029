import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

CONSOLE_HANDLER_NAME = "saigon-console"
FILE_HANDLER_NAME = "saigon-file"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configures the root logger with a console handler and, optionally, a file handler.
    Safe to call more than once; each handler is only attached the first time.
    uvicorn's own loggers are left to propagate into the root logger.
    """
    logger = logging.getLogger()
    logger.setLevel(level.upper())

    formatter = logging.Formatter(LOG_FORMAT)
    existing = {handler.get_name() for handler in logger.handlers}

    if CONSOLE_HANDLER_NAME not in existing:
        console_handler = logging.StreamHandler()
        console_handler.set_name(CONSOLE_HANDLER_NAME)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file and FILE_HANDLER_NAME not in existing:
        file_handler = logging.FileHandler(log_file)
        file_handler.set_name(FILE_HANDLER_NAME)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    return logger
