import logging

logger = logging.getLogger("cinecache")
logger.setLevel(logging.INFO)

if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s] %(asctime)s - %(message)s", "%Y-%m-%d %H:%M:%S")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Route module loggers (``app.*``) through the application handler."""
    app_logger = logging.getLogger("app")
    app_logger.setLevel(level)
    for handler in logger.handlers:
        if handler not in app_logger.handlers:
            app_logger.addHandler(handler)
    logger.setLevel(level)
    return logger
