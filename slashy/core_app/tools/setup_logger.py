import logging
import os
from logging import Formatter, FileHandler, StreamHandler


def setup_logger(name: str) -> logging.Logger:
    """
    Logger with a console handler and, unless LOG_FILE is empty, a file handler.
    Handlers are attached only once per logger name.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = os.getenv("LOG_LEVEL", "DEBUG").upper()
    logger.setLevel(level)

    file_formatter = Formatter(fmt="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
                               datefmt="%Y-%m-%d %H:%M:%S")

    console_formatter = Formatter(fmt="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
                                  datefmt="%H:%M:%S")

    log_file = os.getenv("LOG_FILE", "slashy.log")
    if log_file:
        file_handler = FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    stream_handler = StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(console_formatter)
    logger.addHandler(stream_handler)

    logging.getLogger("urllib3").propagate = False

    return logger
