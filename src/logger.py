import logging
from typing import Optional

from src.config import settings

LOG_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(message)s'

#-- attach handlers once per named logger; stream always, file when LOG_FILE is set
def setup_logger(name: str, log_file: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level or settings.LOG_LEVEL)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    log_file = log_file or settings.LOG_FILE
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
