import logging
import os
import sys

from openagent.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: Settings) -> None:
    """配置日志: stdout, plus a file handler when LOG_FILE is set"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        log_dir = os.path.dirname(settings.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    level = logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # openai/httpx are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
