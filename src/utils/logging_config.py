import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = 'INFO', log_dir: str = 'logs'):
    """
    Send every log record to the console and to logs/stream.log.

    The file rolls over at 10MB and five old files are kept.
    """
    os.makedirs(log_dir, exist_ok=True)
    log_level = getattr(logging, str(level).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(log_level)

    handlers = [
        RotatingFileHandler(
            os.path.join(log_dir, 'stream.log'),
            maxBytes=10_000_000,
            backupCount=5,
            encoding='utf-8'
        ),
        logging.StreamHandler(),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root.addHandler(handler)

    # discord.py is chatty at DEBUG
    logging.getLogger('discord').setLevel(max(log_level, logging.INFO))
