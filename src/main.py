import logging

from bot.client import StreamBot
from utils.config import load_config
from utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main():
    config = load_config()
    setup_logging(config.get('log_level', 'INFO'))
    logger.info("Starting stream bot...")

    bot = StreamBot(config)
    try:
        bot.run()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    main()
