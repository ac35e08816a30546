import logging
import sys

import uvicorn

from game2048 import ConfigurationError
from game2048_api import create_app, parse_args

logger = logging.getLogger(__name__)


def configure_logging(config):
    handlers = [logging.StreamHandler()]
    if config.get("log_file"):
        handlers.append(logging.FileHandler(config["log_file"]))
    logging.basicConfig(
        level=getattr(logging, config.get("log_level", "INFO"), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("fastapi").setLevel(logging.WARNING)


def main(argv=None):
    config = parse_args(argv)
    configure_logging(config)

    try:
        app = create_app(config)
    except ConfigurationError as e:
        logger.error(f"Invalid game configuration: {e}")
        return 2

    logger.info(f"Serving 2048 games on {config['host']}:{config['port']} "
                f"({config['rules']['height']}x{config['rules']['width']}, target {config['rules']['target']})")
    if config["auth_token"]:
        logger.info("Bearer token authentication enabled")

    uvicorn.run(
        app,
        host=config["host"],
        port=config["port"],
        log_level="warning",
        access_log=False
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
