import logging
from pathlib import Path

from .config import ConfigManager


def setup_logging(config: ConfigManager) -> None:
    """Setup logging configuration"""
    log_level = str(config.get("logging.level", "INFO")).upper()
    log_file = config.get("logging.file", "./logs/catalog_drafter.log")

    handlers = [logging.StreamHandler()]
    if log_file:
        # Create logs directory if it doesn't exist
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
