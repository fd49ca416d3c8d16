import logging
import os
from datetime import datetime
from typing import Optional


def setup_logging(level=logging.INFO, log_dir: Optional[str] = "logs"):
    """Setup basic logging configuration"""
    handlers = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.FileHandler(
                os.path.join(
                    log_dir, f"ingestion_{datetime.now().strftime('%Y-%m-%d')}.log"
                )
            )
        )

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=handlers,
    )
    return logging.getLogger(__name__)
