"""
Logging configuration for the market digest system.
Sets up logging with file and console output.
"""

import os
import logging
from pathlib import Path
from typing import Optional

from .config import PROJECT_ROOT, Settings

LOG_DIR = PROJECT_ROOT / 'logs'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(settings: Optional[Settings] = None, log_dir: Optional[Path] = None) -> logging.Logger:
    """Set up logging configuration."""
    log_level = getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    log_dir = log_dir or LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / 'market_digest.log'

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    # Check for missing critical configuration
    if settings is not None:
        if settings.email_service == 'sendgrid' and not settings.sendgrid_api_key:
            logging.warning("SendGrid API key is missing. Newsletter distribution may fail.")
        if settings.email_service != 'sendgrid' and not (settings.email_user and settings.email_app_password):
            logging.warning("SMTP credentials are incomplete. Newsletter distribution may fail.")
        if not settings.from_address:
            logging.warning("Sender email is missing. Newsletter distribution may fail.")
        if not settings.openai_api_key:
            logging.warning("OpenAI API key is missing. Digests will use the fallback summary.")
        if settings.test_mode:
            logging.warning(
                "Email test mode is ON: deliveries go to %s",
                settings.test_recipient or "nobody (suppressed)"
            )

    return logging.getLogger('market_digest')
