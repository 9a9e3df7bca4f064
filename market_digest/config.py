"""
Configuration module for the market digest system.
Loads environment variables from .env file and provides access to configuration settings.
"""

import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigError

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_SUBSCRIBERS_FILE = PROJECT_ROOT / 'data' / 'newsletter-subscribers.json'

_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


@dataclass
class Settings:
    """Application configuration container."""

    # Mail transport
    email_service: str = 'sendgrid'
    sendgrid_api_key: Optional[str] = None
    email_sender: Optional[str] = None
    email_sender_name: str = 'Market Digest'
    email_user: Optional[str] = None
    email_app_password: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587

    # Delivery behaviour
    test_mode: bool = False
    test_recipient: Optional[str] = None
    send_timeout: float = 30.0
    send_delay: float = 1.0

    # Newsletter
    newsletter_title: str = 'Market Insights'
    send_time: str = '08:00'
    dashboard_url: str = 'https://equora.ai/dashboard'
    scheduler_enabled: bool = False

    # Storage and content sources
    subscribers_file: Path = DEFAULT_SUBSCRIBERS_FILE
    market_snapshot_file: Optional[Path] = None
    openai_api_key: Optional[str] = None
    openai_model: str = 'gpt-4-turbo'

    # HTTP
    cors_origins: List[str] = field(
        default_factory=lambda: ['http://localhost:8080', 'http://localhost:3000']
    )

    @property
    def from_address(self) -> Optional[str]:
        """Address used in the From header."""
        return self.email_sender or self.email_user


def _get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean environment variable. Accepts true/false/1/0/yes/no."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def _get_float_env(key: str, default: float, positive: bool = False) -> float:
    value = os.getenv(key)
    if value is None or value == '':
        return default
    try:
        number = float(value)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got: {value}")
    if not math.isfinite(number):
        raise ConfigError(f"{key} must be a finite number, got: {value}")
    if number < 0:
        raise ConfigError(f"{key} must not be negative, got: {value}")
    if positive and number == 0:
        raise ConfigError(f"{key} must be greater than zero, got: {value}")
    return number


def _get_int_env(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got: {value}")


def parse_send_time(value: str) -> str:
    """
    Validate a daily trigger time.

    Args:
        value: Time of day in 24h HH:MM format

    Returns:
        The validated time string

    Raises:
        ConfigError: If the value is not a valid HH:MM time
    """
    value = (value or '').strip()
    if not _TIME_PATTERN.match(value):
        raise ConfigError(f"NEWSLETTER_SEND_TIME must be HH:MM, got: {value!r}")
    return value


def load_settings(env_path: Optional[Path] = None) -> Settings:
    """
    Load configuration from environment variables.

    Args:
        env_path: Optional path to .env file. If not provided,
                  searches for .env in current and parent directories.

    Returns:
        Settings object with all values populated.

    Raises:
        ConfigError: If a value is malformed.
    """
    if env_path:
        load_dotenv(env_path)
    else:
        load_dotenv()

    email_service = os.getenv('EMAIL_SERVICE', 'sendgrid').strip().lower()
    default_port = 465 if email_service == 'gmail' else 587

    snapshot_file = os.getenv('MARKET_SNAPSHOT_FILE')
    cors = os.getenv('CORS_ORIGINS', '')

    settings = Settings(
        email_service=email_service,
        sendgrid_api_key=os.getenv('SENDGRID_API_KEY'),
        email_sender=os.getenv('EMAIL_SENDER'),
        email_sender_name=os.getenv('EMAIL_SENDER_NAME', 'Market Digest'),
        email_user=os.getenv('EMAIL_USER'),
        email_app_password=os.getenv('EMAIL_APP_PASSWORD'),
        smtp_host=os.getenv('SMTP_HOST'),
        smtp_port=_get_int_env('SMTP_PORT', default_port),
        test_mode=_get_bool_env('EMAIL_TEST_MODE', False),
        test_recipient=os.getenv('EMAIL_TEST_RECIPIENT') or None,
        send_timeout=_get_float_env('EMAIL_SEND_TIMEOUT', 30.0, positive=True),
        send_delay=_get_float_env('EMAIL_SEND_DELAY', 1.0),
        newsletter_title=os.getenv('NEWSLETTER_TITLE', 'Market Insights'),
        send_time=parse_send_time(os.getenv('NEWSLETTER_SEND_TIME', '08:00')),
        dashboard_url=os.getenv('DASHBOARD_URL', 'https://equora.ai/dashboard'),
        scheduler_enabled=_get_bool_env('SCHEDULER_ENABLED', False),
        subscribers_file=Path(os.getenv('SUBSCRIBERS_FILE') or DEFAULT_SUBSCRIBERS_FILE),
        market_snapshot_file=Path(snapshot_file) if snapshot_file else None,
        openai_api_key=os.getenv('OPENAI_API_KEY'),
        openai_model=os.getenv('OPENAI_MODEL', 'gpt-4-turbo'),
    )
    if cors.strip():
        settings.cors_origins = [origin.strip() for origin in cors.split(',') if origin.strip()]
    return settings
