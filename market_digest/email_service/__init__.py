"""
Email service package for the market digest system.
Contains modules for managing subscribers and delivering emails.
"""

from .delivery import DeliveryEngine
from .models import (
    BatchResult,
    DeliveryFailure,
    DeliveryReceipt,
    EmailMessage,
    Frequency,
    Subscriber,
    UnsubscribeResult,
)
from .pacing import FixedIntervalPacer, TokenBucketPacer
from .subscriber_store import InMemorySubscriberStore, JsonFileSubscriberStore, SubscriberStore
from .subscription_service import SubscriptionService, WelcomeQueue, validate_email
from .transports import MailTransport, SendGridTransport, SmtpTransport, build_transport

__all__ = [
    'BatchResult',
    'DeliveryEngine',
    'DeliveryFailure',
    'DeliveryReceipt',
    'EmailMessage',
    'FixedIntervalPacer',
    'Frequency',
    'InMemorySubscriberStore',
    'JsonFileSubscriberStore',
    'MailTransport',
    'SendGridTransport',
    'SmtpTransport',
    'Subscriber',
    'SubscriberStore',
    'SubscriptionService',
    'TokenBucketPacer',
    'UnsubscribeResult',
    'WelcomeQueue',
    'build_transport',
    'validate_email',
]
