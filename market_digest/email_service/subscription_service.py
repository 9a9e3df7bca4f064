"""
Module for managing newsletter subscriptions.
"""

import asyncio
import logging
import re
import uuid
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set

from ..errors import NotFoundError, ValidationError
from .delivery import DeliveryEngine
from .models import Frequency, Subscriber, UnsubscribeResult, normalize_tags, utcnow

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def validate_email(email) -> str:
    """
    Check an email address.

    Returns:
        The address with surrounding whitespace removed

    Raises:
        ValidationError: If the address is missing or malformed
    """
    if email is None or not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required")
    email = email.strip()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid email format: {email}")
    return email


def new_subscriber_id() -> str:
    return f"sub_{uuid.uuid4().hex}"


class WelcomeQueue:
    """
    Sends welcome emails as detached background tasks.

    Failures are logged and never reach the subscriber-facing call.
    """

    def __init__(self, engine: DeliveryEngine, renderer, clock: Callable[[], datetime] = utcnow):
        self.engine = engine
        self.renderer = renderer
        self.clock = clock
        self._tasks: Set[asyncio.Task] = set()

    def enqueue(self, subscriber: Subscriber) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._send(subscriber))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _send(self, subscriber: Subscriber) -> bool:
        logger.info(f"Sending welcome email to new subscriber: {subscriber.email}")
        try:
            rendered = self.renderer.render_welcome(subscriber, year=self.clock().year)
            message = self.engine.redirect(rendered.to(subscriber.email))
            if message is None:
                return True
            receipt = await self.engine.send_one(message)
        except Exception as e:
            logger.error(f"Failed to send welcome email to {subscriber.email}: {e}")
            return False
        logger.info(f"Welcome email sent to {receipt.recipient} (message id {receipt.message_id})")
        return True

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight welcome email to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class SubscriptionService:
    """
    Manager for newsletter subscribers.

    Handles subscribing, unsubscribing and listing subscribers on top of a
    SubscriberStore. Writes are serialised through one lock per service.
    """

    def __init__(self, store, welcome_queue: Optional[WelcomeQueue] = None,
                 clock: Callable[[], datetime] = utcnow):
        """
        Initialize the subscription service.

        Args:
            store: SubscriberStore holding the subscriber collection
            welcome_queue: Queue for welcome emails; None disables them
            clock: Source of timestamps for created/updated fields
        """
        self.store = store
        self.welcome_queue = welcome_queue
        self.clock = clock
        self._write_lock = asyncio.Lock()

    async def subscribe(
        self,
        email: str,
        name: Optional[str] = None,
        topics: Optional[Iterable[str]] = None,
        sources: Optional[Iterable[str]] = None,
        frequency=None,
    ) -> Subscriber:
        """
        Subscribe an email address, or update the preferences of an existing one.

        Args:
            email: Subscriber's email address
            name: Subscriber's name (optional)
            topics: Topics of interest
            sources: Preferred data sources
            frequency: Delivery cadence, defaults to daily

        Returns:
            The stored subscriber record

        Raises:
            ValidationError: If the input is malformed
            StorageError: If the collection cannot be loaded or saved
        """
        email = validate_email(email)
        if name is not None and not isinstance(name, str):
            raise ValidationError("name must be a string")
        name = name.strip() if name and name.strip() else None
        topic_set = normalize_tags(topics, 'topics')
        source_set = normalize_tags(sources, 'sources')
        cadence = Frequency.parse(frequency)

        def apply(subscribers: List[Subscriber]):
            timestamp = self.clock()
            for existing in subscribers:
                if existing.email == email:
                    existing.name = name
                    existing.topics = topic_set
                    existing.sources = source_set
                    existing.frequency = cadence
                    existing.updated_at = timestamp
                    return existing, False

            subscriber = Subscriber(
                id=new_subscriber_id(),
                email=email,
                name=name,
                topics=topic_set,
                sources=source_set,
                frequency=cadence,
                is_active=True,
                created_at=timestamp,
                updated_at=timestamp,
            )
            subscribers.append(subscriber)
            return subscriber, True

        async with self._write_lock:
            subscriber, created = await self.store.mutate(apply)

        if created:
            logger.info(f"Created new subscription for {email}")
            if self.welcome_queue is not None:
                self.welcome_queue.enqueue(subscriber)
        else:
            logger.info(f"Updated existing subscription for {email}")
        return subscriber

    async def unsubscribe(self, email: str) -> UnsubscribeResult:
        """
        Deactivate a subscriber. The record is kept.

        Raises:
            ValidationError: If no email was given
            NotFoundError: If no record matches the email
        """
        if email is None or not isinstance(email, str) or not email.strip():
            raise ValidationError("Email is required")
        email = email.strip()

        async with self._write_lock:
            subscribers = await self.store.load()
            for subscriber in subscribers:
                if subscriber.email == email:
                    subscriber.is_active = False
                    subscriber.updated_at = self.clock()
                    await self.store.save(subscribers)
                    break
            else:
                logger.warning(f"Subscriber not found: {email}")
                raise NotFoundError(f"Email not found in subscribers list: {email}")

        logger.info(f"Deactivated subscriber: {email}")
        return UnsubscribeResult(success=True, message='Successfully unsubscribed')

    async def list(self, active_only: bool = True) -> List[Subscriber]:
        """
        Get subscribers.

        Args:
            active_only: Drop soft-deleted subscribers

        Returns:
            Subscribers in stored order
        """
        subscribers = await self.store.load()
        if active_only:
            return [s for s in subscribers if s.is_active]
        return subscribers

    async def get(self, email: str) -> Optional[Subscriber]:
        for subscriber in await self.store.load():
            if subscriber.email == email:
                return subscriber
        return None
