"""
Delivery engine: sends messages through a mail transport with a bounded wait
per message, isolates failures per recipient and paces batch sends.
"""

import asyncio
import logging
from typing import Iterable, Optional, Set

from ..config import Settings
from ..errors import DeliveryError, DeliveryTimeoutError, TransportError
from .models import BatchResult, DeliveryFailure, DeliveryReceipt, EmailMessage
from .pacing import FixedIntervalPacer, Pacer, Sleep
from .transports import MailTransport

logger = logging.getLogger(__name__)


class DeliveryEngine:
    """
    Sends one or many messages through a MailTransport.

    Test mode (settings.test_mode) reroutes everything to settings.test_recipient,
    or suppresses delivery entirely when no test recipient is configured.
    """

    def __init__(
        self,
        transport: MailTransport,
        settings: Settings,
        pacer: Optional[Pacer] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.transport = transport
        self.settings = settings
        self._sleep = sleep or asyncio.sleep
        self.pacer = pacer or FixedIntervalPacer(settings.send_delay, sleep=self._sleep)
        # Sends that outlived their timeout; kept referenced until they finish
        self._abandoned: Set[asyncio.Task] = set()

    async def send_one(self, message: EmailMessage, timeout: Optional[float] = None) -> DeliveryReceipt:
        """
        Send a single message, waiting at most `timeout` seconds.

        A timed-out send is not cancelled: the transport attempt may still
        complete in the background after DeliveryTimeoutError is raised.

        Args:
            message: The message to send
            timeout: Seconds to wait, defaults to settings.send_timeout

        Returns:
            DeliveryReceipt with the provider message id

        Raises:
            DeliveryTimeoutError: If the wait elapsed first
            TransportError: If the transport reported a failure
        """
        timeout = self.settings.send_timeout if timeout is None else timeout
        task = asyncio.ensure_future(self.transport.send(message))
        done, _ = await asyncio.wait({task}, timeout=timeout)

        if task not in done:
            self._abandon(task, message.to)
            raise DeliveryTimeoutError(f"Email sending timed out for {message.to} after {timeout:g}s")

        try:
            message_id = task.result()
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"Failed to send email to {message.to}", diagnostic=str(e)) from e

        logger.info(f"Email sent to {message.to} (message id {message_id})")
        return DeliveryReceipt(recipient=message.to, message_id=str(message_id))

    def _abandon(self, task: asyncio.Task, recipient: str) -> None:
        self._abandoned.add(task)

        def _report(finished: asyncio.Task) -> None:
            self._abandoned.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.warning(f"Timed-out send to {recipient} later failed: {error}")
            else:
                logger.warning(f"Timed-out send to {recipient} completed after the deadline")

        task.add_done_callback(_report)

    @property
    def pending_abandoned(self) -> int:
        return len(self._abandoned)

    def redirect(self, message: EmailMessage) -> Optional[EmailMessage]:
        """
        Apply test-mode redirection to a single message.

        Returns:
            The message (possibly re-addressed), or None if delivery is suppressed
        """
        if not self.settings.test_mode:
            return message
        if self.settings.test_recipient:
            logger.info(f"TEST MODE: redirecting email for {message.to} to {self.settings.test_recipient}")
            return message.readdressed(self.settings.test_recipient)
        logger.info(f"TEST MODE: would have sent email to {message.to}")
        return None

    async def send_batch(
        self,
        messages: Iterable[EmailMessage],
        per_message_timeout: Optional[float] = None,
        inter_message_delay: Optional[float] = None,
    ) -> BatchResult:
        """
        Send messages one after another, isolating failures per recipient.

        Args:
            messages: Messages in delivery order
            per_message_timeout: Seconds to wait per send, defaults to settings.send_timeout
            inter_message_delay: Pause between consecutive sends; the engine's pacer is
                                 used when omitted

        Returns:
            BatchResult with per-recipient receipts and failures
        """
        messages = list(messages)
        result = BatchResult()

        # Read once so a batch is never partially redirected
        test_mode = self.settings.test_mode
        test_recipient = self.settings.test_recipient

        if test_mode:
            if not test_recipient:
                logger.info(f"TEST MODE: would have sent {len(messages)} emails, delivery suppressed")
                result.suppressed = True
                return result
            if messages:
                logger.info(
                    f"TEST MODE: collapsing batch of {len(messages)} emails to one send to {test_recipient}"
                )
                messages = [messages[0].readdressed(test_recipient)]
            result.redirected_to = test_recipient

        if not messages:
            logger.info("No recipients to send to")
            return result

        if inter_message_delay is None:
            pacer = self.pacer
        else:
            pacer = FixedIntervalPacer(inter_message_delay, sleep=self._sleep)

        logger.info(f"Sending batch of {len(messages)} emails")
        for index, message in enumerate(messages):
            if index:
                await pacer.pause()
            try:
                receipt = await self.send_one(message, per_message_timeout)
            except DeliveryError as e:
                diagnostic = getattr(e, 'diagnostic', None) or str(e)
                logger.error(f"Error sending email to {message.to}: {diagnostic}")
                result.failures.append(DeliveryFailure(recipient=message.to, kind=e.kind, error=diagnostic))
                continue
            result.receipts.append(receipt)

        logger.info(f"Batch finished: {result.summary()}")
        return result
