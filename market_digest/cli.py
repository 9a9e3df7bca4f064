"""
Command line interface for the market digest system.

Commands:
1. serve      - run the HTTP API (optionally with the daily scheduler)
2. send       - deliver today's digest to active subscribers now
3. schedule   - run the daily scheduler in the foreground
4. add/remove/list - manage subscribers from the command line
5. test-email - send one test message to any address to check the mail transport
"""

import argparse
import asyncio
import logging
import sys
import time

from .config import load_settings
from .email_service import DeliveryEngine, build_transport, validate_email
from .email_service.models import local_now
from .errors import ConfigError, DeliveryError, NewsletterError
from .logger import setup_logging
from .newsletter_generator import DigestRenderer
from .pipeline import build_pipeline

logger = logging.getLogger(__name__)


async def send_newsletter(pipeline, email=None):
    """
    Generate and send the digest.

    Args:
        pipeline: Built components
        email: If given, send only to this active subscriber

    Returns:
        True if every attempted delivery succeeded, False otherwise
    """
    start_time = time.time()
    logger.info("Starting newsletter generation and distribution process")
    result = await pipeline.scheduler.trigger_now(only_email=email)
    await pipeline.welcome_queue.drain()
    if result is None:
        logger.error("Newsletter process failed")
        return False
    elapsed_time = time.time() - start_time
    logger.info(f"Newsletter process completed in {elapsed_time:.2f} seconds: {result.summary()}")
    for failure in result.failures:
        logger.error(f"  {failure.recipient}: {failure.kind} {failure.error}")
    return result.ok


async def send_test_email(engine, renderer, address, clock=local_now):
    """
    Send a single test message straight through the transport.

    Test mode is not applied: the message always goes to `address`.

    Args:
        engine: DeliveryEngine wrapping the configured transport
        renderer: DigestRenderer for the message body
        address: Recipient, need not be a subscriber

    Returns:
        True if the transport accepted the message, False otherwise
    """
    address = validate_email(address)
    transport_name = engine.transport.name
    message = renderer.render_test_message(clock(), transport_name).to(address)
    logger.info(f"Sending test email to {address} via {transport_name}...")
    try:
        receipt = await engine.send_one(message)
    except DeliveryError as e:
        logger.error(f"Failed to send test email to {address}: {e.kind}: {getattr(e, 'diagnostic', None) or e}")
        return False
    logger.info(f"Test email sent successfully! Message ID: {receipt.message_id}")
    return True


async def run_scheduler(pipeline):
    """Run the daily scheduler until interrupted."""
    pipeline.scheduler.start()
    try:
        while pipeline.scheduler.is_running:
            await asyncio.sleep(60)
    finally:
        await pipeline.shutdown()


async def add_subscriber(pipeline, args):
    subscriber = await pipeline.subscriptions.subscribe(
        args.email,
        name=args.name,
        topics=args.topic,
        sources=args.source,
        frequency=args.frequency,
    )
    await pipeline.welcome_queue.drain()
    print(f"Subscribed {subscriber.email} ({subscriber.id})")
    return True


async def remove_subscriber(pipeline, args):
    result = await pipeline.subscriptions.unsubscribe(args.email)
    print(result.message)
    return result.success


async def list_subscribers(pipeline, args):
    subscribers = await pipeline.subscriptions.list(active_only=not args.all)
    print(f"Total subscribers: {len(subscribers)}")
    for s in subscribers:
        status = "active" if s.is_active else "inactive"
        print(f"{s.email} - {s.name or 'N/A'} - {s.frequency.value} - {status}")
    return True


def serve(settings, host, port):
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(settings), host=host, port=port)


def build_parser():
    parser = argparse.ArgumentParser(description="Market Digest newsletter service")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=5001)

    send_parser = subparsers.add_parser("send", help="Send the digest now")
    send_parser.add_argument("--email", help="Send only to this subscriber")

    subparsers.add_parser("schedule", help="Send the digest every day at NEWSLETTER_SEND_TIME")

    add_parser = subparsers.add_parser("add", help="Add or update a subscriber")
    add_parser.add_argument("email", help="Subscriber's email address")
    add_parser.add_argument("--name", help="Subscriber's name")
    add_parser.add_argument("--topic", action="append", help="Topic of interest (repeatable)")
    add_parser.add_argument("--source", action="append", help="Preferred data source (repeatable)")
    add_parser.add_argument("--frequency", default="daily", help="daily, weekly or monthly")

    remove_parser = subparsers.add_parser("remove", help="Unsubscribe a subscriber (kept as inactive)")
    remove_parser.add_argument("email", help="Subscriber's email address")

    list_parser = subparsers.add_parser("list", help="List subscribers")
    list_parser.add_argument("--all", action="store_true", help="Include inactive subscribers")

    test_parser = subparsers.add_parser("test-email", help="Send a test email to check the mail transport")
    test_parser.add_argument("address", help="Recipient of the test email")
    return parser


def main(argv=None):
    """
    Main function to parse arguments and run the appropriate command.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    setup_logging(settings)

    if args.command == "serve":
        serve(settings, args.host, args.port)
        return 0

    try:
        if args.command == "test-email":
            engine = DeliveryEngine(build_transport(settings), settings)
            renderer = DigestRenderer(settings.newsletter_title, settings.dashboard_url)
            command = lambda: send_test_email(engine, renderer, args.address)
        else:
            pipeline = build_pipeline(settings)
            command = {
                "send": lambda: send_newsletter(pipeline, args.email),
                "schedule": lambda: run_scheduler(pipeline),
                "add": lambda: add_subscriber(pipeline, args),
                "remove": lambda: remove_subscriber(pipeline, args),
                "list": lambda: list_subscribers(pipeline, args),
            }[args.command]
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        ok = asyncio.run(command())
    except NewsletterError as e:
        logger.error(f"{e.kind}: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0
    return 0 if ok in (True, None) else 1


if __name__ == "__main__":
    sys.exit(main())
