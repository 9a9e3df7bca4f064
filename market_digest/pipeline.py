"""
Wires the store, delivery engine, subscription service and scheduler together.
"""

from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .data_sources import DataSource, JsonFileMarketData, SimulatedMarketData
from .email_service import (
    DeliveryEngine,
    JsonFileSubscriberStore,
    MailTransport,
    SubscriberStore,
    SubscriptionService,
    WelcomeQueue,
    build_transport,
)
from .newsletter_generator import DigestRenderer, NarrativeWriter
from .scheduler import DailyTrigger, DigestJob, DigestScheduler


@dataclass
class Pipeline:
    settings: Settings
    store: SubscriberStore
    engine: DeliveryEngine
    welcome_queue: WelcomeQueue
    subscriptions: SubscriptionService
    job: DigestJob
    scheduler: DigestScheduler

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.welcome_queue.drain()


def build_market_data(settings: Settings) -> DataSource:
    if settings.market_snapshot_file:
        return JsonFileMarketData(settings.market_snapshot_file)
    return SimulatedMarketData()


def build_pipeline(
    settings: Settings,
    transport: Optional[MailTransport] = None,
    store: Optional[SubscriberStore] = None,
    market_data: Optional[DataSource] = None,
    narrator: Optional[NarrativeWriter] = None,
) -> Pipeline:
    """
    Build every component from settings; any argument overrides the default.

    Raises:
        ConfigError: If the default transport cannot be configured
    """
    if store is None:
        store = JsonFileSubscriberStore(settings.subscribers_file)
    if transport is None:
        transport = build_transport(settings)
    engine = DeliveryEngine(transport, settings)
    renderer = DigestRenderer(settings.newsletter_title, settings.dashboard_url)
    welcome_queue = WelcomeQueue(engine, renderer)
    subscriptions = SubscriptionService(store, welcome_queue)
    if narrator is None:
        narrator = NarrativeWriter(settings.openai_api_key, settings.openai_model)
    job = DigestJob(
        subscriptions,
        market_data or build_market_data(settings),
        renderer,
        engine,
        narrator=narrator,
    )
    scheduler = DigestScheduler(job, DailyTrigger(settings.send_time))
    return Pipeline(
        settings=settings,
        store=store,
        engine=engine,
        welcome_queue=welcome_queue,
        subscriptions=subscriptions,
        job=job,
        scheduler=scheduler,
    )
