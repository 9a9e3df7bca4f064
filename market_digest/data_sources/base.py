"""
Base class for market data sources used by the digest job.
"""

import logging
from abc import ABC, abstractmethod

from ..newsletter_generator.snapshot import MarketSnapshot


class DataSource(ABC):
    """
    Abstract base class for all market data sources.

    All data sources should inherit from this class and implement the fetch_snapshot method.
    """

    def __init__(self, name: str):
        """
        Initialize the data source.

        Args:
            name: A descriptive name for the data source
        """
        self.name = name
        self.logger = logging.getLogger(__name__).getChild(self.__class__.__name__)

    @abstractmethod
    def fetch_snapshot(self) -> MarketSnapshot:
        """
        Fetch the current market snapshot.

        Returns:
            A validated MarketSnapshot

        Raises:
            ValidationError: If the source produced malformed data
        """

    def log_fetch_attempt(self):
        self.logger.info(f"Fetching market snapshot from {self.name}")

    def log_fetch_success(self, snapshot: MarketSnapshot):
        self.logger.info(
            f"Fetched snapshot from {self.name}: sentiment {snapshot.sentiment:.2f}, "
            f"{len(snapshot.top_movers)} movers, {len(snapshot.headlines)} headlines"
        )

    def log_fetch_error(self, error: Exception):
        self.logger.error(f"Error fetching data from {self.name}: {str(error)}")
