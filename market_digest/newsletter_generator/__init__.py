"""
Newsletter generator package: market snapshot model, narrative writer and
email rendering.
"""

from .narrative import NarrativeWriter
from .renderer import DigestRenderer, RenderedMessage, fallback_narrative
from .snapshot import Headline, MarketBreadth, MarketSnapshot, StockMover, TechnicalIndicators

__all__ = [
    'DigestRenderer',
    'Headline',
    'MarketBreadth',
    'MarketSnapshot',
    'NarrativeWriter',
    'RenderedMessage',
    'StockMover',
    'TechnicalIndicators',
    'fallback_narrative',
]
