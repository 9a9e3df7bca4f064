"""
Market snapshot consumed by the digest renderer.

Snapshots are validated when built from raw data so the renderer only ever
sees well-formed input.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ValidationError


def _number(data: Dict[str, Any], key: str, path: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{path}{key} must be a number, got {value!r}")
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"{path}{key} must be finite")
    return float(value)


def _count(data: Dict[str, Any], key: str, path: str) -> int:
    value = _number(data, key, path)
    if value < 0 or value != int(value):
        raise ValidationError(f"{path}{key} must be a non-negative integer")
    return int(value)


def _text(data: Dict[str, Any], key: str, path: str, required: bool = True) -> str:
    value = data.get(key)
    if value is None and not required:
        return ''
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{path}{key} must be a non-empty string")
    return value.strip()


def _mapping(value: Any, path: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError(f"{path} must be an object")
    return value


def _items(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list")
    return [_mapping(item, f"{key}[{i}]") for i, item in enumerate(value)]


@dataclass(frozen=True)
class TechnicalIndicators:
    rsi: float
    macd: float

    @property
    def rsi_label(self) -> str:
        if self.rsi > 70:
            return 'Overbought'
        if self.rsi < 30:
            return 'Oversold'
        return 'Neutral'

    @property
    def macd_label(self) -> str:
        return 'Bullish' if self.macd > 0 else 'Bearish'


@dataclass(frozen=True)
class MarketBreadth:
    advancers: int
    decliners: int
    new_highs: int
    new_lows: int

    @property
    def advance_decline_ratio(self) -> Optional[float]:
        if self.decliners == 0:
            return None
        return self.advancers / self.decliners


@dataclass(frozen=True)
class StockMover:
    symbol: str
    name: str
    percent_change: float


@dataclass(frozen=True)
class Headline:
    title: str
    source: str = ''
    sentiment: float = 0.0

    @property
    def impact(self) -> str:
        if self.sentiment > 0.2:
            return 'Positive'
        if self.sentiment < -0.2:
            return 'Negative'
        return 'Neutral'


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time view of the market used to render a digest."""

    sentiment: float
    index_value: float
    percent_change: float
    volatility: float
    indicators: TechnicalIndicators
    breadth: Optional[MarketBreadth] = None
    top_movers: Tuple[StockMover, ...] = field(default_factory=tuple)
    headlines: Tuple[Headline, ...] = field(default_factory=tuple)

    @property
    def volatility_label(self) -> str:
        if self.volatility > 25:
            return 'High'
        if self.volatility > 15:
            return 'Moderate'
        return 'Low'

    def leaders(self, count: int = 3) -> List[StockMover]:
        """Best performing movers, highest change first."""
        return sorted(self.top_movers, key=lambda m: m.percent_change, reverse=True)[:count]

    @classmethod
    def from_dict(cls, data: Any) -> 'MarketSnapshot':
        """
        Build a snapshot from dashboard-style data.

        Accepts the dashboard's camelCase keys (overallSentiment, currentValue,
        percentChange, volatilityIndex, technicalIndicators, marketBreadth,
        topStocks, recentNews).

        Raises:
            ValidationError: If any field is missing or malformed
        """
        data = _mapping(data, 'snapshot')
        sentiment = _number(data, 'overallSentiment', '')
        if not -1.0 <= sentiment <= 1.0:
            raise ValidationError("overallSentiment must be between -1 and 1")

        tech = _mapping(data.get('technicalIndicators'), 'technicalIndicators')
        indicators = TechnicalIndicators(
            rsi=_number(tech, 'rsi', 'technicalIndicators.'),
            macd=_number(tech, 'macd', 'technicalIndicators.'),
        )

        breadth = None
        if data.get('marketBreadth') is not None:
            raw = _mapping(data['marketBreadth'], 'marketBreadth')
            breadth = MarketBreadth(
                advancers=_count(raw, 'advancers', 'marketBreadth.'),
                decliners=_count(raw, 'decliners', 'marketBreadth.'),
                new_highs=_count(raw, 'newHighs', 'marketBreadth.'),
                new_lows=_count(raw, 'newLows', 'marketBreadth.'),
            )

        movers = tuple(
            StockMover(
                symbol=_text(item, 'symbol', 'topStocks.'),
                name=_text(item, 'name', 'topStocks.'),
                percent_change=_number(item, 'percentChange', 'topStocks.'),
            )
            for item in _items(data, 'topStocks')
        )
        headlines = tuple(
            Headline(
                title=_text(item, 'title', 'recentNews.'),
                source=_text(item, 'source', 'recentNews.', required=False),
                sentiment=_number(item, 'sentiment', 'recentNews.') if 'sentiment' in item else 0.0,
            )
            for item in _items(data, 'recentNews')
        )

        return cls(
            sentiment=sentiment,
            index_value=_number(data, 'currentValue', ''),
            percent_change=_number(data, 'percentChange', ''),
            volatility=_number(data, 'volatilityIndex', ''),
            indicators=indicators,
            breadth=breadth,
            top_movers=movers,
            headlines=headlines,
        )
