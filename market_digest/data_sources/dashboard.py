"""
Market snapshot sources backing the dashboard.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..errors import StorageError, ValidationError
from ..newsletter_generator.snapshot import MarketSnapshot
from .base import DataSource

# Values shown on the dashboard until a live feed is wired in
SIMULATED_MARKET_DATA: Dict[str, Any] = {
    "overallSentiment": 0.32,
    "currentValue": 4286.52,
    "percentChange": 0.78,
    "volatilityIndex": 16.45,
    "technicalIndicators": {
        "rsi": 63.5,
        "macd": 0.085,
    },
    "marketBreadth": {
        "advancers": 352,
        "decliners": 148,
        "newHighs": 62,
        "newLows": 15,
    },
    "topStocks": [
        {"symbol": "AAPL", "name": "Apple Inc", "percentChange": 2.1},
        {"symbol": "MSFT", "name": "Microsoft", "percentChange": 1.8},
        {"symbol": "AMZN", "name": "Amazon", "percentChange": 1.5},
    ],
    "recentNews": [
        {"title": "Fed signals potential rate cut in September", "source": "Bloomberg", "sentiment": 0.65},
        {"title": "Tech stocks rally on AI advancements", "source": "Reuters", "sentiment": 0.72},
    ],
}


class SimulatedMarketData(DataSource):
    """Serves the dashboard's simulated market values."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        super().__init__("Simulated Dashboard Data")
        self.data = copy.deepcopy(data if data is not None else SIMULATED_MARKET_DATA)

    def fetch_snapshot(self) -> MarketSnapshot:
        self.log_fetch_attempt()
        snapshot = MarketSnapshot.from_dict(self.data)
        self.log_fetch_success(snapshot)
        return snapshot


class JsonFileMarketData(DataSource):
    """Reads a snapshot from a JSON file in the dashboard data layout."""

    def __init__(self, path: Union[str, Path]):
        super().__init__(f"Snapshot file {path}")
        self.path = Path(path)

    def fetch_snapshot(self) -> MarketSnapshot:
        self.log_fetch_attempt()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.log_fetch_error(e)
            raise StorageError(f"Could not read market snapshot from {self.path}: {e}") from e
        try:
            snapshot = MarketSnapshot.from_dict(raw)
        except ValidationError as e:
            self.log_fetch_error(e)
            raise
        self.log_fetch_success(snapshot)
        return snapshot
