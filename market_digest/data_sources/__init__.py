from .base import DataSource
from .dashboard import JsonFileMarketData, SimulatedMarketData, SIMULATED_MARKET_DATA

__all__ = ['DataSource', 'JsonFileMarketData', 'SimulatedMarketData', 'SIMULATED_MARKET_DATA']
