"""
Data Providers Package

This package provides market data providers for chart practice mode.
"""

from typing import Optional

from backend.assessments.chart_annotations.data_providers.base import (
    ChartDataProvider, ProviderConfig, chart_payload
)
from backend.assessments.chart_annotations.data_providers.yahoo_finance_provider import (
    YahooFinanceChartProvider, DEFAULT_CONFIG as YAHOO_DEFAULT_CONFIG
)

_provider: Optional[ChartDataProvider] = None


def get_chart_provider() -> ChartDataProvider:
    """
    Get the configured chart data provider.

    Returns:
        Shared ChartDataProvider instance
    """
    global _provider
    if _provider is None:
        _provider = YahooFinanceChartProvider(YAHOO_DEFAULT_CONFIG)
    return _provider


async def close_chart_provider() -> None:
    """Close the shared provider, if one was created."""
    global _provider
    if _provider is not None:
        await _provider.close()
        _provider = None


__all__ = [
    'ChartDataProvider',
    'ProviderConfig',
    'chart_payload',
    'YahooFinanceChartProvider',
    'get_chart_provider',
    'close_chart_provider',
]
