"""Tests for crypto_analyst.analysis.indicators -- MA, RSI, volume stats and the task."""

import threading
from unittest.mock import MagicMock

import pytest

from crypto_analyst.analysis.indicators import (
    IndicatorsVolumeResult,
    IndicatorsVolumeTask,
    compute_indicators,
    compute_volume_stats,
    moving_average,
    relative_strength_index,
)
from crypto_analyst.data_sources.market_data import decode_market_chart
from crypto_analyst.errors import DecodingError, ProviderError
from crypto_analyst.pipeline.context import ResearchContext


# ---------------------------------------------------------------------------
# Moving average
# ---------------------------------------------------------------------------

class TestMovingAverage:

    def test_mean_of_series(self):
        assert moving_average([1.0, 2.0, 3.0, 4.0]) == pytest.approx(2.5, abs=1e-9)

    def test_scenario_series(self, scenario_prices):
        assert moving_average(scenario_prices) == pytest.approx(105.6, abs=1e-9)

    def test_empty_raises(self):
        with pytest.raises(DecodingError):
            moving_average([])


# ---------------------------------------------------------------------------
# RSI
# ---------------------------------------------------------------------------

class TestRelativeStrengthIndex:

    def test_scenario_value(self, scenario_prices):
        # gains 14, losses 2, both over 14 days -> RS 7 -> RSI 87.5
        rsi, gains, losses = relative_strength_index(scenario_prices, days=14)
        assert gains == pytest.approx(14.0)
        assert losses == pytest.approx(2.0)
        assert rsi == pytest.approx(87.5)

    def test_single_point_is_defined(self):
        rsi, gains, losses = relative_strength_index([42.0], days=14)
        assert gains == 0.0
        assert losses == 0.0
        assert rsi == pytest.approx(100 - 100 / 101)

    def test_no_losses_pins_rs(self):
        rsi, _, losses = relative_strength_index([1, 2, 3, 4, 5, 6], days=14)
        assert losses == 0.0
        assert rsi == pytest.approx(100 - 100 / 101)

    def test_only_losses_is_zero(self):
        rsi, gains, _ = relative_strength_index([10, 9, 8, 7], days=14)
        assert gains == 0.0
        assert rsi == pytest.approx(0.0)

    def test_range(self, random_prices):
        rsi, _, _ = relative_strength_index(random_prices, days=14)
        assert 0.0 <= rsi <= 100.0

    def test_days_must_be_positive(self):
        with pytest.raises(ValueError):
            relative_strength_index([1.0, 2.0], days=0)

    def test_empty_raises(self):
        with pytest.raises(DecodingError):
            relative_strength_index([], days=14)


class TestComputeIndicators:

    def test_summary_text(self, scenario_prices):
        result = compute_indicators(scenario_prices, days=14)
        assert result.summary() == "MA: $105.60, RSI: 87.50"
        assert result.last_price == 112.0


# ---------------------------------------------------------------------------
# Volume
# ---------------------------------------------------------------------------

class TestVolumeStats:

    def test_basic_stats(self):
        result = compute_volume_stats([10.0, 20.0, 30.0], days=30)
        assert result.avg_volume == pytest.approx(20.0)
        assert result.max_volume == 30.0
        assert result.min_volume == 10.0
        assert result.last_volume == 30.0

    def test_summary_text(self):
        result = compute_volume_stats([10.0, 20.0, 30.0])
        assert result.summary() == "Avg Vol: 20, Max Vol: 30, Min Vol: 10"

    def test_empty_raises(self):
        with pytest.raises(DecodingError):
            compute_volume_stats([])


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

class TestIndicatorsVolumeTask:

    def setup_method(self):
        self.market = MagicMock()
        self.ctx = ResearchContext(asset_id="bitcoin", market=self.market, cancel_event=threading.Event())

    def test_success(self, chart_payload, scenario_prices):
        self.market.get_market_chart.return_value = decode_market_chart(
            chart_payload(scenario_prices, [10.0, 20.0, 30.0, 40.0, 50.0]), "bitcoin", 14,
        )
        task = IndicatorsVolumeTask(indicator_days=14, volume_days=30)
        result = task.run(self.ctx)

        assert result.ok
        assert isinstance(result.data, IndicatorsVolumeResult)
        assert result.summary.splitlines()[0] == "MA: $105.60, RSI: 87.50"
        assert result.summary.splitlines()[1].startswith("Avg Vol: 30")
        days_requested = [c.kwargs["days"] for c in self.market.get_market_chart.call_args_list]
        assert days_requested == [14, 30]

    def test_provider_error_is_unavailable(self):
        self.market.get_market_chart.side_effect = ProviderError("CoinGecko API error (429)", status_code=429)
        result = IndicatorsVolumeTask().run(self.ctx)
        assert not result.ok
        assert result.error_kind == "provider_error"
        assert "429" in result.reason

    def test_empty_series_is_unavailable(self, chart_payload):
        self.market.get_market_chart.return_value = decode_market_chart(chart_payload([]), "bitcoin", 14)
        result = IndicatorsVolumeTask().run(self.ctx)
        assert not result.ok
        assert result.error_kind == "decoding_error"
