"""Tests for crypto_analyst.analysis.patterns -- trend, levels, double top/bottom."""

import threading
from unittest.mock import MagicMock

import numpy as np
import pytest

from crypto_analyst.analysis.patterns import (
    PricePatternTask,
    analyze_price_pattern,
    classify_trend,
    detect_double_patterns,
    support_resistance,
)
from crypto_analyst.data_sources.market_data import decode_market_chart
from crypto_analyst.errors import DecodingError, ProviderTimeoutError
from crypto_analyst.pipeline.context import ResearchContext


class TestClassifyTrend:

    def test_scenario_bullish(self, scenario_prices):
        trend = classify_trend(scenario_prices)
        assert trend.direction == "Bullish"
        assert trend.change_pct == pytest.approx(12.0)
        assert trend.summary() == "Bullish (+12.00%)"

    def test_bearish(self):
        trend = classify_trend([100.0, 98.0, 90.0])
        assert trend.direction == "Bearish"
        assert trend.summary() == "Bearish (-10.00%)"

    def test_sideways_inside_band(self):
        assert classify_trend([100.0, 110.0, 104.0]).direction == "Sideways"

    @pytest.mark.parametrize("n,step", [(2, 10.0), (10, 1.0), (30, 0.5)])
    def test_monotonic_increase_is_bullish(self, n, step):
        prices = [100.0 + i * step for i in range(n)]
        change = (prices[-1] - prices[0]) / prices[0] * 100
        assert change > 5
        assert classify_trend(prices).direction == "Bullish"

    def test_single_point_raises(self):
        with pytest.raises(DecodingError, match="insufficient data"):
            classify_trend([100.0])


class TestSupportResistance:

    def test_scenario_levels(self, scenario_prices):
        levels = support_resistance(scenario_prices)
        assert levels.support == 100.0
        assert levels.resistance == 112.0
        assert levels.range_pct == pytest.approx(12.0)
        assert levels.summary() == "Support: $100.00, Resistance: $112.00"

    def test_single_point(self):
        levels = support_resistance([50.0])
        assert levels.support == levels.resistance == 50.0


class TestDoublePatterns:

    def test_double_top_only(self):
        result = detect_double_patterns([90.0, 120.0, 110.0, 119.0, 112.0])
        assert result.double_top
        assert not result.double_bottom
        assert result.summary() == "Double Top pattern detected."

    def test_double_bottom_only(self):
        result = detect_double_patterns([100.0, 80.0, 90.0, 81.0])
        assert result.double_bottom
        assert not result.double_top
        assert result.summary() == "Double Bottom pattern detected."

    def test_both_flags_kept(self):
        result = detect_double_patterns([100.0, 120.0, 100.0, 119.0, 100.0])
        assert result.double_top and result.double_bottom
        assert result.summary() == "Double Top and Double Bottom pattern detected."

    def test_no_pattern(self):
        result = detect_double_patterns([100.0, 110.0, 130.0, 150.0])
        assert not result.detected
        assert result.summary() == "No clear pattern detected."

    def test_reversal_symmetry(self):
        prices = [100.0, 120.0, 105.0, 110.0, 119.0, 100.0]
        forward = detect_double_patterns(prices)
        backward = detect_double_patterns(prices[::-1])
        assert forward.double_top
        assert backward.double_top
        assert forward.detected == backward.detected

    def test_split_point_is_floor_half(self):
        result = detect_double_patterns([1.0, 2.0, 3.0, 4.0, 5.0])
        assert result.first_peak == 2.0
        assert result.second_peak == 5.0


class TestAnalyzePricePattern:

    def test_scenario(self, scenario_prices):
        result = analyze_price_pattern(scenario_prices)
        assert result.trend.direction == "Bullish"
        assert result.levels.support == 100.0
        assert result.levels.resistance == 112.0
        assert result.points == 5
        assert result.to_dict()["levels"]["range_pct"] == pytest.approx(12.0)

    def test_random_walk_levels_bound_prices(self, random_prices):
        result = analyze_price_pattern(random_prices)
        arr = np.asarray(random_prices)
        assert result.levels.support == pytest.approx(arr.min())
        assert result.levels.resistance == pytest.approx(arr.max())


class TestPricePatternTask:

    def setup_method(self):
        self.market = MagicMock()
        self.ctx = ResearchContext(asset_id="bitcoin", market=self.market, cancel_event=threading.Event())

    def test_summary(self, chart_payload, scenario_prices):
        self.market.get_market_chart.return_value = decode_market_chart(
            chart_payload(scenario_prices), "bitcoin", 30,
        )
        result = PricePatternTask(days=30).run(self.ctx)
        assert result.ok
        lines = result.summary.splitlines()
        assert lines[0] == "Trend: Bullish (+12.00%)"
        assert lines[1] == "Support: $100.00, Resistance: $112.00"
        assert lines[2].startswith("Chart patterns: ")
        self.market.get_market_chart.assert_called_once_with("bitcoin", days=30)

    def test_short_series_is_unavailable(self, chart_payload):
        self.market.get_market_chart.return_value = decode_market_chart(chart_payload([100.0]), "bitcoin", 30)
        result = PricePatternTask().run(self.ctx)
        assert not result.ok
        assert result.error_kind == "decoding_error"
        assert "insufficient data" in result.reason

    def test_timeout_is_unavailable(self):
        self.market.get_market_chart.side_effect = ProviderTimeoutError("Timed out after 15s")
        result = PricePatternTask().run(self.ctx)
        assert not result.ok
        assert result.error_kind == "timeout"
        assert result.summary.startswith("Price pattern unavailable:")
