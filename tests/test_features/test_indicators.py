"""
Unit tests for technical indicators.

Tests include hand-verified expected values and the insufficient-data boundaries.
"""
import math

import numpy as np
import pytest

from src.features.indicators import (
    IndicatorParams,
    bollinger_bands,
    ema,
    latest_indicators,
    macd,
    rsi,
    sma,
    stochastic,
)


class TestRSI:
    def test_insufficient_data(self):
        assert rsi(list(range(1, 15)), period=14) is None

    def test_minimum_length(self):
        result = rsi(list(range(1, 16)), period=14)
        assert result is not None
        assert len(result) == 1

    def test_only_gains_is_100(self):
        result = rsi(np.arange(1.0, 31.0), period=14)
        assert np.all(result == 100.0)

    def test_only_losses_is_0(self):
        result = rsi(np.arange(30.0, 0.0, -1.0), period=14)
        assert np.all(result == 0.0)

    def test_balanced_moves(self):
        # deltas +1, -1: avg gain == avg loss
        assert rsi([1.0, 2.0, 1.0], period=2)[0] == pytest.approx(50.0)

    def test_wilder_smoothing(self):
        # seed: gains [1, 0] -> 0.5, losses [0, 1] -> 0.5
        # next delta +2: gain (0.5 + 2) / 2 = 1.25, loss 0.5 / 2 = 0.25
        result = rsi([1.0, 2.0, 1.0, 3.0], period=2)
        assert result[-1] == pytest.approx(100 - 100 / (1 + 1.25 / 0.25))

    def test_flat_prices(self):
        assert rsi([5.0] * 20, period=14)[-1] == 100.0


class TestMovingAverages:
    def test_sma(self):
        np.testing.assert_allclose(sma([1, 2, 3, 4, 5], period=3), [2.0, 3.0, 4.0])

    def test_sma_insufficient_data(self):
        assert sma([1, 2], period=3) is None

    def test_ema_seeded_with_sma(self):
        # seed (1 + 2) / 2 = 1.5, k = 2/3
        np.testing.assert_allclose(ema([1, 2, 3, 4], period=2), [1.5, 2.5, 3.5])

    def test_ema_insufficient_data(self):
        assert ema([1.0], period=2) is None


class TestMACD:
    def test_insufficient_data(self):
        assert macd(np.arange(1.0, 35.0)) is None

    def test_minimum_length(self):
        result = macd(np.arange(1.0, 36.0))
        assert result is not None
        assert len(result.macd) == 10
        assert len(result.signal) == 2
        assert len(result.histogram) == 2

    def test_histogram_is_line_minus_signal(self, price_path):
        result = macd(price_path(80))
        np.testing.assert_allclose(
            result.histogram, result.macd[-len(result.signal):] - result.signal
        )

    def test_flat_prices_are_zero(self):
        result = macd([10.0] * 40)
        np.testing.assert_allclose(result.macd, 0.0, atol=1e-12)
        np.testing.assert_allclose(result.histogram, 0.0, atol=1e-12)

    def test_uptrend_is_positive(self):
        result = macd(np.arange(1.0, 60.0))
        assert result.macd[-1] > 0


class TestBollingerBands:
    def test_population_std(self):
        bands = bollinger_bands([1.0, 2.0, 3.0], period=3, k=2.0)
        std = math.sqrt(2.0 / 3.0)
        assert bands.middle[-1] == pytest.approx(2.0)
        assert bands.upper[-1] == pytest.approx(2.0 + 2 * std)
        assert bands.lower[-1] == pytest.approx(2.0 - 2 * std)

    def test_flat_prices_collapse(self):
        bands = bollinger_bands([7.0] * 25)
        np.testing.assert_allclose(bands.upper, bands.lower)
        np.testing.assert_allclose(bands.width, 0.0)

    def test_insufficient_data(self):
        assert bollinger_bands([1.0] * 19, period=20) is None


class TestStochastic:
    def test_close_at_high(self):
        result = stochastic(np.arange(1.0, 15.0), period=14)
        assert result.k[-1] == pytest.approx(100.0)

    def test_close_at_low(self):
        result = stochastic(np.arange(14.0, 0.0, -1.0), period=14)
        assert result.k[-1] == pytest.approx(0.0)

    def test_flat_window_is_undefined(self):
        result = stochastic([3.0] * 20, period=14)
        assert np.all(np.isnan(result.k))

    def test_percent_d_is_mean_of_k(self, price_path):
        result = stochastic(price_path(40), period=14, d_period=3)
        assert len(result.d) == len(result.k) - 2
        assert result.d[-1] == pytest.approx(np.mean(result.k[-3:]))

    def test_insufficient_data(self):
        assert stochastic([1.0] * 13, period=14) is None


class TestLatestIndicators:
    def test_full_window(self, price_path):
        prices = price_path(100)
        snapshot = latest_indicators(prices)

        assert snapshot.price == prices[-1]
        for value in (snapshot.rsi, snapshot.macd, snapshot.macd_signal, snapshot.sma, snapshot.ema,
                      snapshot.bollinger_upper, snapshot.stochastic_k, snapshot.stochastic_d):
            assert value is not None
        assert snapshot.bollinger_lower <= snapshot.bollinger_middle <= snapshot.bollinger_upper

    def test_short_window_reports_missing(self):
        snapshot = latest_indicators([1.0, 2.0, 3.0, 4.0, 5.0])
        assert snapshot.price == 5.0
        assert snapshot.rsi is None
        assert snapshot.macd is None
        assert snapshot.sma is None
        assert snapshot.stochastic_k is None

    def test_custom_periods(self):
        params = IndicatorParams(rsi_period=2, sma_period=2, ema_period=2)
        snapshot = latest_indicators([1.0, 2.0, 3.0, 4.0], params)
        assert snapshot.sma == pytest.approx(3.5)
        assert snapshot.ema == pytest.approx(3.5)
        assert snapshot.rsi == 100.0
