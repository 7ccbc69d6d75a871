"""Tests for full-jitter delay computation"""

from __future__ import annotations

import math
import random
import sys
from statistics import mean
from unittest.mock import Mock

import pytest
from tenacity import AsyncRetrying, Retrying

from rebound.domain.config import ControllerConfig
from rebound.domain.errors import ConfigurationError
from rebound.infrastructure.retry import (
    RetryCancelled,
    build_retrying,
    compute_delay_millis,
    delay_ceiling_millis,
    wait_full_jitter,
)


class TestDelayCeiling:
    """Tests for delay_ceiling_millis"""

    def test_exponential_growth(self):
        """Test ceiling doubles with each attempt"""
        assert delay_ceiling_millis(1, 50, 100) == 100
        assert delay_ceiling_millis(2, 50, 100) == 200
        assert delay_ceiling_millis(3, 50, 100) == 400

    def test_jitter_scales_ceiling(self):
        """Test jitter percent scales the exponential delay"""
        assert delay_ceiling_millis(3, 50, 50) == 200
        assert delay_ceiling_millis(3, 50, 150) == 600
        assert delay_ceiling_millis(3, 50, 0) == 0

    def test_zero_base_with_large_attempt(self):
        """Test a zero scale stays 0 far past float exponent range"""
        assert delay_ceiling_millis(1100, 0, 100) == 0.0
        assert delay_ceiling_millis(5000, 50, 0) == 0.0

    def test_large_attempt_saturates(self):
        """Test huge attempt numbers cap at the largest finite float"""
        assert delay_ceiling_millis(2000, 50, 100) == sys.float_info.max
        assert delay_ceiling_millis(1000, 50, 100) == math.ldexp(50.0, 1000)


class TestComputeDelay:
    """Tests for compute_delay_millis"""

    def test_samples_within_bounds_with_expected_mean(self):
        """Test 10k samples for attempt 3 lie in [0, 400] and average near 200"""
        rng = random.Random(1234)

        samples = [compute_delay_millis(3, 50, 100, rng=rng) for _ in range(10000)]

        assert all(0 <= s <= 400 for s in samples)
        assert mean(samples) == pytest.approx(200, abs=10)

    def test_zero_jitter_means_no_delay(self):
        """Test jitter 0 always yields 0"""
        assert compute_delay_millis(5, 50, 0) == 0

    def test_uses_module_random_by_default(self, monkeypatch):
        """Test default random source is the random module"""
        monkeypatch.setattr(random, "uniform", lambda a, b: b / 2)
        assert compute_delay_millis(1, 50, 100) == 50

    def test_clamped_to_ceiling(self):
        """Test out-of-range draws are clamped"""
        rng = Mock()
        rng.uniform.return_value = 1000.0
        assert compute_delay_millis(1, 50, 100, rng=rng) == 100

    def test_large_attempt_draw_is_finite(self):
        """Test draws past the float exponent range stay finite and in range"""
        delay = compute_delay_millis(2000, 50, 100, rng=random.Random(3))

        assert math.isfinite(delay)
        assert 0 <= delay <= sys.float_info.max


class TestWaitFullJitter:
    """Tests for the tenacity wait strategy"""

    def test_returns_seconds_for_failed_attempt(self):
        """Test the delay uses the failed attempt number and seconds"""
        rng = Mock()
        rng.uniform.side_effect = lambda a, b: b
        wait = wait_full_jitter(50, 100, rng=rng)

        assert wait(Mock(attempt_number=3)) == pytest.approx(0.4)
        rng.uniform.assert_called_with(0.0, 400.0)

    def test_random_draws_stay_in_range(self):
        """Test unseeded draws are bounded"""
        wait = wait_full_jitter(10, 100)
        for attempt in range(1, 6):
            delay = wait(Mock(attempt_number=attempt))
            assert 0 <= delay <= 10 * 2**attempt / 1000.0


class TestBuildRetrying:
    """Tests for build_retrying"""

    def test_builds_sync_retrying(self):
        """Test a Retrying is returned by default"""
        retrying = build_retrying(ControllerConfig(), stop=lambda rs: True, sleep=lambda s: None)
        assert isinstance(retrying, Retrying)

    def test_builds_async_retrying(self):
        """Test use_async returns AsyncRetrying"""

        async def sleep(seconds):
            return None

        retrying = build_retrying(
            ControllerConfig(), stop=lambda rs: True, sleep=sleep, use_async=True
        )
        assert isinstance(retrying, AsyncRetrying)

    def test_cancellation_is_not_retried(self):
        """Test RetryCancelled escapes the retry loop immediately"""
        calls = []

        def operation():
            calls.append(1)
            raise RetryCancelled()

        retrying = build_retrying(
            ControllerConfig(), stop=lambda rs: False, sleep=lambda s: None
        )
        with pytest.raises(RetryCancelled):
            retrying(operation)
        assert len(calls) == 1

    def test_configuration_error_is_not_retried(self):
        """Test ConfigurationError escapes the retry loop immediately"""
        calls = []

        def operation():
            calls.append(1)
            raise ConfigurationError("bad operation")

        retrying = build_retrying(
            ControllerConfig(), stop=lambda rs: False, sleep=lambda s: None
        )
        with pytest.raises(ConfigurationError):
            retrying(operation)
        assert len(calls) == 1

    def test_any_exception_is_retried(self):
        """Test ordinary failures are retried until the stop predicate fires"""
        calls = []

        def operation():
            calls.append(1)
            raise KeyError("missing")

        retrying = build_retrying(
            ControllerConfig(base_backoff_millis=0),
            stop=lambda rs: rs.attempt_number >= 4,
            sleep=lambda s: None,
            retry_error_callback=lambda rs: "gave up",
        )
        assert retrying(operation) == "gave up"
        assert len(calls) == 4
