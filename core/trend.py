"""
Trend Estimator
Rate of temperature change over a short window of recent samples
"""
import logging
from collections import deque
from typing import Deque, Tuple

from core.errors import StaleSampleError
from models.cooking import TemperatureSample, TrendDirection, TrendEstimate

logger = logging.getLogger(__name__)


class TrendEstimator:
    """
    Tracks the last few samples of one session and reports degrees/minute

    The rate is taken from the first and last sample in the window. A change
    smaller than the dead-band (in Fahrenheit) is reported as steady so probe
    noise during a stall does not flip between rising and falling.
    """

    def __init__(self, window_size: int = 5, steady_band_f: float = 2.0):
        """
        Args:
            window_size: Number of samples kept (at least 2)
            steady_band_f: Total change over the window below which the trend is steady
        """
        if window_size < 2:
            raise ValueError("window_size must be at least 2")
        self.window_size = window_size
        self.steady_band_f = steady_band_f
        self._window: Deque[TemperatureSample] = deque(maxlen=window_size)
        self._latest = TrendEstimate()

    @property
    def latest(self) -> TrendEstimate:
        """Estimate produced by the last accepted sample"""
        return self._latest

    @property
    def window(self) -> Tuple[TemperatureSample, ...]:
        return tuple(self._window)

    def observe(self, sample: TemperatureSample) -> TrendEstimate:
        """
        Add a sample and recompute the trend

        Args:
            sample: New reading, not older than the newest in the window

        Returns:
            TrendEstimate

        Raises:
            StaleSampleError: sample is older than the newest one in the window
        """
        if self._window and sample.timestamp < self._window[-1].timestamp:
            raise StaleSampleError(sample.timestamp, self._window[-1].timestamp)

        self._window.append(sample)
        self._latest = self._estimate()
        return self._latest

    def reset(self):
        """Forget all samples"""
        self._window.clear()
        self._latest = TrendEstimate()

    def _estimate(self) -> TrendEstimate:
        if len(self._window) < 2:
            return TrendEstimate()

        first = self._window[0]
        last = self._window[-1]
        minutes = (last.timestamp - first.timestamp).total_seconds() / 60.0
        if minutes <= 0:
            return TrendEstimate()

        delta_c = last.celsius - first.celsius
        rate = delta_c / minutes

        delta_f = delta_c * 9 / 5
        if abs(delta_f) < self.steady_band_f:
            direction = TrendDirection.STEADY
        elif delta_f > 0:
            direction = TrendDirection.RISING
        else:
            direction = TrendDirection.FALLING

        logger.debug("[Trend] %.3f°C/min over %.1f min (%s)", rate, minutes, direction.value)
        return TrendEstimate(degrees_per_minute=rate, direction=direction)

