"""
Temperature Sample Sources
Probe payload decoding, a cook simulator and a replay source
"""
import asyncio
import logging
import random
import struct
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Iterable, List, Optional, Protocol

from models.cooking import TemperatureSample

logger = logging.getLogger(__name__)


class SampleSource(Protocol):
    """Anything that yields probe samples asynchronously"""

    def __aiter__(self) -> AsyncIterator[TemperatureSample]: ...


def decode_probe_value(payload: bytes) -> float:
    """
    Decode a probe characteristic value

    Args:
        payload: At least 4 bytes, little-endian float32 in °C

    Returns:
        Temperature in Celsius

    Raises:
        ValueError: payload too short
    """
    if len(payload) < 4:
        raise ValueError(f"probe payload needs 4 bytes, got {len(payload)}")
    return struct.unpack("<f", payload[:4])[0]


# Simulator tuning (Celsius)
AMBIENT_C = 4.0  # straight from the fridge
PIT_C = 121.0  # 250°F smoker
HEATING_COEFF = 0.004  # per simulated second, fraction of the gap to pit temp
STALL_LOW_C = 65.0
STALL_HIGH_C = 74.0
STALL_FACTOR = 0.15  # rate multiplier while in the stall
NOISE_AMPLITUDE = 0.2


class SimulatedProbe:
    """
    Simulated meat probe

    Heats toward the pit temperature with a stall between 65-74°C and a
    little noise. Timestamps advance by `interval` per sample regardless of
    real time, so a whole cook can be replayed quickly.
    """

    def __init__(
        self,
        start: Optional[datetime] = None,
        interval: timedelta = timedelta(seconds=30),
        initial_c: float = AMBIENT_C,
        pit_c: float = PIT_C,
        max_samples: Optional[int] = None,
        real_delay: float = 0.0,
        seed: Optional[int] = None,
    ):
        """
        Args:
            start: Timestamp of the first sample (now, UTC, when omitted)
            interval: Simulated time between samples
            initial_c: Starting meat temperature
            pit_c: Smoker temperature the meat approaches
            max_samples: Stop after this many samples (endless when None)
            real_delay: Seconds to actually sleep between samples
            seed: Random seed for reproducible noise
        """
        self.start = start or datetime.now(timezone.utc)
        self.interval = interval
        self.temperature = initial_c
        self.pit_c = pit_c
        self.max_samples = max_samples
        self.real_delay = real_delay
        self._rng = random.Random(seed)

    def step(self, dt_seconds: float) -> float:
        """
        Advance the simulated meat temperature

        Args:
            dt_seconds: Simulated seconds elapsed

        Returns:
            New temperature in Celsius (without noise)
        """
        gap = self.pit_c - self.temperature
        rate = HEATING_COEFF
        if STALL_LOW_C <= self.temperature <= STALL_HIGH_C:
            rate *= STALL_FACTOR
        self.temperature += gap * min(rate * dt_seconds, 1.0)
        return self.temperature

    async def __aiter__(self) -> AsyncIterator[TemperatureSample]:
        count = 0
        timestamp = self.start
        while self.max_samples is None or count < self.max_samples:
            noise = self._rng.uniform(-NOISE_AMPLITUDE, NOISE_AMPLITUDE)
            yield TemperatureSample(timestamp=timestamp, celsius=round(self.temperature + noise, 2))
            count += 1
            self.step(self.interval.total_seconds())
            timestamp = timestamp + self.interval
            if self.real_delay > 0:
                await asyncio.sleep(self.real_delay)
            else:
                # let the consumer run between samples
                await asyncio.sleep(0)


class ReplaySource:
    """Replays a fixed list of samples in the given order"""

    def __init__(self, samples: Iterable[TemperatureSample], real_delay: float = 0.0):
        self.samples: List[TemperatureSample] = list(samples)
        self.real_delay = real_delay

    async def __aiter__(self) -> AsyncIterator[TemperatureSample]:
        for sample in self.samples:
            yield sample
            await asyncio.sleep(self.real_delay)


async def pump(source: SampleSource, monitor) -> int:
    """
    Feed every sample from a source into a session monitor

    Stops when the source is exhausted or the monitor has been closed.

    Args:
        source: SampleSource
        monitor: CookSessionMonitor (anything with on_sample / is_closed)

    Returns:
        Number of samples delivered
    """
    delivered = 0
    async for sample in source:
        if monitor.is_closed:
            logger.info("[Source] monitor closed, stopping after %d samples", delivered)
            break
        monitor.on_sample(sample.timestamp, sample.celsius)
        delivered += 1
    return delivered
