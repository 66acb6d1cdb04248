import logging
import random
from abc import ABC, abstractmethod
from typing import Optional

from config import ConfigError
from durations import format_duration, parse_duration_range

logger = logging.getLogger(__name__)


class WaitPolicy(ABC):
    """Delay applied before each request is sent, warmup requests included."""

    @abstractmethod
    def delay(self, rng: Optional[random.Random] = None) -> float:
        pass

    @property
    def is_flat(self) -> bool:
        return True

    @property
    def is_zero(self) -> bool:
        return False


class NoWait(WaitPolicy):
    def delay(self, rng: Optional[random.Random] = None) -> float:
        return 0.0

    @property
    def is_zero(self) -> bool:
        return True

    def __repr__(self):
        return "NoWait()"

    def __eq__(self, other):
        return isinstance(other, NoWait)

    def __hash__(self):
        return hash(NoWait)


class FixedWait(WaitPolicy):
    def __init__(self, duration_s: float):
        if duration_s < 0:
            raise ConfigError(f"wait must not be negative, got {duration_s}")
        self.duration_s = duration_s

    def delay(self, rng: Optional[random.Random] = None) -> float:
        return self.duration_s

    @property
    def is_zero(self) -> bool:
        return self.duration_s == 0

    def __repr__(self):
        return f"FixedWait({format_duration(self.duration_s)})"

    def __eq__(self, other):
        return isinstance(other, FixedWait) and other.duration_s == self.duration_s

    def __hash__(self):
        return hash((FixedWait, self.duration_s))


class RangeWait(WaitPolicy):
    """
    Uniform delay in [low, high). Pass each execution unit its own rng;
    without one the shared module-level generator is used.
    """

    def __init__(self, low_s: float, high_s: float):
        if low_s < 0:
            raise ConfigError(f"wait must not be negative, got {low_s}")
        if high_s < low_s:
            raise ConfigError(f"wait range end ({format_duration(high_s)}) "
                              f"is before its start ({format_duration(low_s)})")
        self.low_s = low_s
        self.high_s = high_s

    def delay(self, rng: Optional[random.Random] = None) -> float:
        if self.is_flat:
            return self.low_s
        source = rng if rng is not None else random
        value = self.low_s + (self.high_s - self.low_s) * source.random()
        # Float rounding can land exactly on the open upper bound
        return value if value < self.high_s else self.low_s

    @property
    def is_flat(self) -> bool:
        return self.low_s == self.high_s

    @property
    def is_zero(self) -> bool:
        return self.high_s == 0

    def __repr__(self):
        return f"RangeWait({format_duration(self.low_s)}..{format_duration(self.high_s)})"

    def __eq__(self, other):
        return isinstance(other, RangeWait) and (other.low_s, other.high_s) == (self.low_s, self.high_s)

    def __hash__(self):
        return hash((RangeWait, self.low_s, self.high_s))


def wait_policy_from_string(text: Optional[str]) -> WaitPolicy:
    if text is None or not text.strip():
        return NoWait()
    low, high = parse_duration_range(text)
    if low == high:
        return FixedWait(low)
    return RangeWait(low, high)


def warn_if_lockstep(policy: WaitPolicy, parallelism: int) -> bool:
    """Logs a hint when every execution unit would sleep the same fixed time."""
    if parallelism > 1 and policy.is_flat and not policy.is_zero:
        logger.warning(f"wait is set to a fixed duration ({policy!r}) and parallel is {parallelism}. "
                       f"All execution units will wait the same time and fire in lock-step. "
                       f"Use a range instead, for example: '-w 900ms..1100ms'.")
        return True
    return False
