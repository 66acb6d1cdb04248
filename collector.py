import logging
import threading
from datetime import datetime
from typing import List, Optional

from config import RunConfig
from metrics import RequestOutcome, RunResult

logger = logging.getLogger(__name__)


class ResultCollector:
    """
    Indexed slot store: outcome i is written to slot i, so the finished
    sequence is in dispatch order no matter which request completed first.
    Safe to call record() from several threads or tasks at once.
    """

    def __init__(self, total_count: int):
        assert total_count >= 1, f"total_count must be positive, got {total_count}"
        self.total_count = total_count
        self._slots: List[Optional[RequestOutcome]] = [None] * total_count
        self._recorded = 0
        self._finalized = False
        self._lock = threading.Lock()

    def record(self, outcome: RequestOutcome):
        with self._lock:
            assert not self._finalized, "record() after finalize()"
            assert 0 <= outcome.index < self.total_count, \
                f"outcome index {outcome.index} outside 0..{self.total_count - 1}"
            assert self._slots[outcome.index] is None, f"duplicate outcome for index {outcome.index}"
            self._slots[outcome.index] = outcome
            self._recorded += 1

    @property
    def recorded(self) -> int:
        return self._recorded

    def is_complete(self) -> bool:
        return self._recorded == self.total_count

    def finalize(self, config: RunConfig, started_at: datetime, elapsed_s: float,
                 peak_in_flight: int = 0,
                 measured_elapsed_s: Optional[float] = None) -> RunResult:
        with self._lock:
            assert self._recorded == self.total_count, \
                f"finalize() with {self._recorded}/{self.total_count} outcomes recorded"
            self._finalized = True
            outcomes = tuple(self._slots)
        logger.debug(f"Collected {len(outcomes)} outcomes.")
        return RunResult(config=config, outcomes=outcomes, started_at=started_at,
                         elapsed_s=elapsed_s, peak_in_flight=peak_in_flight,
                         measured_elapsed_s=measured_elapsed_s)
