import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Optional

from collector import ResultCollector
from config import RunConfig, validate_run_config
from http_client import ErrorKind, HttpClient, describe_exception
from metrics import Failure, RequestOutcome, RunResult
from request import RequestTemplate
from wait_policy import warn_if_lockstep

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Runs config.total_count request attempts on a fixed pool of
    min(parallelism, total_count) execution units.

    Each unit claims the next dispatch index, sleeps for the wait policy's
    delay, then sends the request. A unit takes a new index only after its
    previous request fully completed, so at most `parallelism` attempts are
    ever in flight. Indices below warmup_count are tagged as warmup.
    """

    def __init__(self, config: RunConfig, client: Any,
                 template: Optional[RequestTemplate] = None,
                 seed: Optional[int] = None):
        self.config = validate_run_config(config)
        # Anything with `async execute(template) -> Success | Failure`
        self.client = client
        self.template = template or RequestTemplate(
            url=config.url, method=config.method, headers=config.headers, body=config.body)
        self.seed = seed
        self.collector = ResultCollector(config.total_count)

        self.num_units = min(config.parallelism, config.total_count)
        self._next_index = 0
        self.in_flight = 0
        self.peak_in_flight = 0
        # perf_counter at the first non-warmup dispatch
        self._measured_start: Optional[float] = None

    def _claim_index(self) -> Optional[int]:
        # No await between check and increment, so two units never share an index
        if self._next_index >= self.config.total_count:
            return None
        index = self._next_index
        self._next_index += 1
        if index == self.config.warmup_count:
            self._measured_start = time.perf_counter()
        return index

    async def _execute_one(self, index: int, rng: random.Random) -> RequestOutcome:
        waited = self.config.wait.delay(rng)
        if waited > 0:
            await asyncio.sleep(waited)

        started_at = datetime.now(timezone.utc)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        error: Optional[Exception] = None
        before = time.perf_counter()
        try:
            result = await self.client.execute(self.template)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Recorded like any transport failure; the run continues
            error = e
            result = Failure(kind=ErrorKind.OTHER, message=describe_exception(e))
        finally:
            latency = time.perf_counter() - before
            self.in_flight -= 1

        if error is not None:
            logger.error(f"Request {index}: client raised instead of returning a failure: {error}",
                         exc_info=error)

        return RequestOutcome(
            index=index,
            is_warmup=index < self.config.warmup_count,
            started_at=started_at,
            waited_for=waited,
            latency=latency,
            result=result,
        )

    async def _run_unit(self, unit_id: int):
        rng = random.Random(self.seed + unit_id if self.seed is not None else None)
        completed = 0
        while True:
            index = self._claim_index()
            if index is None:
                break
            outcome = await self._execute_one(index, rng)
            self.collector.record(outcome)
            completed += 1
            if outcome.result.ok:
                logger.debug(f"Request {index}{' (warmup)' if outcome.is_warmup else ''}: "
                             f"{outcome.result.status_code} in {outcome.latency * 1000:.2f}ms "
                             f"(waited {outcome.waited_for * 1000:.2f}ms)")
            else:
                logger.debug(f"Request {index}{' (warmup)' if outcome.is_warmup else ''}: "
                             f"{outcome.result.kind.value} after {outcome.latency * 1000:.2f}ms: "
                             f"{outcome.result.message}")
        logger.debug(f"Unit-{unit_id}: finished after {completed} requests.")

    async def run(self) -> RunResult:
        cfg = self.config
        logger.info(f"Starting run: {cfg.total_count} requests ({cfg.warmup_count} warmup), "
                    f"parallel {cfg.parallelism}, wait {cfg.wait!r}. Target: {self.template.method} {self.template.url}")

        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        await asyncio.gather(*(self._run_unit(i) for i in range(self.num_units)))
        end = time.perf_counter()
        elapsed_s = end - start
        measured_elapsed_s = end - self._measured_start if self._measured_start is not None else 0.0

        result = self.collector.finalize(cfg, started_at, elapsed_s, self.peak_in_flight,
                                         measured_elapsed_s=measured_elapsed_s)
        failures = sum(1 for o in result.outcomes if not o.result.ok)
        logger.info(f"Run finished in {elapsed_s:.2f}s: {len(result.outcomes)} outcomes, "
                    f"{failures} failures, peak in flight {self.peak_in_flight}.")
        return result


async def run_load(config: RunConfig, client: Any = None,
                   template: Optional[RequestTemplate] = None,
                   seed: Optional[int] = None) -> RunResult:
    """Validates the config, opens an HttpClient unless one is given, and runs to completion."""
    validate_run_config(config)
    warn_if_lockstep(config.wait, config.parallelism)
    if client is not None:
        return await Scheduler(config, client, template, seed).run()
    async with HttpClient(insecure_tls=config.insecure_tls, timeout_s=config.timeout_s) as http:
        return await Scheduler(config, http, template, seed).run()
