from __future__ import annotations

import asyncio
import contextlib
import signal
import time
from random import Random
from typing import Callable

import httpx

from loadgen.core.client import RequestExecutor
from loadgen.core.domains import build_domain_specs
from loadgen.core.executor import ScenarioRegistry, build_default_registry
from loadgen.core.metrics import MetricsCollector
from loadgen.core.models import RunConfig, RunResult
from loadgen.core.policy import PROCESS_TOKENS
from loadgen.core.profile import RunProfile
from loadgen.core.selector import ScenarioSelector
from loadgen.core.stages import StageScheduler
from loadgen.core.thresholds import evaluate, verdict
from loadgen.exceptions import ScenarioNotRegisteredError
from loadgen.logger import Logger, session_logger


class VirtualUser:
    """One simulated client session: select, execute, record, think, repeat.

    ``stop()`` is honoured only between iterations, so an iteration that has
    started always finishes its requests, checks and metric recording.
    """

    def __init__(
        self,
        vu_id: int,
        *,
        selector: ScenarioSelector,
        registry: ScenarioRegistry,
        client: RequestExecutor,
        metrics: MetricsCollector,
        rng: Random,
        think_time: tuple[float, float],
        logger: Logger | None = None,
    ) -> None:
        self.vu_id = vu_id
        self._selector = selector
        self._registry = registry
        self._client = client
        self._metrics = metrics
        self._rng = rng
        self._think_min, self._think_max = think_time
        self._logger = logger or session_logger
        self._stop = asyncio.Event()
        self.iterations = 0

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def run(self) -> None:
        while not self._stop.is_set():
            await self.run_iteration()
            await self._think()

    async def run_iteration(self) -> None:
        descriptor = self._selector.select()
        try:
            results = await self._registry.execute(descriptor, self._client)
        except Exception as exc:
            self._metrics.record_iteration(descriptor.name, False)
            self._logger.error(
                "loadgen.iteration_crashed",
                vu_id=self.vu_id,
                scenario=descriptor.name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            self.iterations += 1
            return

        for result in results:
            self._metrics.record_check(result)

        self.iterations += 1
        if not results:
            self._metrics.record_iteration(descriptor.name, None)
            self._logger.debug("loadgen.iteration_skipped", vu_id=self.vu_id, scenario=descriptor.name)
            return

        passed = all(result.passed for result in results)
        self._metrics.record_iteration(descriptor.name, passed)
        if not passed:
            self._logger.warning(
                "loadgen.iteration_failed",
                vu_id=self.vu_id,
                scenario=descriptor.name,
                failed_checks=[r.name for r in results if not r.passed],
            )

    async def _think(self) -> None:
        delay = self._think_min + self._rng.random() * (self._think_max - self._think_min)
        if delay <= 0:
            await asyncio.sleep(0)
            return
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop.wait(), timeout=delay)


class LoadRunner:
    """Runs one load test: health gate, staged VU pool, threshold verdict."""

    def __init__(
        self,
        config: RunConfig,
        profile: RunProfile,
        *,
        logger: Logger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        handle_signals: bool = True,
    ) -> None:
        self._config = config
        self._profile = profile
        self._logger = logger or session_logger
        self._transport = transport
        self._clock = clock
        self._handle_signals = handle_signals
        self._metrics = MetricsCollector(logger=self._logger)

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    async def run(self) -> RunResult:
        """Execute the run.

        Raises HealthCheckError (before any load is generated) when the
        service does not pass the health probe.
        """
        scheduler = StageScheduler(self._profile.stages)
        rng = Random(self._config.seed)

        client = RequestExecutor(
            self._config.base_url,
            timeout_seconds=self._config.timeout_seconds,
            transport=self._transport,
            logger=self._logger,
        )
        try:
            await client.check_health()

            registry = build_default_registry(
                build_domain_specs(known_id_ratio=self._profile.known_id_ratio),
                rng=rng,
                tokens=PROCESS_TOKENS,
                metrics=self._metrics,
                budgets_ms=self._profile.latency_budgets_ms,
            )
            for descriptor in self._profile.users + self._profile.orders:
                if (descriptor.domain, descriptor.operation) not in registry:
                    raise ScenarioNotRegisteredError(descriptor.domain.value, descriptor.operation.value)

            selector = ScenarioSelector(
                self._profile.users,
                self._profile.orders,
                domain_split=self._profile.domain_split,
                rng=rng,
            )

            self._logger.info(
                "loadgen.run_start",
                base_url=self._config.base_url,
                stages=len(scheduler.stages),
                total_duration_seconds=scheduler.total_duration,
                max_vus=scheduler.max_target,
                domain_split=self._profile.domain_split,
                thresholds=[str(spec) for spec in self._profile.thresholds],
            )

            started = self._clock()
            stop_event = asyncio.Event()
            with _SignalHandlers(stop_event, self._logger, enabled=self._handle_signals):
                max_vus = await self._drive(
                    scheduler,
                    stop_event,
                    lambda vu_id: VirtualUser(
                        vu_id,
                        selector=selector,
                        registry=registry,
                        client=client,
                        metrics=self._metrics,
                        rng=rng,
                        think_time=(self._profile.think_time_min_seconds, self._profile.think_time_max_seconds),
                        logger=self._logger,
                    ),
                )
            ended = self._clock()
        finally:
            await client.aclose()

        snapshot = self._metrics.snapshot()
        threshold_results = evaluate(snapshot, self._profile.thresholds)

        result = RunResult(
            started_at_monotonic=started,
            ended_at_monotonic=ended,
            iterations=snapshot.iterations,
            max_vus=max_vus,
            metrics=snapshot,
            thresholds=threshold_results,
            interrupted=stop_event.is_set(),
        )

        for threshold in threshold_results:
            log = self._logger.info if threshold.passed else self._logger.warning
            log(
                "loadgen.threshold",
                metric=threshold.spec.metric_label,
                expression=threshold.spec.expression,
                actual=threshold.actual,
                passed=threshold.passed,
            )

        self._logger.info(
            "loadgen.run_end",
            iterations=result.iterations,
            http_reqs=snapshot.http_reqs,
            max_vus=max_vus,
            duration_seconds=round(result.duration_seconds, 3),
            interrupted=result.interrupted,
            passed=verdict(threshold_results),
        )

        return result

    async def _drive(
        self,
        scheduler: StageScheduler,
        stop_event: asyncio.Event,
        make_vu: Callable[[int], VirtualUser],
    ) -> int:
        """Reconcile the VU pool with the scheduler until the last stage ends.

        Returns the highest number of concurrently active VUs.
        """
        active: list[tuple[VirtualUser, asyncio.Task[None]]] = []
        retiring: list[asyncio.Task[None]] = []
        next_id = 0
        pool_size = 0
        max_vus = 0
        started = self._clock()

        try:
            while not stop_event.is_set():
                elapsed = self._clock() - started
                if scheduler.is_complete(elapsed):
                    break

                target = scheduler.target_at(elapsed)
                while len(active) < target:
                    vu = make_vu(next_id)
                    next_id += 1
                    active.append((vu, asyncio.create_task(vu.run(), name=f"vu-{vu.vu_id}")))
                while len(active) > target:
                    vu, task = active.pop()
                    vu.stop()
                    retiring.append(task)
                retiring = self._reap(retiring)
                if len(active) != pool_size:
                    pool_size = len(active)
                    self._logger.debug("loadgen.vus_changed", vus=pool_size, retiring=len(retiring))
                max_vus = max(max_vus, pool_size)

                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(stop_event.wait(), timeout=self._config.tick_seconds)
        finally:
            for vu, task in active:
                vu.stop()
                retiring.append(task)

            self._logger.debug("loadgen.draining", vus=len(retiring))
            outcomes = await asyncio.gather(*retiring, return_exceptions=True)
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    self._log_crash(outcome)

        return max_vus

    def _reap(self, tasks: list[asyncio.Task[None]]) -> list[asyncio.Task[None]]:
        """Drop finished VU tasks, logging any that crashed; returns the rest."""
        pending: list[asyncio.Task[None]] = []
        for task in tasks:
            if not task.done():
                pending.append(task)
            elif not task.cancelled() and task.exception() is not None:
                self._log_crash(task.exception())
        return pending

    def _log_crash(self, exc: BaseException) -> None:
        self._logger.error("loadgen.vu_crashed", error_type=type(exc).__name__, error=str(exc))


class _SignalHandlers:
    """Turns SIGINT/SIGTERM into a graceful stop of the schedule."""

    def __init__(self, stop_event: asyncio.Event, logger: Logger, *, enabled: bool = True) -> None:
        self._stop_event = stop_event
        self._logger = logger
        self._enabled = enabled
        self._installed: list[int] = []

    def _handle(self, signum: int) -> None:  # pragma: no cover
        self._logger.warning("loadgen.signal", signum=signum)
        self._stop_event.set()

    def __enter__(self):
        if not self._enabled:
            return self
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._handle, signum)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not supported on this platform or outside the main thread.
                continue
            self._installed.append(signum)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._installed:
            loop = asyncio.get_running_loop()
            for signum in self._installed:
                loop.remove_signal_handler(signum)
            self._installed.clear()
        return False
