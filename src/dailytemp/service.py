# orchestration and business rules.
# fans a day out into N time machine samples on the client's worker pool and averages them
# provides the pure offset schedule, the DailyAggregator and a compute_all coordinator for several places

from __future__ import annotations
import logging
import math
import queue
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from .client import OpenWeatherClient, RequestCancelledError, SampleError
from .config import BASE_OFFSET_MINUTES, DAY_MINUTES, Config, ConfigError
from .context import Context
from .models import Coordinates, DailyResult, SampleRequest, mean

logger = logging.getLogger(__name__)

_CANCELLED = object()


def sample_offsets(n: int, base_offset: int = BASE_OFFSET_MINUTES, span: int = DAY_MINUTES) -> List[int]:
    # minutes after the requested date; ceil keeps every offset on a whole minute
    return [int(math.ceil(base_offset + span * i / n)) for i in range(n)]


class DailyAggregator:
    # reconstructs a daily average from N concurrent point samples, all or nothing:
    # the mean of exactly sample_count successes, or the first sample error observed
    # (when several samples fail at once, which one is reported is not defined)

    def __init__(
        self,
        client: OpenWeatherClient,
        sample_count: int,
        *,
        base_offset: int = BASE_OFFSET_MINUTES,
        span: int = DAY_MINUTES,
    ):
        if sample_count <= 0:
            raise ConfigError(f"sample_count must be >= 1 (got {sample_count})")
        self.client = client
        self.sample_count = sample_count
        self.base_offset = base_offset
        self.span = span

    @classmethod
    def from_config(cls, cfg: Config, **kwargs) -> "DailyAggregator":
        return cls(OpenWeatherClient(cfg.token), cfg.count_measurement, **kwargs)

    def sample_requests(self, day: datetime, location: Coordinates) -> List[SampleRequest]:
        return [
            SampleRequest(day + timedelta(minutes=offset), location)
            for offset in sample_offsets(self.sample_count, self.base_offset, self.span)
        ]

    def get_temp_by_time(self, ctx: Context, when: datetime, location: Coordinates) -> float:
        return self.client.get_temp_by_time(ctx, when, location)

    def get_daily_temp(self, ctx: Context, day: datetime, location: Coordinates) -> float:
        samples = self.sample_requests(day, location)

        done: "queue.Queue[object]" = queue.Queue()
        # registered before the scope so the caller's cancellation is seen ahead of any sample's
        unregister = ctx.add_callback(lambda: done.put(_CANCELLED))
        # every sample runs under this scope; closing it stops samples that have not sent yet
        scope = ctx.child()
        futures: List[Future] = []
        try:
            for sample in samples:
                future = self.client.submit(scope, sample)
                future.add_done_callback(done.put)
                futures.append(future)

            temps: List[float] = []
            while len(temps) < self.sample_count:
                item = done.get()
                if item is _CANCELLED or ctx.cancelled:
                    raise RequestCancelledError(f"daily aggregation {ctx.reason or 'cancelled'}")
                temps.append(self._outcome(item))

            avg = mean(temps)
            logger.info("daily temp at (%f, %f) for %s: %.2f", location.lat, location.lon, day.isoformat(), avg)
            return avg
        except SampleError as exc:
            logger.warning("daily aggregation at (%f, %f) for %s failed: %s", location.lat, location.lon, day.isoformat(), exc)
            raise
        finally:
            unregister()
            scope.cancel()
            for future in futures:
                future.cancel()

    def _outcome(self, future: Future) -> float:
        if future.cancelled():
            # only the collector cancels samples, and only after it has stopped collecting
            raise RequestCancelledError("sample dropped before it started")
        return future.result()

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "DailyAggregator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def utc_midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


# reuse a single aggregator; each place gets its own worker while the samples share the client's pool
def compute_all(
    aggregator: DailyAggregator,
    locations: Dict[str, Coordinates],
    day: date,
    ctx: Optional[Context] = None,
    max_workers: int = 3,
) -> List[DailyResult]:
    ctx = ctx or Context()
    start = utc_midnight(day)
    results: List[DailyResult] = []

    # the first failing place stops the others instead of waiting for them
    scope = ctx.child()
    try:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {
                pool.submit(aggregator.get_daily_temp, scope, start, location): city
                for city, location in locations.items()
            }
            for fut in as_completed(futures):
                try:
                    temp = fut.result()
                except Exception:
                    scope.cancel()
                    # allow exceptions to propagate (pytest/cli will display clear messages)
                    raise
                results.append(DailyResult(city=futures[fut], day=day, average_temp=temp))
    finally:
        scope.cancel()

    # ensure a stable ordering so cli output is deterministic and tests are easier to validate
    return sorted(results, key=lambda x: x.city.lower())
