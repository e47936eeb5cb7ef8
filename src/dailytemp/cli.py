# connects input (city -> coordinates) to the service and prints yesterday's daily averages

from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from .config import Config
from .context import Context
from .models import Coordinates
from .service import DailyAggregator, compute_all

CITIES = {
    "Salt Lake City": Coordinates(lat=40.7608, lon=-111.8910),
    "Los Angeles": Coordinates(lat=34.0522, lon=-118.2437),
    "Boise": Coordinates(lat=43.6150, lon=-116.2023),
}

# the whole run has to finish within this many seconds
RUN_TIMEOUT = 30.0


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    day = (datetime.now(timezone.utc) - timedelta(days=1)).date()

    with DailyAggregator.from_config(Config.from_env()) as aggregator:
        # samples of all cities share the client's connection pool
        results = compute_all(aggregator, CITIES, day, ctx=Context(timeout=RUN_TIMEOUT), max_workers=len(CITIES))

    by_city = {r.city: r for r in results}
    for city in CITIES:
        r = by_city[city]
        print(f"{r.city} Daily Average Temp: {r.average_temp:.2f}")


if __name__ == "__main__":
    main()
