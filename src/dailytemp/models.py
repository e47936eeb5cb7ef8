# models and tiny helpers to keep data shapes explicit and reusable across the app

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List


@dataclass(frozen=True)
class Coordinates:
    # signed degrees, never mutated once built
    lat: float
    lon: float


@dataclass(frozen=True)
class SampleRequest:
    # one point-in-time query, one instance per concurrent sample
    timestamp: datetime
    location: Coordinates

    @property
    def unix(self) -> int:
        return unix_seconds(self.timestamp)


@dataclass(frozen=True)
class DailyResult:
    # output value object used by consumers and cli
    city: str
    day: date
    average_temp: float


def unix_seconds(when: datetime) -> int:
    # naive datetimes are taken as UTC, not as local time
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return math.floor(when.timestamp())


def mean(values: List[float]) -> float:
    # plain arithmetic average, callers always pass at least one value
    return sum(values) / len(values)
