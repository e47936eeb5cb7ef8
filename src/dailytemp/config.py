# configuration value and the fixed provider constants
# the token and sample count are injected by the environment (or a local .env in development)

from __future__ import annotations
import os
from dataclasses import dataclass
from dotenv import load_dotenv

HOST = "api.openweathermap.org"
TIMEMACHINE_PATH = "/data/3.0/onecall/timemachine"
MAX_CONNECTIONS = 10          # shared connection pool ceiling across all samples
REQUEST_TIMEOUT = 5.0         # seconds, per single sample request

# sampling schedule: first sample 3h after the requested date, spread over one day
BASE_OFFSET_MINUTES = 180
DAY_MINUTES = 24 * 60

DEFAULT_COUNT_MEASUREMENT = 24


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Config:
    token: str
    count_measurement: int

    def __post_init__(self):
        if not self.token:
            raise ConfigError("OpenWeather token is empty")
        # a zero sample count would divide by zero when averaging
        if self.count_measurement <= 0:
            raise ConfigError(f"count_measurement must be >= 1 (got {self.count_measurement})")

    @classmethod
    def from_env(cls) -> "Config":
        load_dotenv()
        token = os.getenv("OPENWEATHER_TOKEN")
        if not token:
            raise ConfigError("OPENWEATHER_TOKEN not set")

        raw_count = os.getenv("OPENWEATHER_COUNT_MEASUREMENT", str(DEFAULT_COUNT_MEASUREMENT))
        try:
            count = int(raw_count)
        except ValueError as exc:
            raise ConfigError(f"OPENWEATHER_COUNT_MEASUREMENT is not an integer: {raw_count!r}") from exc

        return cls(token=token, count_measurement=count)
