import os
from dataclasses import dataclass
from typing import Mapping, Optional

from blob_indexer.errors import ConfigError

DEFAULT_SLOTS_PER_EPOCH = 32
DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_METRICS_PORT = 8000


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ConfigError(f"{name} is not configured")
    return value


def _optional_int(env: Mapping[str, str], name: str, *, minimum: int = 0) -> Optional[int]:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{name} must be >= 0, got {value}")
    return value


@dataclass(frozen=True)
class Config:
    beacon_node_endpoint: str
    execution_node_endpoint: str
    blobscan_api_endpoint: str
    secret_key: str

    num_threads: Optional[int] = None     # worker threads per run, None -> cpu count
    slots_per_save: Optional[int] = None  # max slots per chunk, None -> auto
    from_slot: Optional[int] = None       # overrides the last indexed slot

    slots_per_epoch: int = DEFAULT_SLOTS_PER_EPOCH
    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    network_name: str = "mainnet"
    metrics_port: int = DEFAULT_METRICS_PORT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Config":
        env = os.environ if env is None else env

        slots_per_epoch = _optional_int(env, "SLOTS_PER_EPOCH", minimum=1)
        metrics_port = _optional_int(env, "METRICS_PORT")

        return cls(
            beacon_node_endpoint=_required(env, "BEACON_NODE_ENDPOINT").rstrip("/"),
            execution_node_endpoint=_required(env, "EXECUTION_NODE_ENDPOINT"),
            blobscan_api_endpoint=_required(env, "BLOBSCAN_API_ENDPOINT").rstrip("/"),
            secret_key=_required(env, "SECRET_KEY"),
            num_threads=_optional_int(env, "NUM_THREADS", minimum=1),
            slots_per_save=_optional_int(env, "SLOTS_PER_SAVE", minimum=1),
            from_slot=_optional_int(env, "FROM_SLOT"),
            slots_per_epoch=slots_per_epoch or DEFAULT_SLOTS_PER_EPOCH,
            poll_interval=_float(env, "POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            request_timeout=_float(env, "REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            network_name=env.get("NETWORK_NAME", "").strip().lower() or "mainnet",
            metrics_port=DEFAULT_METRICS_PORT if metrics_port is None else metrics_port,
            log_level=env.get("LOG_LEVEL", "").strip().upper() or "INFO",
        )

    @property
    def pool_size(self) -> int:
        return self.num_threads or os.cpu_count() or 1

    def summary(self) -> dict:
        """Loggable view of the config; never includes the secret."""
        return {
            "num_threads": self.num_threads or "auto",
            "slots_per_save": self.slots_per_save or "auto",
            "from_slot": self.from_slot,
            "slots_per_epoch": self.slots_per_epoch,
            "blobscan_api_endpoint": self.blobscan_api_endpoint,
            "beacon_node_endpoint": self.beacon_node_endpoint,
            "execution_node_endpoint": self.execution_node_endpoint,
            "network": self.network_name,
        }
