"""
Run configuration for the upload stress test harness.

A `RunConfig` is created once before a run and never mutated. All
validation happens at construction so a bad configuration can never
reach the dispatch loop.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from errors import ConfigurationError


class DispatchMode(Enum):
    BATCH = "batch"
    WORKERS = "workers"


def default_worker_count() -> int:
    """One less than the available CPU cores, never below one."""
    return max((os.cpu_count() or 1) - 1, 1)


@dataclass(frozen=True)
class RunConfig:
    """Concurrency and total-work parameters for one run."""
    total_requests: int = 100
    concurrency: int = 10
    timeout: float = 60.0  # seconds, 0 disables
    inter_batch_delay: float = 0.05  # seconds, batch mode only
    worker_count: int = field(default_factory=default_worker_count)
    mode: DispatchMode = DispatchMode.BATCH
    progress_interval: int = 10

    def __post_init__(self):
        if isinstance(self.mode, str):
            try:
                object.__setattr__(self, "mode", DispatchMode(self.mode))
            except ValueError:
                raise ConfigurationError(f"Unknown dispatch mode: {self.mode!r}") from None

        if self.total_requests < 0:
            raise ConfigurationError(f"total_requests must be >= 0, got {self.total_requests}")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.timeout < 0:
            raise ConfigurationError(f"timeout must be >= 0, got {self.timeout}")
        if self.inter_batch_delay < 0:
            raise ConfigurationError(f"inter_batch_delay must be >= 0, got {self.inter_batch_delay}")
        if self.worker_count < 1:
            raise ConfigurationError(f"worker_count must be >= 1, got {self.worker_count}")
        if self.progress_interval < 1:
            raise ConfigurationError(f"progress_interval must be >= 1, got {self.progress_interval}")

    @property
    def timeout_or_none(self):
        """Timeout in seconds for asyncio/aiohttp, or None when disabled."""
        return self.timeout if self.timeout > 0 else None

    @property
    def parallelism(self) -> int:
        """Maximum number of requests in flight at once."""
        if self.mode is DispatchMode.WORKERS:
            return self.worker_count
        return self.concurrency

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "concurrency": self.concurrency,
            "timeout_seconds": self.timeout,
            "inter_batch_delay_seconds": self.inter_batch_delay,
            "worker_count": self.worker_count,
            "mode": self.mode.value,
        }
