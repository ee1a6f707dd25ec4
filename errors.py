"""
Error taxonomy for the upload stress test harness.

Per-request failures are never raised through the run; they become
classified outcomes. The exceptions below are the ones that actually
propagate: pre-flight problems, misconfiguration and lifecycle misuse.
"""


class HarnessError(Exception):
    """Base class for all harness errors."""


class ConfigurationError(HarnessError, ValueError):
    """Run configuration is invalid (fatal before the run starts)."""


class ResourceError(HarnessError):
    """Pre-flight check failed, e.g. input files missing or unreadable."""


class PayloadError(HarnessError):
    """A single request payload could not be built."""


class RunStateError(HarnessError):
    """Illegal run controller transition or re-entrant run."""


class StatsFrozenError(HarnessError):
    """An outcome was folded after the run was declared finished."""
