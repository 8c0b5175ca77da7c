"""
tbtcrewards/errors.py

Error taxonomy.

Whole-run fatal:
- InputValidationError: malformed thresholds or release lists
- InsufficientReleaseData: fewer than 2 release tags (cannot partition)
- BlockResolutionError: interval boundaries cannot be resolved to blocks

Per-operator, recovered locally:
- MetricUnavailable: a metric could not be sampled for one operator
"""


class RewardsError(Exception):
    """Base class for reward calculation errors."""
    pass


class InputValidationError(RewardsError):
    """Exception raised when inputs fail validation before evaluation."""
    pass


class InsufficientReleaseData(InputValidationError):
    """Exception raised when fewer than 2 release tags are available."""
    pass


class BlockResolutionError(RewardsError):
    """Exception raised when a timestamp cannot be resolved to a block."""
    pass


class MetricUnavailable(RewardsError):
    """Exception raised when a metric cannot be sampled for an operator."""

    def __init__(self, message: str, metric: str = "", operator: str = ""):
        super().__init__(message)
        self.metric = metric
        self.operator = operator
