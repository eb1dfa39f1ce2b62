"""Fatal error types.

Recoverable failures (one batch, one entity, one fold) never raise past their
unit boundary; they come back as failed FitOutcome values. The classes below
are the ones that abort the enclosing operation.
"""


class PoolingBenchError(Exception):
    """Base class for unrecoverable pooling_bench errors."""


class BatchExecutionError(PoolingBenchError):
    """Every batch of a single fit failed, so no artifact can be produced."""


class CrossValidationError(PoolingBenchError):
    """Every cross-validation fold failed."""


class DataValidationError(PoolingBenchError, ValueError):
    """Required input columns or entities are missing."""
