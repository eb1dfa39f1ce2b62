"""Fault-isolated batch execution of model fits.

Splits a dataset into consecutive row batches, fits each batch independently
and hands the successful artifacts to the ResultCombiner. A failing batch is
logged and skipped; only a run where every batch fails is fatal.
"""

import gc
import math
from typing import Callable, List, Optional

import numpy as np
import pandas as pd

from pooling_bench.core.artifacts import FitOutcome, ModelArtifact, attempt
from pooling_bench.core.combiner import ResultCombiner
from pooling_bench.core.exceptions import BatchExecutionError
from pooling_bench.core.logger import get_logger
from pooling_bench.core.parallel import map_units

logger = get_logger(__name__)


def effective_batch_size(n_rows: int, batch_size: int, min_batch: int) -> int:
    """Batch size actually used: min(batch_size, max(min_batch, ceil(n/5)))."""
    return min(batch_size, max(min_batch, math.ceil(n_rows / 5)))


def partition_indices(n_rows: int, batch_size: int = 1000, min_batch: int = 100) -> List[np.ndarray]:
    """
    Split row positions 0..n_rows-1 into consecutive batches.

    Args:
        n_rows: Number of rows in the dataset
        batch_size: Upper bound on batch size
        min_batch: Below this many rows the dataset is a single batch

    Returns:
        List of position arrays; disjoint, order preserving, sizes sum to n_rows

    Example:
        n_rows=1000, batch_size=1000, min_batch=100
        -> effective size 200 -> 5 batches of 200 rows
    """
    if batch_size < 1 or min_batch < 1:
        raise ValueError("batch_size and min_batch must be positive")

    positions = np.arange(n_rows)
    if n_rows < min_batch:
        return [positions]

    size = effective_batch_size(n_rows, batch_size, min_batch)
    return [positions[start:start + size] for start in range(0, n_rows, size)]


def _describe_batch(batch: pd.DataFrame) -> str:
    na_counts = batch.isna().sum()
    na_counts = na_counts[na_counts > 0]
    na_text = ', '.join(f"{col}={int(n)}" for col, n in na_counts.items()) or 'none'
    return f"{batch.shape[0]} rows x {batch.shape[1]} cols, NA counts: {na_text}"


class BatchExecutor:
    """Runs a fit function over row batches with per-batch fault isolation.

    Usage:
        executor = BatchExecutor(batch_size=1000, min_batch=100)
        artifact = executor.run(df, lambda d: fit_ols(d, features))
    """

    def __init__(self,
                 batch_size: int = 1000,
                 min_batch: int = 100,
                 gc_every: int = 3,
                 n_workers: int = 1,
                 combiner: Optional[ResultCombiner] = None):
        """
        Initialize executor.

        Args:
            batch_size: Upper bound on rows per batch
            min_batch: Datasets smaller than this are fitted in one call
            gc_every: Reclaim memory after this many batches
            n_workers: Worker threads for the batch loop (1 = sequential)
            combiner: ResultCombiner used to merge batch artifacts
        """
        self.batch_size = batch_size
        self.min_batch = min_batch
        self.gc_every = max(1, gc_every)
        self.n_workers = n_workers
        self.combiner = combiner or ResultCombiner()

    @classmethod
    def from_config(cls, batch_config: dict) -> 'BatchExecutor':
        """Build an executor from a run config's 'batch' section."""
        return cls(
            batch_size=batch_config.get('batch_size', 1000),
            min_batch=batch_config.get('min_batch', 100),
            gc_every=batch_config.get('gc_every', 3),
            n_workers=batch_config.get('n_workers', 1)
        )

    def run(self,
            dataset: pd.DataFrame,
            fit_fn: Callable[[pd.DataFrame], ModelArtifact],
            batch_size: Optional[int] = None,
            min_batch: Optional[int] = None,
            label: str = 'fit') -> ModelArtifact:
        """
        Fit every batch and combine the successful results.

        Args:
            dataset: Rows to fit on
            fit_fn: Function taking a batch DataFrame and returning a ModelArtifact
            batch_size: Override the executor's batch size for this call
            min_batch: Override the executor's min batch for this call
            label: Name used in log messages

        Returns:
            Combined ModelArtifact

        Raises:
            BatchExecutionError: If no batch produced an artifact
        """
        batch_size = self.batch_size if batch_size is None else batch_size
        min_batch = self.min_batch if min_batch is None else min_batch
        n_rows = len(dataset)

        if n_rows < min_batch:
            logger.warning(f"[{label}] {n_rows} rows is below min_batch={min_batch}, fitting without batching")
            outcome = attempt(fit_fn, dataset, label=f"{label} (whole dataset)")
            if not outcome.ok:
                logger.error(f"[{label}] Fit failed: {outcome.describe_error()}")
                raise BatchExecutionError(f"All batches failed for {label}: {outcome.describe_error()}")
            return outcome.artifact

        batches = partition_indices(n_rows, batch_size, min_batch)
        logger.info(f"[{label}] Processing {n_rows} rows in {len(batches)} batches "
                    f"of up to {effective_batch_size(n_rows, batch_size, min_batch)}")

        outcomes = self._run_batches(dataset, fit_fn, batches, label)

        successes = [o.artifact for o in outcomes if o.ok]
        failed = [o for o in outcomes if not o.ok]
        del outcomes

        if not successes:
            raise BatchExecutionError(
                f"All {len(batches)} batches failed for {label}; "
                f"first error: {failed[0].describe_error()}"
            )
        if failed:
            logger.warning(f"[{label}] {len(failed)}/{len(batches)} batches failed and were excluded")

        combined = self.combiner.combine(successes)
        del successes
        gc.collect()
        return combined

    def _run_batches(self, dataset: pd.DataFrame, fit_fn: Callable,
                     batches: List[np.ndarray], label: str) -> List[FitOutcome]:
        def run_one(item):
            i, positions = item
            batch = dataset.iloc[positions]
            logger.debug(f"[{label}] Processing batch {i + 1}/{len(batches)}")
            outcome = attempt(fit_fn, batch, label=f"{label} batch {i + 1}")
            if not outcome.ok:
                logger.error(f"[{label}] Batch {i + 1}/{len(batches)} failed: {outcome.describe_error()} "
                             f"({_describe_batch(batch)})")
            return outcome

        items = list(enumerate(batches))
        if self.n_workers is not None and self.n_workers > 1:
            # Reclaim memory between chunks of at least gc_every batches
            chunk = max(self.gc_every, self.n_workers)
            outcomes = []
            for start in range(0, len(items), chunk):
                outcomes.extend(map_units(run_one, items[start:start + chunk], self.n_workers))
                gc.collect()
            return outcomes

        outcomes = []
        for i, positions in items:
            outcomes.append(run_one((i, positions)))
            # Posterior samples accumulate quickly
            if (i + 1) % self.gc_every == 0:
                gc.collect()
        return outcomes
