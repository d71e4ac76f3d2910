"""Probability of Backtest Overfitting via combinatorially symmetric cross-validation.

Bailey, Borwein, Lopez de Prado & Zhu (2017). The time-by-variant return
matrix is cut into S contiguous equal blocks. Every choice of S/2 blocks is
an in-sample set and its complement the out-of-sample set. For each split
the variant with the best in-sample Sharpe is located in the out-of-sample
ranking; its relative rank w = rank / (N + 1) gives the logit
l = ln(w / (1 - w)). PBO is the share of splits with l <= 0, i.e. where the
in-sample winner lands at or below the out-of-sample median.

Up to `max_exact_blocks` every C(S, S/2) split is evaluated. Above that a
fixed number of splits is sampled uniformly with a seeded generator, so the
estimate is reproducible.
"""

from __future__ import annotations

import itertools
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from math import comb
from typing import Optional, Protocol

import numpy as np
from scipy import stats as sp_stats

from ..exceptions import Cancelled, ConfigurationError, InsufficientDataError
from ..logging_config import get_logger

logger = get_logger(__name__)


class CancelToken(Protocol):
    """Anything with is_set(), e.g. threading.Event."""

    def is_set(self) -> bool: ...


@dataclass(frozen=True)
class PBOResult:
    pbo: float  # in [0, 1]
    degraded: int  # splits where the in-sample winner fell to/below the OOS median
    combinations: int  # splits evaluated
    blocks: int
    exhaustive: bool


def split_combinations(
    n_blocks: int,
    max_exact_blocks: int = 20,
    max_sampled: int = 2000,
    seed: int = 42,
) -> tuple[np.ndarray, bool]:
    """In-sample block indices for each split, shape (C, S/2), and whether exhaustive."""
    half = n_blocks // 2
    if n_blocks <= max_exact_blocks:
        combos = np.array(list(itertools.combinations(range(n_blocks), half)), dtype=np.intp)
        return combos, True

    rng = np.random.default_rng(seed)
    count = min(max_sampled, comb(n_blocks, half))
    combos = np.empty((count, half), dtype=np.intp)
    for i in range(count):
        combos[i] = np.sort(rng.choice(n_blocks, size=half, replace=False))
    return combos, False


def _block_moments(matrix: np.ndarray, n_blocks: int) -> tuple[np.ndarray, np.ndarray]:
    """Per-block column sums and sums of squares, each shape (S, N)."""
    rows, cols = matrix.shape
    blocks = matrix.reshape(n_blocks, rows // n_blocks, cols)
    return blocks.sum(axis=1), (blocks**2).sum(axis=1)


def _sharpe_from_moments(sums: np.ndarray, squares: np.ndarray, n: int) -> np.ndarray:
    mean = sums / n
    variance = np.maximum((squares - n * mean**2) / (n - 1), 0.0)
    std = np.sqrt(variance)
    return np.divide(mean, std, out=np.zeros_like(mean), where=std > 0)


def _count_degraded(
    combos: np.ndarray,
    block_sums: np.ndarray,
    block_squares: np.ndarray,
    rows_per_half: int,
) -> int:
    """Number of splits in the batch whose in-sample winner degrades out of sample."""
    n_blocks, n_variants = block_sums.shape
    mask = np.zeros((len(combos), n_blocks), dtype=float)
    np.put_along_axis(mask, combos, 1.0, axis=1)
    inverse = 1.0 - mask

    is_sharpe = _sharpe_from_moments(mask @ block_sums, mask @ block_squares, rows_per_half)
    oos_sharpe = _sharpe_from_moments(
        inverse @ block_sums, inverse @ block_squares, rows_per_half
    )

    best = np.argmax(is_sharpe, axis=1)
    ranks = sp_stats.rankdata(oos_sharpe, axis=1)
    best_rank = ranks[np.arange(len(combos)), best]
    # logit(w) <= 0 with w = rank / (N + 1)  <=>  rank / (N + 1 - rank) <= 1
    odds = best_rank / (n_variants + 1 - best_rank)
    return int(np.count_nonzero(np.log(odds) <= 0.0))


def probability_of_backtest_overfitting(
    matrix,
    n_blocks: int = 16,
    max_exact_blocks: int = 20,
    max_sampled: int = 2000,
    seed: int = 42,
    batch_size: int = 256,
    workers: Optional[int] = None,
    cancel: Optional[CancelToken] = None,
) -> PBOResult:
    """Compute PBO for a time-by-variant return matrix.

    Args:
        matrix: Returns, shape (T, N); rows in time order, one column per variant
        n_blocks: Number of contiguous blocks S; must be even and divide T
        max_exact_blocks: Largest S for which all C(S, S/2) splits are evaluated
        max_sampled: Number of sampled splits above max_exact_blocks
        seed: Seed for the sampled splits
        batch_size: Splits per worker batch
        workers: Thread count for the batch fan-out (None = executor default)
        cancel: Cooperative cancel token checked between batches

    Raises:
        InsufficientDataError: T not divisible by S, too few rows or variants
        Cancelled: The cancel token was set before all batches completed
    """
    if n_blocks < 2 or n_blocks % 2:
        raise ConfigurationError(f"n_blocks must be an even number >= 2, got {n_blocks}")

    data = np.asarray(matrix, dtype=float)
    if data.ndim != 2 or data.shape[1] < 2:
        raise InsufficientDataError(
            "PBO ranks variants against each other and needs at least 2 variant columns",
            field="variant_returns",
            minimum_required=2,
        )

    rows, n_variants = data.shape
    if rows < n_blocks or rows % n_blocks:
        raise InsufficientDataError(
            f"returns length {rows} must be a positive multiple of {n_blocks} blocks "
            f"(e.g. {max(n_blocks, rows - rows % n_blocks)} rows)",
            field="variant_returns",
            minimum_required=n_blocks,
        )
    rows_per_half = rows // 2
    if rows_per_half < 2:
        raise InsufficientDataError(
            "each half needs at least 2 rows", field="variant_returns", minimum_required=4
        )

    combos, exhaustive = split_combinations(n_blocks, max_exact_blocks, max_sampled, seed)
    block_sums, block_squares = _block_moments(data, n_blocks)
    batches = [combos[i : i + batch_size] for i in range(0, len(combos), batch_size)]
    logger.debug(
        f"PBO: {len(combos)} splits of {n_blocks} blocks ({'exact' if exhaustive else 'sampled'}), "
        f"{n_variants} variants, {len(batches)} batch(es)"
    )

    degraded = 0
    if len(batches) == 1:
        if cancel is not None and cancel.is_set():
            raise Cancelled("PBO enumeration", 0, len(combos))
        degraded = _count_degraded(batches[0], block_sums, block_squares, rows_per_half)
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(_count_degraded, batch, block_sums, block_squares, rows_per_half)
                for batch in batches
            ]
            done = 0
            for batch, future in zip(batches, futures):
                if cancel is not None and cancel.is_set():
                    for pending in futures:
                        pending.cancel()
                    raise Cancelled("PBO enumeration", done, len(combos))
                degraded += future.result()
                done += len(batch)

    total = len(combos)
    return PBOResult(
        pbo=degraded / total,
        degraded=degraded,
        combinations=total,
        blocks=n_blocks,
        exhaustive=exhaustive,
    )
