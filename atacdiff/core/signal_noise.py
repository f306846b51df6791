"""
Signal-to-noise (S2N) summary of normalized counts.

For each region, with group means ``m1, m2`` (a zero mean counts as 1) and
sample standard deviations capped at 20% of the absolute mean::

    s2n = (m1 - m2) / (min(sd1, 0.2*|m1|) + min(sd2, 0.2*|m2|))

A zero denominator, or a group with fewer than two samples, gives NaN.
NaN marks the score as undefined; it is never replaced by zero.
"""

import logging
from typing import Sequence

import numpy as np
import pandas as pd

from .exceptions import InvalidParameterError, validate_dataframe

logger = logging.getLogger(__name__)

SD_CAP_FRACTION = 0.2
S2N_COLUMN = "s2n"


def check_groups(group1: Sequence[int], group2: Sequence[int], n_samples: int):
    """Raise InvalidParameterError unless the groups are non-empty, disjoint and in range."""
    if len(group1) == 0 or len(group2) == 0:
        raise InvalidParameterError("groups", (list(group1), list(group2)), "two non-empty index groups")
    overlap = set(group1) & set(group2)
    if overlap:
        raise InvalidParameterError("groups", sorted(overlap), "disjoint index groups")
    for idx in list(group1) + list(group2):
        if not 0 <= idx < n_samples:
            raise InvalidParameterError("sample index", idx, f"0 <= index < {n_samples}")


def _capped_stats(values: np.ndarray):
    """Row-wise mean (zero -> 1) and capped sample standard deviation."""
    mean = values.mean(axis=1)
    mean = np.where(mean == 0, 1.0, mean)
    if values.shape[1] > 1:
        sd = values.std(axis=1, ddof=1)
    else:
        sd = np.full(values.shape[0], np.nan)
    return mean, np.minimum(sd, SD_CAP_FRACTION * np.abs(mean))


def signal_to_noise_matrix(
    values: np.ndarray,
    group1: Sequence[int],
    group2: Sequence[int],
) -> np.ndarray:
    """S2N for every row of a regions x samples matrix."""
    values = np.atleast_2d(np.asarray(values, dtype=float))
    check_groups(group1, group2, values.shape[1])

    mean1, sd1 = _capped_stats(values[:, list(group1)])
    mean2, sd2 = _capped_stats(values[:, list(group2)])
    denom = sd1 + sd2

    with np.errstate(divide="ignore", invalid="ignore"):
        s2n = (mean1 - mean2) / denom
    return np.where(denom == 0, np.nan, s2n)


def signal_to_noise(
    values: Sequence[float],
    group1: Sequence[int],
    group2: Sequence[int],
) -> float:
    """S2N for a single region's per-sample values."""
    return float(signal_to_noise_matrix(np.asarray(values, dtype=float)[np.newaxis, :], group1, group2)[0])


def summarize_signal_to_noise(
    normalized_counts: pd.DataFrame,
    group1: Sequence[int],
    group2: Sequence[int],
) -> pd.Series:
    """S2N per region from a normalized count table.

    Args:
        normalized_counts: Regions x samples, indexed by region id
        group1: Positional sample indices of the first group
        group2: Positional sample indices of the second group

    Returns:
        Series named ``s2n`` indexed like ``normalized_counts``
    """
    validate_dataframe(normalized_counts, "normalized counts")
    scores = signal_to_noise_matrix(normalized_counts.values, group1, group2)
    result = pd.Series(scores, index=normalized_counts.index, name=S2N_COLUMN)

    n_undefined = int(result.isna().sum())
    if n_undefined:
        logger.warning(f"Signal-to-noise undefined (NaN) for {n_undefined} of {len(result)} regions")
    return result
