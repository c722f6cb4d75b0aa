import math
from typing import Callable, List, Optional, Tuple

import pandas as pd

"""
Grouped reductions over classified validation tables. A specimen (process ID) is typically
attempted several times, once per MGE parameter combination. Specimen-level success is the
'any valid' outcome: a specimen succeeded if at least one of its attempts passed validation.

All functions here are generic: which records to include and how to group them is decided by
the caller, e.g. the report orchestrator excludes negative controls, groups by institution,
taxonomic order or age bin, and drops groups with too few specimens.
"""

# z value of the two-sided 95% normal interval
Z_95 = 1.96

SUMMARY_COLUMNS = [
    'total_specimens',
    'specimens_with_valid',
    'success_rate',
    'avg_attempts',
    'ci_lower',
    'ci_upper',
]

Predicate = Callable[[pd.DataFrame], pd.Series]


def specimen_outcomes(df: pd.DataFrame, keys: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Collapse validation attempts to one row per specimen.

    :param df: Classified validation table with process_id and is_valid columns
    :param keys: Additional grouping columns, e.g. ['institution']
    :return: DataFrame with the keys, process_id, attempts and any_valid
    """
    keys = list(keys or [])
    grouped = df.groupby(keys + ['process_id'], dropna=True, sort=True, observed=True)
    outcomes = grouped.agg(
        attempts=('is_valid', 'size'),
        any_valid=('is_valid', lambda valid: bool(valid.fillna(False).astype(bool).any())),
    )
    return outcomes.reset_index()


def wald_interval(p: float, n: int) -> Tuple[float, float]:
    """
    Normal approximation confidence interval for a percentage.

    >>> lower, upper = wald_interval(50.0, 100)
    >>> round(lower, 1), round(upper, 1)
    (40.2, 59.8)

    :param p: The rate, in percent
    :param n: The number of observations it is based on
    :return: Lower and upper bound, clipped to [0, 100]; NaN for n == 0
    """
    if n <= 0 or p is None or math.isnan(p):
        return float('nan'), float('nan')
    se = math.sqrt(p * (100 - p) / n)
    return max(0.0, p - Z_95 * se), min(100.0, p + Z_95 * se)


def summarise_success(df: pd.DataFrame, keys: Optional[List[str]] = None, where: Optional[Predicate] = None,
                      min_specimens: Optional[int] = None) -> pd.DataFrame:
    """
    Compute specimen-level success statistics per group.

    :param df: Classified validation table
    :param keys: Grouping columns; an empty list summarises the whole table as one group
    :param where: Optional row predicate, applied before grouping
    :param min_specimens: Optional minimum number of specimens for a group to be reported
    :return: DataFrame with the keys and SUMMARY_COLUMNS
    """
    keys = list(keys or [])
    if where is not None:
        df = df[where(df)]
    outcomes = specimen_outcomes(df, keys)

    if keys:
        groups = outcomes.groupby(keys, dropna=True, sort=True, observed=True)
        rows = [_summary_row(dict(zip(keys, _as_tuple(name))), group) for name, group in groups]
    else:
        rows = [_summary_row({}, outcomes)]
    summary = pd.DataFrame(rows, columns=keys + SUMMARY_COLUMNS)

    if min_specimens is not None:
        summary = summary[summary['total_specimens'] >= min_specimens].reset_index(drop=True)
    return summary


def bin_ages(ages: pd.Series, width: int = 20, upper: int = 200) -> pd.Series:
    """
    Assign specimen ages to fixed-width bins covering [0, upper]. Bins are closed on the right,
    the lowest bin also includes 0. Ages outside the range and missing ages get no bin.

    :param ages: Ages in years
    :param width: Bin width in years
    :param upper: Upper edge of the last bin
    :return: Categorical Series with labels like '0-20', '20-40', ...
    """
    edges = list(range(0, upper + 1, width))
    if edges[-1] != upper:
        edges.append(upper)
    labels = [f"{low}-{high}" for low, high in zip(edges[:-1], edges[1:])]
    return pd.cut(ages, bins=edges, labels=labels, right=True, include_lowest=True)


def optimal_parameters(breakdown: pd.DataFrame, by: str = 'institution') -> pd.DataFrame:
    """
    Select, per institution, the parameter combination(s) with the highest valid rate.
    Ties are all kept.

    :param breakdown: Output of ValidityClassifier.parameter_breakdown
    :param by: Column to select the optimum within
    :return: DataFrame with the winning rows, ordered by institution
    """
    best = breakdown.groupby(by)['valid_rate'].transform('max')
    optimal = breakdown[breakdown['valid_rate'] == best]
    return optimal.sort_values(by, kind='stable').reset_index(drop=True)


def _summary_row(keys: dict, outcomes: pd.DataFrame) -> dict:
    total = len(outcomes)
    valid = int(outcomes['any_valid'].sum())
    rate = valid / total * 100 if total else float('nan')
    lower, upper = wald_interval(rate, total)
    row = dict(keys)
    row.update({
        'total_specimens': total,
        'specimens_with_valid': valid,
        'success_rate': rate,
        'avg_attempts': outcomes['attempts'].mean() if total else float('nan'),
        'ci_lower': lower,
        'ci_upper': upper,
    })
    return row


def _as_tuple(name) -> tuple:
    return name if isinstance(name, tuple) else (name,)
