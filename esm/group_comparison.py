# -*- coding: utf-8 -*-
"""
Group Comparison Module

Descriptives per clinical group and a group-difference test. Whether the
test is parametric or rank-based is decided from the data: a skewed pooled
distribution or a non-normal group selects the rank-based test.
"""

import logging
import math
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

import config

logger = logging.getLogger(__name__)


def describe_by_group(data: pd.DataFrame, value_col: str, group_col: str) -> pd.DataFrame:
    """
    Mean, SD, median and range of a metric per group.

    Args:
        data (pd.DataFrame): One row per participant
        value_col (str): Metric column
        group_col (str): Group label column

    Returns:
        pd.DataFrame: Columns group, n, mean, sd, median, min, max
    """
    valid = data.dropna(subset=[value_col, group_col])
    described = valid.groupby(group_col)[value_col].agg(
        n='count', mean='mean', sd='std', median='median', min='min', max='max'
    ).reset_index()
    return described.rename(columns={group_col: 'group'})


def assess_distribution(groups: Dict[str, np.ndarray],
                        skew_threshold: Optional[float] = None,
                        alpha: Optional[float] = None) -> Dict[str, Any]:
    """
    Skewness and normality checks used to choose the test.

    Args:
        groups: Group label -> values (NaN already removed)
        skew_threshold: |skewness| above which the data counts as skewed.
            Defaults to config.SKEW_THRESHOLD
        alpha: Shapiro-Wilk significance level. Defaults to
            config.NORMALITY_ALPHA

    Returns:
        Dictionary with pooled_skewness, group_skewness, shapiro_p,
        is_skewed, is_normal and use_rank_test
    """
    skew_threshold = config.SKEW_THRESHOLD if skew_threshold is None else skew_threshold
    alpha = config.NORMALITY_ALPHA if alpha is None else alpha

    pooled = np.concatenate([g for g in groups.values()]) if groups else np.array([])
    pooled_skew = float(stats.skew(pooled, bias=False)) if pooled.size >= 3 else float('nan')

    group_skew = {}
    shapiro_p = {}
    is_normal = True
    for label, values in groups.items():
        group_skew[label] = float(stats.skew(values, bias=False)) if values.size >= 3 else float('nan')
        if 3 <= values.size <= 5000 and np.ptp(values) > 0:
            _, p = stats.shapiro(values)
            shapiro_p[label] = float(p)
            if p < alpha:
                is_normal = False
        else:
            shapiro_p[label] = float('nan')
            is_normal = False

    is_skewed = bool(not math.isnan(pooled_skew) and abs(pooled_skew) > skew_threshold)

    return {
        'pooled_skewness': pooled_skew,
        'group_skewness': group_skew,
        'shapiro_p': shapiro_p,
        'is_skewed': is_skewed,
        'is_normal': is_normal,
        'use_rank_test': is_skewed or not is_normal,
    }


def _eta_squared(groups: List[np.ndarray]) -> float:
    pooled = np.concatenate(groups)
    grand_mean = pooled.mean()
    ss_between = sum(g.size * (g.mean() - grand_mean) ** 2 for g in groups)
    ss_total = float(((pooled - grand_mean) ** 2).sum())
    return float(ss_between / ss_total) if ss_total > 0 else float('nan')


def _cohens_d(a: np.ndarray, b: np.ndarray) -> float:
    sa = float(np.var(a, ddof=1))
    sb = float(np.var(b, ddof=1))
    sp = math.sqrt(((a.size - 1) * sa + (b.size - 1) * sb) / max(1.0, a.size + b.size - 2))
    return float((np.mean(b) - np.mean(a)) / sp) if sp > 1e-12 else float('nan')


def compare_groups(data: pd.DataFrame, value_col: str, group_col: str,
                   skew_threshold: Optional[float] = None,
                   alpha: Optional[float] = None) -> Dict[str, Any]:
    """
    Test for a difference in a metric between groups.

    With more than two groups: one-way ANOVA, or Kruskal-Wallis when the data
    are skewed or non-normal. With two groups: Welch t-test, or Mann-Whitney U.

    Args:
        data (pd.DataFrame): One row per participant
        value_col (str): Metric column
        group_col (str): Group label column
        skew_threshold (float, optional): See assess_distribution()
        alpha (float, optional): See assess_distribution()

    Returns:
        Dictionary with test, statistic, p_value, effect_size, n_groups,
        n_total, distribution (from assess_distribution), descriptives
        (DataFrame) and notes

    Example:
        >>> result = compare_groups(completion, 'completion_pct', 'group')
        >>> result['test']
        'Kruskal-Wallis'
    """
    out: Dict[str, Any] = {
        'metric': value_col,
        'test': None,
        'statistic': float('nan'),
        'p_value': float('nan'),
        'effect_size': {},
        'n_groups': 0,
        'n_total': 0,
        'distribution': {},
        'descriptives': describe_by_group(data, value_col, group_col),
        'notes': [],
    }

    valid = data.dropna(subset=[value_col, group_col])
    groups = {
        str(label): group[value_col].to_numpy(dtype=float)
        for label, group in valid.groupby(group_col)
    }
    out['n_groups'] = len(groups)
    out['n_total'] = int(sum(g.size for g in groups.values()))

    if len(groups) < 2 or min(g.size for g in groups.values()) < 2:
        out['notes'].append("Not enough groups or observations per group.")
        logger.warning(f"{value_col}: group comparison skipped (not enough data)")
        return out

    distribution = assess_distribution(groups, skew_threshold, alpha)
    out['distribution'] = distribution
    samples = list(groups.values())

    if len(samples) > 2:
        if distribution['use_rank_test']:
            stat, p = stats.kruskal(*samples)
            k, n = len(samples), out['n_total']
            out['test'] = 'Kruskal-Wallis'
            out['effect_size'] = {
                'epsilon_squared': float((stat - k + 1) / (n - k)) if n > k else float('nan')
            }
        else:
            stat, p = stats.f_oneway(*samples)
            out['test'] = 'ANOVA'
            out['effect_size'] = {'eta_squared': _eta_squared(samples)}
    else:
        a, b = samples
        if distribution['use_rank_test']:
            stat, p = stats.mannwhitneyu(a, b, alternative='two-sided')
            out['test'] = 'Mann-Whitney U'
            out['effect_size'] = {'rank_biserial': float(1.0 - 2.0 * stat / (a.size * b.size))}
        else:
            stat, p = stats.ttest_ind(a, b, equal_var=False)
            out['test'] = 'Welch t'
            out['effect_size'] = {'cohens_d': _cohens_d(a, b)}

    out['statistic'] = float(stat)
    out['p_value'] = float(p)
    reason = (
        f"|skewness| = {abs(distribution['pooled_skewness']):.2f}, "
        f"normal = {distribution['is_normal']}"
    )
    out['notes'].append(f"{out['test']} selected ({reason}).")

    logger.info(
        f"{value_col} by {group_col}: {out['test']} statistic = {out['statistic']:.3f}, "
        f"p = {out['p_value']:.4f} ({reason})"
    )
    return out


def format_group_result(result: Dict[str, Any]) -> str:
    """
    One-line summary of compare_groups() output.

    Example:
        >>> format_group_result(result)
        'completion_pct: Kruskal-Wallis = 7.41, p = .060 (4 groups, n = 109)'
    """
    if result.get('test') is None:
        return f"{result.get('metric')}: not tested ({'; '.join(result.get('notes', []))})"

    p_value = result['p_value']
    if p_value < 0.001:
        p_str = "p < .001"
    else:
        p_str = f"p = {p_value:.3f}".replace("0.", ".")

    return (
        f"{result['metric']}: {result['test']} = {result['statistic']:.2f}, {p_str} "
        f"({result['n_groups']} groups, n = {result['n_total']})"
    )
