# src/ames_prep/imputation.py
"""
Missing-value imputation.

Rules run in dependency order:

1. drop columns whose fit-set missing rate exceeds ``max_missing_rate``;
2. feature-group sentinel propagation (no garage -> every garage column is
   "None"/0), with a missing presence column read as "absent";
3. constant fills declared in configuration;
4. categorical mode, ties broken by the smallest value in ascending order
   (string order when values are not mutually comparable);
5. numeric median, optionally within a grouping column.

At most one continuous column is left missing here on purpose: it is
imputed from the engineered features by :class:`~ames_prep.neighbors.NeighborImputer`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from pandas.api.types import is_numeric_dtype

from .base import PipelineStep
from .config import FeatureGroup, PipelineConfig
from .schema import Schema, plain_value

logger = logging.getLogger(__name__)

# used when a categorical column has no observed value at all
FALLBACK_CATEGORY = "None"


class ImputationStrategy(str, Enum):
    CONSTANT = "constant"
    MODE = "mode"
    GROUP_MEDIAN = "group_median"
    MEDIAN = "median"


@dataclass(frozen=True)
class ImputationRule:
    column: str
    strategy: ImputationStrategy
    value: Any = None
    group_by: Optional[str] = None
    group_values: Dict[Any, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ImputationState:
    dropped: Dict[str, float]  # column -> fit-set missing rate
    groups: Tuple[FeatureGroup, ...]
    rules: Tuple[ImputationRule, ...]
    deferred: Optional[str] = None

    def rule_for(self, column: str) -> Optional[ImputationRule]:
        for rule in self.rules:
            if rule.column == column:
                return rule
        return None


def canonical_mode(s: pd.Series):
    """Most frequent value; ties go to the first value in ascending order."""
    counts = s.dropna().value_counts()
    if counts.empty:
        return None
    tied = [plain_value(v) for v in counts.index[counts == counts.max()]]
    try:
        return sorted(tied)[0]
    except TypeError:
        return sorted(tied, key=str)[0]


def _set(X: pd.DataFrame, col: str, mask, value) -> None:
    if isinstance(value, str) and is_numeric_dtype(X[col]):
        X[col] = X[col].astype(object)
    X.loc[mask, col] = value


def apply_groups(X: pd.DataFrame, groups: Tuple[FeatureGroup, ...]) -> pd.DataFrame:
    for g in groups:
        presence = X[g.presence]
        # a missing presence value is read as "absent"
        absent = presence.isna() | (presence == g.sentinel)
        _set(X, g.presence, presence.isna(), g.sentinel)
        for col in g.categorical:
            _set(X, col, absent, g.sentinel)
        for col in g.numeric:
            _set(X, col, absent, g.numeric_fill)
    return X


def apply_rules(X: pd.DataFrame, rules) -> pd.DataFrame:
    for rule in rules:
        col = rule.column
        missing = X[col].isna()
        if not missing.any():
            continue
        if rule.strategy is ImputationStrategy.GROUP_MEDIAN:
            fill = X.loc[missing, rule.group_by].map(rule.group_values)
            fill = fill.astype(float).fillna(rule.value)
            X.loc[missing, col] = fill
        else:
            _set(X, col, missing, rule.value)
    return X


class MissingValueImputer(PipelineStep):
    """Learns per-column imputation rules from the fit set."""

    tag = "Imputer"

    def __init__(self, schema: Schema, config: PipelineConfig):
        self.schema = schema
        self.config = config

    def _fit(self, X: pd.DataFrame, y=None) -> ImputationState:
        cfg = self.config
        features = [c for c in self.schema.feature_names if c in X.columns]

        rates = X[features].isna().mean()
        dropped = {c: float(r) for c, r in rates.items() if r > cfg.max_missing_rate}
        for col, rate in dropped.items():
            logger.info(
                "[Imputer] Dropping '%s': %.1f%% missing > %.1f%% threshold",
                col, 100 * rate, 100 * cfg.max_missing_rate,
            )
        kept = [c for c in features if c not in dropped]
        kept_set = set(kept)
        work = X[kept].copy()

        groups: List[FeatureGroup] = []
        for g in cfg.feature_groups:
            if g.presence not in kept_set:
                logger.warning("[Imputer] Group '%s' skipped: presence column '%s' unavailable",
                               g.name, g.presence)
                continue
            groups.append(replace(
                g,
                categorical=tuple(c for c in g.categorical if c in kept_set),
                numeric=tuple(c for c in g.numeric if c in kept_set),
            ))
        groups = tuple(groups)
        work = apply_groups(work, groups)

        rules: List[ImputationRule] = []
        constants = [ImputationRule(c, ImputationStrategy.CONSTANT, value=v)
                     for c, v in cfg.constant_fills.items() if c in kept_set]
        work = apply_rules(work, constants)
        rules.extend(constants)
        handled = {r.column for r in constants}

        deferred = cfg.neighbor_column if cfg.neighbor_column in kept_set else None
        if cfg.neighbor_column and deferred is None:
            logger.warning("[Imputer] Neighbour-imputed column '%s' was dropped", cfg.neighbor_column)

        numeric_cols: List[str] = []
        modes: List[ImputationRule] = []
        for col in kept:
            if col in handled or col == deferred:
                continue
            if self.schema[col].kind.is_categorical:
                value = canonical_mode(work[col])
                if value is None:
                    logger.warning("[Imputer] '%s' has no observed value; filling with '%s'",
                                   col, FALLBACK_CATEGORY)
                    value = FALLBACK_CATEGORY
                modes.append(ImputationRule(col, ImputationStrategy.MODE, value=value))
            else:
                numeric_cols.append(col)
        work = apply_rules(work, modes)
        rules.extend(modes)

        for col in numeric_cols:
            median = work[col].median()
            median = 0.0 if pd.isna(median) else float(median)
            key = cfg.group_medians.get(col)
            if key is not None and key in kept_set:
                per_group = work.groupby(key)[col].median().dropna()
                rules.append(ImputationRule(
                    col, ImputationStrategy.GROUP_MEDIAN, value=median, group_by=key,
                    group_values={plain_value(k): float(v) for k, v in per_group.items()},
                ))
            else:
                if key is not None:
                    logger.warning("[Imputer] Grouping column '%s' for '%s' unavailable; using global median",
                                   key, col)
                rules.append(ImputationRule(col, ImputationStrategy.MEDIAN, value=median))

        logger.info("[Imputer] Fitted %d rules (%d dropped, %d groups, deferred=%s)",
                    len(rules), len(dropped), len(groups), deferred)
        return ImputationState(dropped=dropped, groups=groups, rules=tuple(rules), deferred=deferred)

    def _transform(self, X: pd.DataFrame, state: ImputationState) -> pd.DataFrame:
        X = X.drop(columns=[c for c in state.dropped if c in X.columns])
        X = apply_groups(X, state.groups)
        return apply_rules(X, state.rules)
