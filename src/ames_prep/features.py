# src/ames_prep/features.py
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Tuple

import pandas as pd

from .base import PipelineStep
from .config import AgeFeature, PipelineConfig
from .schema import ColumnKind, ColumnSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineeringState:
    ages: Tuple[AgeFeature, ...]
    sums: Dict[str, Dict[str, float]]
    dropped: Tuple[str, ...]

    @property
    def added(self) -> Tuple[ColumnSpec, ...]:
        names = [a.name for a in self.ages] + list(self.sums)
        return tuple(ColumnSpec(n, ColumnKind.CONTINUOUS, numeric=True) for n in names)


class FeatureEngineer(PipelineStep):
    """Date -> age conversions and weighted area/bathroom totals.

    Runs on imputed rows, so every source column is complete. Features whose
    sources were dropped upstream are skipped once, at fit time.
    """

    tag = "Engineer"

    def __init__(self, config: PipelineConfig):
        self.config = config

    def _fit(self, X: pd.DataFrame, y=None) -> EngineeringState:
        cols = set(X.columns)
        ages = []
        for age in self.config.age_features:
            if not {age.reference, age.column} <= cols:
                logger.warning("[Engineer] Skipping '%s': source column unavailable", age.name)
                continue
            if age.presence is not None and age.presence not in cols:
                logger.warning("[Engineer] '%s': presence column '%s' unavailable; ages computed for every row",
                               age.name, age.presence)
                age = replace(age, presence=None)
            ages.append(age)
        sums = {}
        for name, terms in self.config.sum_features.items():
            if set(terms) <= cols:
                sums[name] = dict(terms)
            else:
                logger.warning("[Engineer] Skipping '%s': missing %s", name, sorted(set(terms) - cols))
        dropped = tuple(c for c in self.config.drop_after_engineering if c in cols)
        logger.info("[Engineer] %d age features, %d totals, dropping %s",
                    len(ages), len(sums), list(dropped))
        return EngineeringState(ages=tuple(ages), sums=sums, dropped=dropped)

    def _add_ages(self, X: pd.DataFrame, state: EngineeringState) -> pd.DataFrame:
        for age in state.ages:
            values = (X[age.reference] - X[age.column]).clip(lower=0).astype(float)
            if age.presence is not None:
                values = values.mask(X[age.presence] == age.sentinel, 0.0)
            X[age.name] = values
        return X

    def _add_sums(self, X: pd.DataFrame, state: EngineeringState) -> pd.DataFrame:
        for name, terms in state.sums.items():
            total = pd.Series(0.0, index=X.index)
            for col, weight in terms.items():
                total = total + weight * X[col].astype(float)
            X[name] = total
        return X

    def _transform(self, X: pd.DataFrame, state: EngineeringState) -> pd.DataFrame:
        X = self._add_ages(X, state)
        X = self._add_sums(X, state)
        return X.drop(columns=[c for c in state.dropped if c in X.columns])
