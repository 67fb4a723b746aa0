# src/ames_prep/neighbors.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import pandas as pd
from sklearn.neighbors import KNeighborsRegressor
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from .base import PipelineStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NeighborState:
    column: Optional[str]
    predictors: Tuple[str, ...] = ()
    model: Optional[Pipeline] = None
    fallback: float = 0.0


class NeighborImputer(PipelineStep):
    """Fills the one deferred continuous column from its nearest neighbours.

    Predictors are every other (already encoded, complete) column, scaled on
    the fit set. Rows where the column is present form the reference set.
    """

    tag = "NeighborImputer"

    def __init__(self, column: Optional[str] = None, n_neighbors: int = 5):
        self.column = column
        self.n_neighbors = n_neighbors

    def _fit(self, X: pd.DataFrame, y=None) -> NeighborState:
        col = self.column
        if col is None or col not in X.columns:
            return NeighborState(column=None)

        predictors = tuple(c for c in X.columns if c != col)
        known = X[col].notna()
        n_known = int(known.sum())
        median = X.loc[known, col].median()
        fallback = 0.0 if pd.isna(median) else float(median)
        if n_known == 0 or not predictors:
            logger.warning("[NeighborImputer] '%s': no reference rows/predictors; using %.3g",
                           col, fallback)
            return NeighborState(column=col, predictors=predictors, fallback=fallback)

        k = min(self.n_neighbors, n_known)
        model = Pipeline(steps=[
            ("scaler", StandardScaler()),
            ("knn", KNeighborsRegressor(n_neighbors=k)),
        ])
        model.fit(X.loc[known, list(predictors)].to_numpy(dtype=float),
                  X.loc[known, col].to_numpy(dtype=float))
        logger.info("[NeighborImputer] '%s': k=%d over %d reference rows, %d predictors",
                    col, k, n_known, len(predictors))
        return NeighborState(column=col, predictors=predictors, model=model, fallback=fallback)

    def _transform(self, X: pd.DataFrame, state: NeighborState) -> pd.DataFrame:
        col = state.column
        if col is None:
            return X
        missing = X[col].isna()
        if not missing.any():
            return X
        if state.model is None:
            X.loc[missing, col] = state.fallback
        else:
            features = X.loc[missing, list(state.predictors)].to_numpy(dtype=float)
            X.loc[missing, col] = state.model.predict(features)
        return X
