# src/ames_prep/transformers.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from .base import PipelineStep
from .config import NORMALIZER_CANDIDATES
from .exceptions import MissingColumnError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Outlier clipping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClipBounds:
    bounds: Dict[str, Tuple[float, float]]
    quartiles: Dict[str, Tuple[float, float]]


class OutlierClipper(PipelineStep):
    """Winsorize continuous columns to [Q1 - m*IQR, Q3 + m*IQR] learned on train.

    Rows are never dropped. A column with IQR 0 gets both bounds equal to its
    constant quartile.
    """

    tag = "Clipper"

    def __init__(self, columns: Sequence[str] = (), multiplier: float = 1.5):
        self.columns = columns
        self.multiplier = multiplier

    def _fit(self, X: pd.DataFrame, y=None) -> ClipBounds:
        bounds, quartiles = {}, {}
        for col in self.columns:
            if col not in X.columns:
                continue
            q1 = float(X[col].quantile(0.25))
            q3 = float(X[col].quantile(0.75))
            if np.isnan(q1) or np.isnan(q3):
                bounds[col] = (-np.inf, np.inf)
                quartiles[col] = (q1, q3)
                continue
            iqr = q3 - q1
            if iqr == 0:
                logger.info("[Clipper] '%s' has IQR 0; values are capped to %.6g", col, q1)
            bounds[col] = (q1 - self.multiplier * iqr, q3 + self.multiplier * iqr)
            quartiles[col] = (q1, q3)
        n_out = sum(
            int(((X[c] < lo) | (X[c] > hi)).sum()) for c, (lo, hi) in bounds.items()
        )
        logger.info("[Clipper] Bounds for %d columns; %d fit-set values outside them",
                    len(bounds), n_out)
        return ClipBounds(bounds=bounds, quartiles=quartiles)

    def _transform(self, X: pd.DataFrame, state: ClipBounds) -> pd.DataFrame:
        for col, (lo, hi) in state.bounds.items():
            X[col] = X[col].astype(float).clip(lower=lo, upper=hi)
        return X


# ---------------------------------------------------------------------------
# Skew reduction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransformParams:
    family: str
    lmbda: Optional[float] = None  # yeo-johnson only
    floor: Optional[float] = None  # fit-set minimum, keeps log1p/sqrt defined at apply time

    def apply(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if self.family == "identity":
            return x
        if self.family == "yeo-johnson":
            return stats.yeojohnson(x, lmbda=self.lmbda)
        if self.family == "log1p":
            return np.log1p(np.maximum(x, self.floor))
        if self.family == "sqrt":
            return np.sqrt(np.maximum(x, self.floor))
        raise ValueError(f"Unknown transform family '{self.family}'")


@dataclass(frozen=True)
class NormalizerState:
    params: Dict[str, TransformParams]
    skewness: Dict[str, Dict[str, float]]
    output_names: Dict[str, str]


class DistributionNormalizer(PipelineStep):
    """
    Select per-column transform from the candidates by minimum |skewness| on
    the fit set.

    - 'log1p' is only a candidate when the column minimum is > -1, 'sqrt' when
      it is >= 0.
    - Ties keep the earlier candidate; a constant column keeps 'identity'.
    - If the chosen transform is 'identity', the column keeps its ORIGINAL
      name, otherwise it gets a ``_<family>`` suffix.
    """

    tag = "Normalizer"

    def __init__(self, columns: Sequence[str] = (), candidates: Sequence[str] = NORMALIZER_CANDIDATES):
        self.columns = columns
        self.candidates = candidates

    @staticmethod
    def _valid(name: str, col: np.ndarray) -> bool:
        m = np.min(col)
        if name == "sqrt":
            return m >= 0
        if name == "log1p":
            return m > -1
        return True

    @staticmethod
    def _fit_once(name: str, col: np.ndarray) -> TransformParams:
        if name == "yeo-johnson":
            _, lmbda = stats.yeojohnson(col)
            return TransformParams(name, lmbda=float(lmbda))
        if name in ("log1p", "sqrt"):
            return TransformParams(name, floor=float(np.min(col)))
        return TransformParams(name)

    def _fit(self, X: pd.DataFrame, y=None) -> NormalizerState:
        params, skewness, names = {}, {}, {}
        for col_name in self.columns:
            if col_name not in X.columns:
                continue
            col = X[col_name].to_numpy(dtype=float)
            scores: Dict[str, float] = {}
            chosen = TransformParams("identity")
            if np.std(col) > 0:
                best = np.inf
                for name in self.candidates:
                    if not self._valid(name, col):
                        continue
                    candidate = self._fit_once(name, col)
                    with np.errstate(all="ignore"):
                        skew = abs(float(stats.skew(candidate.apply(col))))
                    if not np.isfinite(skew):
                        continue
                    scores[name] = skew
                    if skew < best:
                        best, chosen = skew, candidate
            params[col_name] = chosen
            skewness[col_name] = scores
            names[col_name] = col_name if chosen.family == "identity" else \
                f"{col_name}_{chosen.family.replace('-', '_')}"
            logger.info("[Normalizer] '%s' -> %s (|skew| %s)", col_name, chosen.family,
                        ", ".join(f"{k}={v:.3f}" for k, v in scores.items()) or "n/a")
        return NormalizerState(params=params, skewness=skewness, output_names=names)

    def _transform(self, X: pd.DataFrame, state: NormalizerState) -> pd.DataFrame:
        for col, p in state.params.items():
            X[col] = p.apply(X[col].to_numpy(dtype=float))
        return X.rename(columns=state.output_names)


# ---------------------------------------------------------------------------
# Feature filtering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilterState:
    kept: Tuple[str, ...]
    dropped: Dict[str, str]  # column -> reason


class FeatureFilter(PipelineStep):
    """Drops near-zero-variance columns, then one column of each highly
    correlated pair.

    Columns are visited in input order; a column is dropped when its absolute
    Pearson correlation with an already kept column exceeds the threshold, so
    the first column of a correlated pair always survives.
    """

    tag = "Filter"

    def __init__(self, variance_threshold: float = 1e-8, max_dominant_share: float = 0.995,
                 correlation_threshold: float = 0.9):
        self.variance_threshold = variance_threshold
        self.max_dominant_share = max_dominant_share
        self.correlation_threshold = correlation_threshold

    def _near_zero_variance(self, X: pd.DataFrame) -> Dict[str, str]:
        dropped = {}
        for col in X.columns:
            s = X[col]
            var = float(s.var(ddof=0))
            share = float(s.value_counts(normalize=True).iloc[0]) if len(s) else 1.0
            if var <= self.variance_threshold:
                dropped[col] = f"near-zero variance ({var:.3g} <= {self.variance_threshold:.3g})"
            elif share >= self.max_dominant_share:
                dropped[col] = f"near-zero variance (one value covers {share:.1%} of rows)"
        return dropped

    def _fit(self, X: pd.DataFrame, y=None) -> FilterState:
        dropped = self._near_zero_variance(X)
        remaining = [c for c in X.columns if c not in dropped]

        corr = X[remaining].corr().abs().fillna(0.0)
        kept = []
        for col in remaining:
            partner = next((k for k in kept if corr.loc[col, k] > self.correlation_threshold), None)
            if partner is None:
                kept.append(col)
            else:
                dropped[col] = f"correlation {corr.loc[col, partner]:.3f} with '{partner}'"

        for col, reason in dropped.items():
            logger.info("[Filter] Dropping '%s': %s", col, reason)
        logger.info("[Filter] Kept %d of %d columns", len(kept), X.shape[1])
        return FilterState(kept=tuple(kept), dropped=dropped)

    def _transform(self, X: pd.DataFrame, state: FilterState) -> pd.DataFrame:
        absent = [c for c in state.kept if c not in X.columns]
        if absent:
            raise MissingColumnError(absent)
        return X[list(state.kept)]
