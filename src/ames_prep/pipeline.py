# src/ames_prep/pipeline.py
"""
Pipeline orchestrator.

raw rows -> classify -> impute -> engineer -> encode -> neighbour impute ->
clip -> normalise -> filter -> numeric matrix

:class:`HousePricePipeline` owns the fit lifecycle
(``UNFIT -> FITTING -> FIT <-> TRANSFORMING``); a successful ``fit`` returns
a :class:`FittedPipeline`, the immutable, joblib-serialisable artifact that
holds the schema and every stage's frozen state. Output columns are the
filter's kept columns, in encoder order (schema order, categorical columns
expanded in place), with a stable order for every row set.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import joblib
import numpy as np
import pandas as pd

from .base import FitScope, PipelineStep
from .config import PipelineConfig
from .encoding import CategoricalEncoder
from .exceptions import (
    InvalidTargetError,
    MissingColumnError,
    NotFittedError,
    PipelineError,
    PipelineStateError,
)
from .features import FeatureEngineer
from .imputation import MissingValueImputer
from .neighbors import NeighborImputer
from .schema import ColumnKind, Schema, classify_columns
from .transformers import DistributionNormalizer, FeatureFilter, OutlierClipper

logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    UNFIT = "unfit"
    FITTING = "fitting"
    FIT = "fit"
    TRANSFORMING = "transforming"


# ---------------------------------------------------------------------------
# Target transform (fixed log so predictions invert exactly)
# ---------------------------------------------------------------------------


def log_target(y: pd.Series) -> pd.Series:
    y = pd.to_numeric(y, errors="coerce").astype(float)
    bad = y.isna() | ~(y > 0)
    if bad.any():
        raise InvalidTargetError(
            f"Target '{y.name}' must be present and > 0 for the log transform; "
            f"{int(bad.sum())} invalid value(s)"
        )
    return np.log(y)


def exp_target(values) -> np.ndarray:
    return np.exp(np.asarray(values, dtype=float))


# ---------------------------------------------------------------------------
# Fitted artifact
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FittedPipeline:
    raw_schema: Schema  # every raw column, as classified on the fit set
    schema: Schema  # feature columns after structural drops and engineering
    steps: Tuple[Tuple[str, PipelineStep], ...]
    feature_names: Tuple[str, ...]
    target: Optional[str]
    config: PipelineConfig
    n_fit_rows: int

    def step(self, name: str) -> PipelineStep:
        for step_name, step in self.steps:
            if step_name == name:
                return step
        raise KeyError(name)

    def transform(self, rows: pd.DataFrame) -> pd.DataFrame:
        optional = [self.target] if self.target else []
        self.raw_schema.validate(rows, allow_missing=optional)

        # stages run on positions; the caller's index (duplicates allowed) is restored below
        X = rows[[c for c in self.raw_schema.feature_names]].reset_index(drop=True)
        for _, step in self.steps:
            X = step.transform(X)
        X.index = rows.index

        if list(X.columns) != list(self.feature_names):
            raise PipelineError("Output columns differ from the fitted feature order")
        X = X.astype(float)
        values = X.to_numpy()
        if not np.isfinite(values).all():
            bad = X.columns[~np.isfinite(values).all(axis=0)].tolist()
            raise PipelineError(f"Non-finite values in output columns: {bad}")
        return X

    def transform_target(self, y: pd.Series) -> pd.Series:
        return log_target(y)

    def inverse_transform_target(self, values) -> np.ndarray:
        return exp_target(values)

    def describe(self) -> Dict[str, Any]:
        """JSON-friendly summary of the frozen decisions."""
        imputer = self.step("impute").state_
        engineer = self.step("engineer").state_
        clipper = self.step("clip").state_
        normalizer = self.step("normalize").state_
        filt = self.step("filter").state_

        dropped: Dict[str, str] = {}
        for col, rate in imputer.dropped.items():
            dropped[col] = f"missing rate {rate:.1%} > {self.config.max_missing_rate:.1%}"
        for col in engineer.dropped:
            dropped[col] = "replaced by engineered features"
        dropped.update(filt.dropped)

        return {
            "target": self.target,
            "target_transform": "log",
            "n_fit_rows": self.n_fit_rows,
            "n_features": len(self.feature_names),
            "feature_names": list(self.feature_names),
            "schema": self.raw_schema.to_dict(),
            "dropped": dropped,
            "deferred_imputation": imputer.deferred,
            "clip_bounds": {c: [float(lo), float(hi)] for c, (lo, hi) in clipper.bounds.items()},
            "transforms": {c: p.family for c, p in normalizer.params.items()},
        }

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(self, path)
        logger.info("[Pipeline] Saved fitted pipeline to %s", path)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "FittedPipeline":
        obj = joblib.load(path)
        if not isinstance(obj, cls):
            raise TypeError(f"{path} does not contain a {cls.__name__} (got {type(obj).__name__})")
        logger.info("[Pipeline] Loaded fitted pipeline from %s", path)
        return obj


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class HousePricePipeline:
    """Fit/transform lifecycle around one FittedPipeline.

    ``fit`` may only run from UNFIT; call :meth:`reset` to fit again. Any
    number of ``transform`` calls may follow and none of them touch the fit
    state.
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config if config is not None else PipelineConfig()
        self.status = PipelineStatus.UNFIT
        self.fitted_: Optional[FittedPipeline] = None
        self._active = 0

    @classmethod
    def from_fitted(cls, fitted: FittedPipeline) -> "HousePricePipeline":
        pipe = cls(fitted.config)
        pipe.fitted_ = fitted
        pipe.status = PipelineStatus.FIT
        return pipe

    def reset(self) -> "HousePricePipeline":
        if self._active:
            raise PipelineStateError("Cannot reset while a transform is running")
        logger.info("[Pipeline] Reset to UNFIT; previous fit state discarded")
        self.fitted_ = None
        self.status = PipelineStatus.UNFIT
        return self

    # ---- fit ----
    def fit(self, rows: pd.DataFrame, target_column: Optional[str] = None) -> FittedPipeline:
        if self.status is not PipelineStatus.UNFIT:
            raise PipelineStateError(
                f"Pipeline is {self.status.value}; call reset() before fitting again"
            )
        self.status = PipelineStatus.FITTING
        try:
            fitted = self._fit(rows, target_column or self.config.target)
        except Exception:
            self.status = PipelineStatus.UNFIT
            raise
        self.fitted_ = fitted
        self.status = PipelineStatus.FIT
        return fitted

    def _fit(self, rows: pd.DataFrame, target: str) -> FittedPipeline:
        cfg = self.config if target == self.config.target else replace(self.config, target=target)
        if target not in rows.columns:
            raise MissingColumnError([target])
        logger.info("[Pipeline] Fitting on %d rows x %d columns (target '%s')",
                    rows.shape[0], rows.shape[1], target)

        # positional index: a repeated caller index (concatenated training files) is valid input
        rows = rows.reset_index(drop=True)
        scope = FitScope(rows.index)
        y = log_target(rows[target])

        raw_schema = classify_columns(rows, cfg)
        schema = Schema(tuple(c for c in raw_schema if c.kind.is_feature))
        X = rows[schema.names].copy()

        imputer = MissingValueImputer(schema, cfg)
        X = imputer.fit_transform(X, scope=scope)
        schema = schema.without(imputer.state_.dropped)

        engineer = FeatureEngineer(cfg)
        X = engineer.fit_transform(X, scope=scope)
        schema = schema.without(engineer.state_.dropped).extend(engineer.state_.added)

        encoder = CategoricalEncoder(schema, cfg)
        X = encoder.fit_transform(X, y, scope=scope)

        neighbor = NeighborImputer(imputer.state_.deferred, cfg.n_neighbors)
        X = neighbor.fit_transform(X, scope=scope)

        continuous = [c for c in schema.of_kind(ColumnKind.CONTINUOUS) if c in X.columns]
        clipper = OutlierClipper(continuous, cfg.iqr_multiplier)
        X = clipper.fit_transform(X, scope=scope)

        normalizer = DistributionNormalizer(continuous, cfg.normalizer_candidates)
        X = normalizer.fit_transform(X, scope=scope)

        feature_filter = FeatureFilter(cfg.variance_threshold, cfg.max_dominant_share,
                                       cfg.correlation_threshold)
        X = feature_filter.fit_transform(X, scope=scope)

        steps = (
            ("impute", imputer),
            ("engineer", engineer),
            ("encode", encoder),
            ("neighbors", neighbor),
            ("clip", clipper),
            ("normalize", normalizer),
            ("filter", feature_filter),
        )
        logger.info("[Pipeline] Fit complete: %d output features", X.shape[1])
        return FittedPipeline(
            raw_schema=raw_schema,
            schema=schema,
            steps=steps,
            feature_names=tuple(X.columns),
            target=target,
            config=cfg,
            n_fit_rows=len(rows),
        )

    # ---- apply ----
    def _require_fitted(self) -> FittedPipeline:
        if self.fitted_ is None or self.status not in (PipelineStatus.FIT, PipelineStatus.TRANSFORMING):
            raise NotFittedError(f"Pipeline is {self.status.value}; call fit() first")
        return self.fitted_

    def transform(self, rows: pd.DataFrame) -> pd.DataFrame:
        fitted = self._require_fitted()
        self.status = PipelineStatus.TRANSFORMING
        self._active += 1
        try:
            return fitted.transform(rows)
        finally:
            self._active -= 1
            if self._active == 0:
                self.status = PipelineStatus.FIT

    def fit_transform(self, rows: pd.DataFrame, target_column: Optional[str] = None):
        """Fit, then apply the frozen state to the same rows; returns (X, y_log)."""
        fitted = self.fit(rows, target_column)
        return self.transform(rows), fitted.transform_target(rows[fitted.target])

    def transform_target(self, y: pd.Series) -> pd.Series:
        return self._require_fitted().transform_target(y)

    def inverse_transform_target(self, values) -> np.ndarray:
        return self._require_fitted().inverse_transform_target(values)


# ---------------------------------------------------------------------------
# functional API
# ---------------------------------------------------------------------------


def fit(rows: pd.DataFrame, target_column: Optional[str] = None,
        config: Optional[PipelineConfig] = None) -> FittedPipeline:
    return HousePricePipeline(config).fit(rows, target_column)


def transform(rows: pd.DataFrame, fitted: FittedPipeline) -> pd.DataFrame:
    if not isinstance(fitted, FittedPipeline):
        raise NotFittedError("transform() needs a FittedPipeline returned by fit()")
    return fitted.transform(rows)


def inverse_transform_target(values, fitted: FittedPipeline) -> np.ndarray:
    if not isinstance(fitted, FittedPipeline):
        raise NotFittedError("inverse_transform_target() needs a FittedPipeline returned by fit()")
    return fitted.inverse_transform_target(values)
