# src/ames_prep/encoding.py
"""
Categorical encoding.

* ordinal: level -> 0-based rank from the declared level list; a level not
  in the list maps to ``UNKNOWN_LEVEL`` (-1) and raises an
  :class:`UnseenCategoryWarning`.
* nominal: categories with a fit-set share ``<= rare_category_share`` are
  collapsed into ``other``; one indicator per retained category (sorted)
  followed by ``<col>_other``. No reference level is dropped.
* high-cardinality: partial-pooling target encoding,
  ``w_c * mean_c + (1 - w_c) * global_mean`` with ``w_c = n_c / (n_c + k)``.
  With ``target_smoothing="auto"`` k is the empirical-Bayes ratio of the
  pooled within-category variance to the variance of the category means;
  when the category means do not vary every category encodes to the global
  mean.

Output order follows the input column order; each categorical column expands
in place.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .base import PipelineStep
from .config import PipelineConfig
from .exceptions import InvalidTargetError, MissingColumnError, SchemaError, UnknownColumnError, UnseenCategoryWarning
from .schema import ColumnKind, Schema, plain_value

logger = logging.getLogger(__name__)

UNKNOWN_LEVEL = -1.0
OTHER = "other"


@dataclass(frozen=True)
class NominalEncoding:
    retained: Tuple[Any, ...]
    seen: Tuple[Any, ...]
    columns: Tuple[str, ...]  # one per retained category, then the "other" bucket


@dataclass(frozen=True)
class TargetEncoding:
    values: Dict[Any, float]
    counts: Dict[Any, int]
    global_mean: float
    smoothing: float
    column: str


@dataclass(frozen=True)
class EncodingState:
    input_columns: Tuple[str, ...]
    passthrough: Tuple[str, ...]
    ordinal: Dict[str, Dict[Any, int]]
    nominal: Dict[str, NominalEncoding]
    target: Dict[str, TargetEncoding]
    feature_names: Tuple[str, ...]


def _sorted(values) -> List[Any]:
    try:
        return sorted(values)
    except TypeError:
        return sorted(values, key=str)


def shrinkage_weight(n: float, k: float) -> float:
    """Partial-pooling weight of a category with ``n`` observations."""
    if np.isinf(k):
        return 0.0
    if k == 0:
        return 1.0
    return n / (n + k)


def empirical_bayes_smoothing(y: pd.Series, groups: pd.Series) -> float:
    """k = within-category variance / between-category variance.

    Returns ``inf`` (full pooling) when the category means do not vary and
    ``0`` (no pooling) when there is no within-category spread.
    """
    means = y.groupby(groups).transform("mean")
    within = float(((y - means) ** 2).mean())
    between = float(y.groupby(groups).mean().var(ddof=0))
    if not between > 0:
        return float("inf")
    return within / between


def _warn_unseen(col: str, values) -> None:
    values = _sorted({plain_value(v) for v in values})
    msg = f"[Encoder] '{col}': {len(values)} value(s) unseen at fit time: {values[:10]}"
    logger.warning(msg)
    warnings.warn(msg, UnseenCategoryWarning, stacklevel=4)


class CategoricalEncoder(PipelineStep):
    tag = "Encoder"

    def __init__(self, schema: Schema, config: PipelineConfig):
        self.schema = schema
        self.config = config

    # ---- fit ----
    def _fit_ordinal(self, col: str, s: pd.Series) -> Dict[Any, int]:
        levels = self.schema[col].levels
        mapping = {plain_value(level): rank for rank, level in enumerate(levels)}
        unknown = {v for v in s.dropna().unique() if plain_value(v) not in mapping}
        if unknown:
            raise SchemaError(
                f"Ordinal column '{col}' has fit-set values outside its declared levels "
                f"{list(levels)}: {_sorted(plain_value(v) for v in unknown)}"
            )
        return mapping

    def _fit_nominal(self, col: str, s: pd.Series) -> NominalEncoding:
        share = s.value_counts(normalize=True, dropna=True)
        retained = _sorted(plain_value(c) for c, p in share.items()
                           if p > self.config.rare_category_share and c != OTHER)
        collapsed = _sorted(plain_value(c) for c in share.index if plain_value(c) not in retained)
        if collapsed:
            logger.info("[Encoder] '%s': collapsing %d rare categories into '%s': %s",
                        col, len(collapsed), OTHER, collapsed)
        columns = tuple(f"{col}_{c}" for c in retained) + (f"{col}_{OTHER}",)
        return NominalEncoding(retained=tuple(retained),
                               seen=tuple(_sorted(plain_value(c) for c in share.index)),
                               columns=columns)

    def _fit_target(self, col: str, s: pd.Series, y: pd.Series) -> TargetEncoding:
        global_mean = float(y.mean())
        if self.config.target_smoothing == "auto":
            k = empirical_bayes_smoothing(y, s)
        else:
            k = float(self.config.target_smoothing)
        stats = y.groupby(s).agg(["count", "mean"])
        values, counts = {}, {}
        for cat, row in stats.iterrows():
            w = shrinkage_weight(row["count"], k)
            values[plain_value(cat)] = float(w * row["mean"] + (1.0 - w) * global_mean)
            counts[plain_value(cat)] = int(row["count"])
        logger.info("[Encoder] '%s': target encoding over %d categories (k=%.3g)", col, len(values), k)
        return TargetEncoding(values=values, counts=counts, global_mean=global_mean,
                              smoothing=k, column=f"{col}_target_enc")

    def _fit(self, X: pd.DataFrame, y: Optional[pd.Series]) -> EncodingState:
        passthrough, ordinal, nominal, target = [], {}, {}, {}
        names: List[str] = []
        for col in X.columns:
            kind = self.schema[col].kind
            s = X[col]
            if kind is ColumnKind.ORDINAL:
                ordinal[col] = self._fit_ordinal(col, s)
                names.append(col)
            elif kind is ColumnKind.NOMINAL:
                nominal[col] = self._fit_nominal(col, s)
                names.extend(nominal[col].columns)
            elif kind is ColumnKind.HIGH_CARDINALITY:
                if y is None:
                    raise InvalidTargetError(f"Target required to encode high-cardinality column '{col}'")
                target[col] = self._fit_target(col, s, y)
                names.append(target[col].column)
            elif kind in (ColumnKind.CONTINUOUS, ColumnKind.DISCRETE):
                passthrough.append(col)
                names.append(col)
            else:
                raise SchemaError(f"Column '{col}' of kind '{kind.value}' cannot be encoded as a feature")
        logger.info("[Encoder] %d input columns -> %d numeric features", len(X.columns), len(names))
        return EncodingState(input_columns=tuple(X.columns), passthrough=tuple(passthrough),
                             ordinal=ordinal, nominal=nominal, target=target,
                             feature_names=tuple(names))

    # ---- transform ----
    def _transform(self, X: pd.DataFrame, state: EncodingState) -> pd.DataFrame:
        unknown = [c for c in X.columns if c not in state.input_columns]
        if unknown:
            raise UnknownColumnError(unknown, where="encoding state")
        absent = [c for c in state.input_columns if c not in X.columns]
        if absent:
            raise MissingColumnError(absent)

        out: Dict[str, pd.Series] = {}
        for col in state.input_columns:
            s = X[col]
            if col in state.ordinal:
                mapping = state.ordinal[col]
                codes = s.map(lambda v: mapping.get(plain_value(v), UNKNOWN_LEVEL)).astype(float)
                unseen = s[codes == UNKNOWN_LEVEL]
                if len(unseen):
                    _warn_unseen(col, unseen.unique())
                out[col] = codes
            elif col in state.nominal:
                enc = state.nominal[col]
                values = s.map(plain_value)
                for cat, name in zip(enc.retained, enc.columns):
                    out[name] = (values == cat).astype(float)
                out[enc.columns[-1]] = (~values.isin(enc.retained)).astype(float)
                unseen = values[~values.isin(enc.seen)]
                if len(unseen):
                    _warn_unseen(col, unseen.unique())
            elif col in state.target:
                enc = state.target[col]
                values = s.map(plain_value)
                encoded = values.map(enc.values)
                if encoded.isna().any():
                    _warn_unseen(col, values[encoded.isna()].unique())
                out[enc.column] = encoded.astype(float).fillna(enc.global_mean)
            else:
                out[col] = s.astype(float)
        return pd.DataFrame(out, index=X.index, columns=list(state.feature_names))
