# src/ames_prep/schema.py
"""Column classification: assigns every raw column a semantic kind."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype

from .config import PipelineConfig
from .exceptions import MissingColumnError, UnknownColumnError

logger = logging.getLogger(__name__)


class ColumnKind(str, Enum):
    IDENTIFIER = "identifier"
    TARGET = "target"
    CONTINUOUS = "continuous"
    DISCRETE = "discrete"
    NOMINAL = "nominal"
    ORDINAL = "ordinal"
    HIGH_CARDINALITY = "high_cardinality"

    @property
    def is_categorical(self) -> bool:
        return self in (ColumnKind.NOMINAL, ColumnKind.ORDINAL, ColumnKind.HIGH_CARDINALITY)

    @property
    def is_feature(self) -> bool:
        return self not in (ColumnKind.IDENTIFIER, ColumnKind.TARGET)


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    kind: ColumnKind
    levels: Optional[Tuple[Any, ...]] = None  # ordinal columns only, lowest first
    numeric: bool = False  # raw representation is numeric

    def __post_init__(self):
        if self.kind is ColumnKind.ORDINAL and not self.levels:
            raise ValueError(f"Ordinal column '{self.name}' needs an explicit level list")


@dataclass(frozen=True)
class Schema:
    """Ordered, immutable list of ColumnSpec."""

    columns: Tuple[ColumnSpec, ...]

    def __iter__(self):
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    def __contains__(self, name: str) -> bool:
        return any(c.name == name for c in self.columns)

    def __getitem__(self, name: str) -> ColumnSpec:
        for spec in self.columns:
            if spec.name == name:
                return spec
        raise UnknownColumnError([name])

    @property
    def names(self) -> List[str]:
        return [c.name for c in self.columns]

    def of_kind(self, *kinds: ColumnKind) -> List[str]:
        return [c.name for c in self.columns if c.kind in kinds]

    @property
    def feature_names(self) -> List[str]:
        return [c.name for c in self.columns if c.kind.is_feature]

    @property
    def target(self) -> Optional[str]:
        found = self.of_kind(ColumnKind.TARGET)
        return found[0] if found else None

    def without(self, names: Iterable[str]) -> "Schema":
        drop = set(names)
        return Schema(tuple(c for c in self.columns if c.name not in drop))

    def extend(self, specs: Iterable[ColumnSpec]) -> "Schema":
        specs = tuple(specs)
        clash = [s.name for s in specs if s.name in self]
        if clash:
            raise ValueError(f"Columns already in schema: {clash}")
        return Schema(self.columns + specs)

    def validate(self, rows: pd.DataFrame, allow_missing: Iterable[str] = ()) -> None:
        """Raise if ``rows`` carries undeclared columns or lacks declared ones."""
        declared = set(self.names)
        unknown = [c for c in rows.columns if c not in declared]
        if unknown:
            raise UnknownColumnError(unknown)
        optional = set(allow_missing)
        absent = [c for c in self.names if c not in rows.columns and c not in optional]
        if absent:
            raise MissingColumnError(absent)

    def to_dict(self) -> List[Dict[str, Any]]:
        out = []
        for c in self.columns:
            item: Dict[str, Any] = {"name": c.name, "kind": c.kind.value}
            if c.levels is not None:
                item["levels"] = [plain_value(v) for v in c.levels]
            out.append(item)
        return out


def plain_value(value):
    """numpy scalar -> builtin, so level and category keys hash and compare as plain values."""
    return value.item() if isinstance(value, np.generic) else value


# ---------------------------------------------------------------------------
# classification
# ---------------------------------------------------------------------------


def reclassify_numeric_ordinals(
    specs: Dict[str, ColumnSpec], numeric_levels: Dict[str, Tuple[Any, ...]]
) -> Dict[str, ColumnSpec]:
    """Turn numeric rating columns (e.g. OverallQual 1-10) into ordinal columns.

    Type inference alone would call these continuous; the level list is
    declared in configuration.
    """
    out = dict(specs)
    for col, levels in numeric_levels.items():
        if col not in out:
            logger.info("[Classifier] Numeric ordinal '%s' not in data, skipping", col)
            continue
        out[col] = replace(out[col], kind=ColumnKind.ORDINAL, levels=tuple(levels))
        logger.info("[Classifier] Reclassified numeric '%s' as ordinal (%d levels)", col, len(levels))
    return out


def _is_integer_valued(s: pd.Series) -> bool:
    vals = s.dropna().to_numpy(dtype=float)
    return bool(len(vals)) and bool(np.all(np.mod(vals, 1) == 0))


def _infer_kind(s: pd.Series, config: PipelineConfig) -> ColumnKind:
    name = s.name
    n_levels = s.nunique(dropna=True)
    if name in config.ordinal_levels:
        return ColumnKind.ORDINAL
    if name in config.continuous_columns:
        return ColumnKind.CONTINUOUS
    if name in config.discrete_columns:
        return ColumnKind.DISCRETE
    if name in config.categorical_columns or not is_numeric_dtype(s):
        if n_levels > config.high_cardinality_threshold:
            return ColumnKind.HIGH_CARDINALITY
        return ColumnKind.NOMINAL
    if _is_integer_valued(s) and n_levels <= config.discrete_max_levels:
        return ColumnKind.DISCRETE
    return ColumnKind.CONTINUOUS


def classify_columns(rows: pd.DataFrame, config: PipelineConfig) -> Schema:
    """Build the immutable schema from the training rows.

    Order follows ``rows.columns``. The target and identifier columns are
    declared, every other column is inferred from dtype and distinct counts
    unless configuration pins its kind.
    """
    specs: Dict[str, ColumnSpec] = {}
    for col in rows.columns:
        s = rows[col]
        numeric = bool(is_numeric_dtype(s))
        if col == config.target:
            kind = ColumnKind.TARGET
        elif col in config.identifiers:
            kind = ColumnKind.IDENTIFIER
        else:
            kind = _infer_kind(s, config)
        levels = tuple(config.ordinal_levels[col]) if kind is ColumnKind.ORDINAL else None
        specs[col] = ColumnSpec(name=col, kind=kind, levels=levels, numeric=numeric)

    specs = reclassify_numeric_ordinals(specs, config.numeric_ordinal_levels)

    schema = Schema(tuple(specs[c] for c in rows.columns))
    counts = pd.Series([c.kind.value for c in schema]).value_counts().to_dict()
    logger.info("[Classifier] Schema built for %d columns: %s", len(schema), counts)
    return schema
