# src/ames_prep/config.py
"""
Configuration for the preprocessing pipeline.

Thresholds live in ``conf/config.yaml`` (``pipeline:`` section) and the
data-driven column rules in ``conf/columns.yaml``. Both are merged into one
frozen :class:`PipelineConfig`; every value is range-checked on construction
so a bad threshold fails before any data is touched.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .exceptions import InvalidConfigError

NORMALIZER_CANDIDATES: Tuple[str, ...] = ("identity", "log1p", "sqrt", "yeo-johnson")


@dataclass(frozen=True)
class FeatureGroup:
    """Columns that only carry a value when ``presence`` is not the sentinel.

    A house without a garage has ``GarageType`` missing; every other garage
    column is then forced to the sentinel (categorical) or ``numeric_fill``
    (numeric) before any statistical imputation runs.
    """

    name: str
    presence: str
    sentinel: str = "None"
    categorical: Tuple[str, ...] = ()
    numeric: Tuple[str, ...] = ()
    numeric_fill: float = 0.0

    @property
    def members(self) -> Tuple[str, ...]:
        return self.categorical + self.numeric


@dataclass(frozen=True)
class AgeFeature:
    """``reference - column`` in years, floored at 0.

    With ``presence`` set, rows where that column reads ``sentinel`` (no
    garage, say) get age 0 instead of an age computed from an imputed year.
    """

    name: str
    reference: str
    column: str
    presence: Optional[str] = None
    sentinel: str = "None"


@dataclass(frozen=True)
class PipelineConfig:
    target: str = "SalePrice"
    identifiers: Tuple[str, ...] = ("Id",)

    # thresholds
    high_cardinality_threshold: int = 10
    discrete_max_levels: int = 15
    max_missing_rate: float = 0.5
    rare_category_share: float = 0.05
    iqr_multiplier: float = 1.5
    variance_threshold: float = 1e-8
    max_dominant_share: float = 0.995
    correlation_threshold: float = 0.9
    target_smoothing: Union[float, str] = "auto"
    n_neighbors: int = 5
    normalizer_candidates: Tuple[str, ...] = NORMALIZER_CANDIDATES

    # column rules
    ordinal_levels: Dict[str, Tuple[Any, ...]] = field(default_factory=dict)
    numeric_ordinal_levels: Dict[str, Tuple[Any, ...]] = field(default_factory=dict)
    categorical_columns: Tuple[str, ...] = ()
    continuous_columns: Tuple[str, ...] = ()
    discrete_columns: Tuple[str, ...] = ()
    feature_groups: Tuple[FeatureGroup, ...] = ()
    constant_fills: Dict[str, Any] = field(default_factory=dict)
    group_medians: Dict[str, str] = field(default_factory=dict)
    neighbor_column: Optional[str] = None
    age_features: Tuple[AgeFeature, ...] = ()
    sum_features: Dict[str, Dict[str, float]] = field(default_factory=dict)
    drop_after_engineering: Tuple[str, ...] = ()

    def __post_init__(self):
        _check_unit("max_missing_rate", self.max_missing_rate)
        _check_unit("max_dominant_share", self.max_dominant_share)
        _check_unit("correlation_threshold", self.correlation_threshold)
        _check_number("rare_category_share", self.rare_category_share)
        if not 0.0 <= self.rare_category_share < 1.0:
            raise InvalidConfigError(
                f"rare_category_share must be in [0, 1), got {self.rare_category_share!r}"
            )
        for name in ("high_cardinality_threshold", "discrete_max_levels", "n_neighbors"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidConfigError(f"{name} must be a positive integer, got {value!r}")
        _check_number("iqr_multiplier", self.iqr_multiplier)
        if self.iqr_multiplier <= 0:
            raise InvalidConfigError(f"iqr_multiplier must be > 0, got {self.iqr_multiplier!r}")
        _check_number("variance_threshold", self.variance_threshold)
        if self.variance_threshold < 0:
            raise InvalidConfigError("variance_threshold must be >= 0")
        if self.target_smoothing != "auto":
            _check_number("target_smoothing", self.target_smoothing)
            if self.target_smoothing < 0:
                raise InvalidConfigError("target_smoothing must be 'auto' or a number >= 0")

        unknown = [c for c in self.normalizer_candidates if c not in NORMALIZER_CANDIDATES]
        if unknown or not self.normalizer_candidates:
            raise InvalidConfigError(
                f"normalizer_candidates must be a non-empty subset of {NORMALIZER_CANDIDATES}, "
                f"got {list(self.normalizer_candidates)}"
            )

        for source in (self.ordinal_levels, self.numeric_ordinal_levels):
            for col, levels in source.items():
                if not levels:
                    raise InvalidConfigError(f"Ordinal column '{col}' has no levels")
                if len(set(levels)) != len(levels):
                    raise InvalidConfigError(f"Ordinal column '{col}' repeats a level: {list(levels)}")

        if self.neighbor_column is not None and self.neighbor_column in self.group_medians:
            raise InvalidConfigError(
                f"'{self.neighbor_column}' cannot be both neighbour-imputed and group-median imputed"
            )

    # ------------------------------------------------------------------
    # construction from YAML
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PipelineConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        # YAML spelling -> field name
        aliases = {
            "ordinal": "ordinal_levels",
            "numeric_ordinal": "numeric_ordinal_levels",
            "groups": "feature_groups",
            "constant_fill": "constant_fills",
            "group_median": "group_medians",
            "neighbor_impute": "neighbor_column",
        }
        for alias, name in aliases.items():
            if alias in data:
                data[name] = data.pop(alias)

        engineer = data.pop("engineer", None) or {}
        if engineer:
            data["age_features"] = engineer.get("ages", {})
            data["sum_features"] = engineer.get("sums", {})
            data["drop_after_engineering"] = engineer.get("drop", [])

        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidConfigError(f"Unknown configuration key(s): {unknown}")

        for name in ("identifiers", "categorical_columns", "continuous_columns",
                     "discrete_columns", "normalizer_candidates", "drop_after_engineering"):
            if name in data:
                data[name] = tuple(data[name] or ())

        if "ordinal_levels" in data:
            data["ordinal_levels"] = {c: tuple(v or ()) for c, v in (data["ordinal_levels"] or {}).items()}
        if "numeric_ordinal_levels" in data:
            data["numeric_ordinal_levels"] = {
                c: _numeric_levels(c, v) for c, v in (data["numeric_ordinal_levels"] or {}).items()
            }
        if "feature_groups" in data:
            data["feature_groups"] = tuple(_feature_group(g) for g in (data["feature_groups"] or ()))
        if "age_features" in data:
            data["age_features"] = tuple(
                _age_feature(name, rule) for name, rule in (data["age_features"] or {}).items()
            )
        if "sum_features" in data:
            data["sum_features"] = {
                name: {c: float(w) for c, w in (terms or {}).items()}
                for name, terms in (data["sum_features"] or {}).items()
            }
        if "neighbor_column" in data:
            data["neighbor_column"] = _single_column(data["neighbor_column"])
        for name in ("constant_fills", "group_medians"):
            if name in data:
                data[name] = dict(data[name] or {})

        return cls(**data)


def load_settings(conf_dir: Union[str, Path]) -> Dict[str, Any]:
    """Raw contents of ``config.yaml`` (paths, cv settings, pipeline thresholds)."""
    path = Path(conf_dir) / "config.yaml"
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(conf_dir: Union[str, Path]) -> PipelineConfig:
    """Merge ``config.yaml:pipeline`` with ``columns.yaml`` into a PipelineConfig."""
    conf_dir = Path(conf_dir)
    settings = load_settings(conf_dir)
    merged: Dict[str, Any] = dict(settings.get("pipeline") or {})

    columns_path = conf_dir / "columns.yaml"
    if columns_path.exists():
        with open(columns_path) as f:
            columns = yaml.safe_load(f) or {}
        overlap = sorted(set(merged) & set(columns))
        if overlap:
            raise InvalidConfigError(f"Keys defined in both config.yaml and columns.yaml: {overlap}")
        merged.update(columns)

    return PipelineConfig.from_dict(merged)


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _check_number(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigError(f"{name} must be a number, got {value!r}")


def _check_unit(name: str, value) -> None:
    _check_number(name, value)
    if not 0.0 <= value <= 1.0:
        raise InvalidConfigError(f"{name} must be in [0, 1], got {value!r}")


def _numeric_levels(col: str, spec) -> Tuple[Any, ...]:
    # accepts an explicit list or a {min, max} integer range
    if isinstance(spec, dict):
        try:
            lo, hi = int(spec["min"]), int(spec["max"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidConfigError(f"numeric_ordinal '{col}' needs integer min/max") from exc
        if hi < lo:
            raise InvalidConfigError(f"numeric_ordinal '{col}': max < min")
        return tuple(range(lo, hi + 1))
    return tuple(spec or ())


def _feature_group(spec: Dict[str, Any]) -> FeatureGroup:
    try:
        return FeatureGroup(
            name=spec["name"],
            presence=spec["presence"],
            sentinel=spec.get("sentinel", "None"),
            categorical=tuple(spec.get("categorical") or ()),
            numeric=tuple(spec.get("numeric") or ()),
            numeric_fill=float(spec.get("numeric_fill", 0.0)),
        )
    except (KeyError, TypeError) as exc:
        raise InvalidConfigError(f"Invalid feature group definition: {spec!r}") from exc


def _age_feature(name: str, rule: Dict[str, Any]) -> AgeFeature:
    try:
        return AgeFeature(
            name=name,
            reference=rule["reference"],
            column=rule["column"],
            presence=rule.get("presence"),
            sentinel=rule.get("sentinel", "None"),
        )
    except (KeyError, TypeError) as exc:
        raise InvalidConfigError(f"Age feature '{name}' needs 'reference' and 'column'") from exc


def _single_column(value) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    values = list(value)
    if len(values) > 1:
        raise InvalidConfigError(
            f"At most one column may use nearest-neighbour imputation, got {values}"
        )
    return values[0] if values else None
