"""Leakage-free preprocessing pipeline for the Ames house-price data."""
from .config import PipelineConfig, load_config
from .exceptions import (
    InvalidConfigError,
    InvalidTargetError,
    LeakageGuardError,
    MissingColumnError,
    NotFittedError,
    PipelineError,
    PipelineStateError,
    SchemaError,
    UnknownColumnError,
    UnseenCategoryWarning,
)
from .pipeline import (
    FittedPipeline,
    HousePricePipeline,
    PipelineStatus,
    fit,
    inverse_transform_target,
    transform,
)
from .schema import ColumnKind, ColumnSpec, Schema, classify_columns

__version__ = "0.1.0"
