# src/ames_prep/exceptions.py
from __future__ import annotations

from sklearn.exceptions import NotFittedError as _SklearnNotFittedError


class PipelineError(Exception):
    """Base class for every error raised by the preprocessing pipeline."""


class SchemaError(PipelineError):
    """A row set does not match the schema frozen at fit time."""


class UnknownColumnError(SchemaError):
    def __init__(self, columns, where: str = "schema"):
        self.columns = list(columns)
        super().__init__(f"Column(s) not declared in the {where}: {self.columns}")


class MissingColumnError(SchemaError):
    def __init__(self, columns):
        self.columns = list(columns)
        super().__init__(f"Declared column(s) absent from rows: {self.columns}")


class NotFittedError(PipelineError, _SklearnNotFittedError):
    """transform/apply called before fit completed."""


class PipelineStateError(PipelineError):
    """fit called on a pipeline that is already fitted (call reset() first)."""


class LeakageGuardError(PipelineError):
    """A fit statistic was about to be computed from rows outside the fit set."""


class InvalidConfigError(PipelineError, ValueError):
    """A configuration value is missing, unknown or outside its valid range."""


class InvalidTargetError(PipelineError, ValueError):
    """Target values that cannot be log-transformed (missing or <= 0)."""


class UnseenCategoryWarning(UserWarning):
    """A categorical value not seen at fit time was encoded with a fallback."""
