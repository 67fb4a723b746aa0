# src/ames_prep/base.py
from __future__ import annotations

import logging
from typing import Any, Optional

import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin

from .exceptions import LeakageGuardError, NotFittedError

logger = logging.getLogger(__name__)


class FitScope:
    """The index of the declared fit set.

    Stages check every frame (and target) they compute statistics from
    against it, so a fit can never read held-out rows. Inside
    HousePricePipeline every stage sees the fit rows themselves; the check
    matters when stages are fitted one by one, e.g. per cross-validation fold.
    """

    def __init__(self, index: pd.Index):
        if not index.is_unique:
            raise LeakageGuardError("Fit rows must have a unique index to be tracked")
        self.index = index

    def __len__(self) -> int:
        return len(self.index)

    def guard(self, data, stage: str) -> None:
        if data is None:
            return
        outside = ~data.index.isin(self.index)
        if outside.any():
            raise LeakageGuardError(
                f"[{stage}] {int(outside.sum())} row(s) are outside the declared fit set; "
                f"fit statistics may only use training rows"
            )


class PipelineStep(BaseEstimator, TransformerMixin):
    """One fit/transform stage.

    ``fit`` computes a frozen state dataclass and stores it in ``state_``;
    ``transform`` only reads that state. Subclasses implement ``_fit`` and
    ``_transform``.
    """

    tag = "Step"

    def fit(self, X: pd.DataFrame, y: Optional[pd.Series] = None, scope: Optional[FitScope] = None):
        if scope is not None:
            scope.guard(X, self.tag)
            scope.guard(y, self.tag)
        if y is not None and not y.index.equals(X.index):
            raise LeakageGuardError(f"[{self.tag}] Target index does not match the fit rows")
        self.state_ = self._fit(X, y)
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        self._check_fitted()
        return self._transform(X.copy(), self.state_)

    def fit_transform(self, X, y=None, scope: Optional[FitScope] = None, **fit_params):
        return self.fit(X, y, scope=scope).transform(X)

    def _check_fitted(self) -> None:
        if getattr(self, "state_", None) is None:
            raise NotFittedError(f"{type(self).__name__} is not fitted yet; call fit() first")

    def _fit(self, X: pd.DataFrame, y: Optional[pd.Series]) -> Any:  # pragma: no cover
        raise NotImplementedError

    def _transform(self, X: pd.DataFrame, state: Any) -> pd.DataFrame:  # pragma: no cover
        raise NotImplementedError
