# src/ames_prep/evaluation.py
"""
Downstream consumer of the feature matrix: elastic-net fitting and
cross-validated RMSE on the log target.

Every fold owns an independent pipeline fitted on that fold's training rows
only, and every tuning trial is scored against the same fold assignment.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np
import optuna
import pandas as pd
from sklearn.linear_model import ElasticNet
from sklearn.metrics import mean_squared_error, r2_score
from sklearn.model_selection import KFold
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from .config import PipelineConfig
from .pipeline import FittedPipeline, HousePricePipeline

logger = logging.getLogger(__name__)

MAX_ITER = 200_000


@dataclass
class Metrics:
    model: str
    split: str
    rmse: float
    r2: float
    n: int

    def as_dict(self) -> Dict[str, float]:
        d = asdict(self)
        # ensure JSON-serialisable primitives
        for k, v in list(d.items()):
            if isinstance(v, np.generic):
                d[k] = v.item()
        return d


@dataclass
class FoldData:
    fitted: FittedPipeline
    X_train: pd.DataFrame
    y_train: pd.Series
    X_val: pd.DataFrame
    y_val: pd.Series


def rmse(y_true, y_pred) -> float:
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def make_folds(n_rows: int, n_splits: int = 5, random_state: int = 1) -> List[Tuple[np.ndarray, np.ndarray]]:
    """Fixed positional fold assignment shared by every candidate."""
    kf = KFold(n_splits=n_splits, shuffle=True, random_state=random_state)
    return list(kf.split(np.arange(n_rows)))


def prepare_folds(
    rows: pd.DataFrame,
    config: PipelineConfig,
    folds: Sequence[Tuple[np.ndarray, np.ndarray]],
) -> List[FoldData]:
    """Fit one pipeline per fold on that fold's training rows only."""
    out = []
    for i, (train_idx, val_idx) in enumerate(folds, start=1):
        train, val = rows.iloc[train_idx], rows.iloc[val_idx]
        logger.info("[CV] Fold %d: fitting pipeline on %d rows, validating on %d",
                    i, len(train), len(val))
        pipe = HousePricePipeline(config)
        X_train, y_train = pipe.fit_transform(train)
        fitted = pipe.fitted_
        out.append(FoldData(
            fitted=fitted,
            X_train=X_train,
            y_train=y_train,
            X_val=pipe.transform(val),
            y_val=fitted.transform_target(val[fitted.target]),
        ))
    return out


def build_model(alpha: float = 1e-3, l1_ratio: float = 0.5) -> Pipeline:
    return Pipeline(steps=[
        ("scaler", StandardScaler()),
        ("model", ElasticNet(alpha=alpha, l1_ratio=l1_ratio, max_iter=MAX_ITER, tol=1e-4)),
    ])


def cross_validated_rmse(params: Dict[str, float], fold_data: Sequence[FoldData]) -> Tuple[float, float]:
    """Mean and standard deviation of the per-fold RMSE on the log target."""
    scores = []
    for fold in fold_data:
        model = build_model(**params).fit(fold.X_train.to_numpy(), fold.y_train.to_numpy())
        scores.append(rmse(fold.y_val, model.predict(fold.X_val.to_numpy())))
    return float(np.mean(scores)), float(np.std(scores))


def cross_validated_metrics(model_name: str, params: Dict[str, float],
                            fold_data: Sequence[FoldData]) -> Metrics:
    """Fold-averaged RMSE and R2 on the validation rows."""
    scores, r2s = [], []
    for fold in fold_data:
        model = build_model(**params).fit(fold.X_train.to_numpy(), fold.y_train.to_numpy())
        yhat = model.predict(fold.X_val.to_numpy())
        scores.append(rmse(fold.y_val, yhat))
        r2s.append(r2_score(fold.y_val, yhat))
    n = int(sum(len(f.y_val) for f in fold_data))
    return Metrics(model=model_name, split="cv", rmse=float(np.mean(scores)),
                   r2=float(np.mean(r2s)), n=n)


def baseline_metrics(fold_data: Sequence[FoldData]) -> Metrics:
    """Predict each fold's training mean; R2 on validation rows is usually below 0."""
    scores, r2s = [], []
    for fold in fold_data:
        yhat = np.full(len(fold.y_val), fold.y_train.mean())
        scores.append(rmse(fold.y_val, yhat))
        r2s.append(r2_score(fold.y_val, yhat))
    n = int(sum(len(f.y_val) for f in fold_data))
    return Metrics(model="baseline_mean", split="cv", rmse=float(np.mean(scores)),
                   r2=float(np.mean(r2s)), n=n)


def tune_elastic_net(
    fold_data: Sequence[FoldData],
    n_trials: int = 50,
    random_state: int = 1,
    n_jobs: int = 1,
) -> Dict[str, float]:
    """TPE search over alpha / l1_ratio minimising CV RMSE."""
    logger.info("[Tune] Running Optuna tuning for ElasticNet (%d trials)", n_trials)

    def objective(trial: optuna.Trial) -> float:
        params = {
            "alpha": trial.suggest_float("alpha", 1e-5, 1.0, log=True),
            "l1_ratio": trial.suggest_float("l1_ratio", 0.0, 1.0),
        }
        mean, _ = cross_validated_rmse(params, fold_data)
        return mean

    sampler = optuna.samplers.TPESampler(seed=random_state)
    study = optuna.create_study(direction="minimize", sampler=sampler)
    study.optimize(objective, n_trials=n_trials, n_jobs=n_jobs, show_progress_bar=False)

    best = dict(study.best_trial.params)
    logger.info("[Tune] Best CV RMSE=%.5f with %s", study.best_value, best)
    return best


def fit_final_model(
    rows: pd.DataFrame,
    config: PipelineConfig,
    params: Dict[str, float],
) -> Tuple[FittedPipeline, Pipeline]:
    pipe = HousePricePipeline(config)
    X, y = pipe.fit_transform(rows)
    model = build_model(**params).fit(X.to_numpy(), y.to_numpy())
    logger.info("[Final] ElasticNet fitted on %d rows x %d features", *X.shape)
    return pipe.fitted_, model


def predict_prices(model: Pipeline, fitted: FittedPipeline, rows: pd.DataFrame) -> pd.Series:
    """Predictions on the original price scale."""
    X = fitted.transform(rows)
    return pd.Series(fitted.inverse_transform_target(model.predict(X.to_numpy())),
                     index=rows.index, name=fitted.target)


def evaluate(model_name: str, model: Pipeline, X: pd.DataFrame, y: pd.Series, split: str) -> Metrics:
    yhat = model.predict(X.to_numpy())
    m = Metrics(model=model_name, split=split, rmse=rmse(y, yhat), r2=float(r2_score(y, yhat)), n=len(y))
    logger.info("[Eval] %s (%s) -> RMSE=%.5f, R2=%.4f", model_name, split, m.rmse, m.r2)
    return m


def summarise_metrics(metrics: Iterable[Metrics]) -> pd.DataFrame:
    rows = [m.as_dict() for m in metrics]
    return pd.DataFrame(rows).sort_values(["model", "split"]).reset_index(drop=True)
