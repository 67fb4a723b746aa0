# pipeline/02_train_evaluate.py
from __future__ import annotations

import json
import logging
import pathlib
from typing import Dict, Iterable, Optional

import joblib
import pandas as pd

from ames_prep import load_config
from ames_prep.config import load_settings
from ames_prep.evaluation import (
    baseline_metrics,
    cross_validated_metrics,
    cross_validated_rmse,
    evaluate,
    fit_final_model,
    make_folds,
    predict_prices,
    prepare_folds,
    summarise_metrics,
    tune_elastic_net,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("train_evaluate")

# ---------------------------------------------------------------------------
# Project / paths
# ---------------------------------------------------------------------------

PROJ = pathlib.Path(__file__).resolve().parents[1]
SETTINGS = load_settings(PROJ / "conf")
CONFIG = load_config(PROJ / "conf")

RAW_DIR = PROJ / SETTINGS["data"]["raw_dir"]
ARTIFACTS = PROJ / SETTINGS.get("artifacts_dir", "artifacts")
CV = SETTINGS.get("cv", {})

PARAMS_FILE = ARTIFACTS / "elastic_net_best_params.json"


def get_params(fold_data, run_tuning: bool, n_trials: int, n_jobs: int) -> Dict[str, float]:
    if run_tuning or not PARAMS_FILE.exists():
        if not run_tuning:
            logger.info("No cached params found; tuning required.")
        params = tune_elastic_net(fold_data, n_trials=n_trials,
                                  random_state=CV.get("random_state", 1), n_jobs=n_jobs)
        with open(PARAMS_FILE, "w") as f:
            json.dump(params, f, indent=2)
        logger.info("Saved best params to %s", PARAMS_FILE)
        return params
    logger.info("Loading tuned params from %s", PARAMS_FILE)
    with open(PARAMS_FILE) as f:
        return json.load(f)


def run_training(run_tuning: bool = False, n_trials: Optional[int] = None, n_jobs: int = 1) -> pd.DataFrame:
    ARTIFACTS.mkdir(parents=True, exist_ok=True)
    logger.info("=== Training pipeline started ===")
    train = pd.read_csv(RAW_DIR / SETTINGS["data"]["train_file"])
    logger.info("Loaded training rows: %s", train.shape)

    folds = make_folds(len(train), n_splits=CV.get("n_splits", 5), random_state=CV.get("random_state", 1))
    fold_data = prepare_folds(train, CONFIG, folds)

    metrics = [baseline_metrics(fold_data)]
    params = get_params(fold_data, run_tuning, n_trials or CV.get("n_trials", 50), n_jobs)
    mean, std = cross_validated_rmse(params, fold_data)
    logger.info("ElasticNet CV RMSE (log scale): %.5f +/- %.5f", mean, std)
    metrics.append(cross_validated_metrics("elastic_net", params, fold_data))

    logger.info("=== Fitting final pipeline + ElasticNet on all training rows ===")
    fitted, model = fit_final_model(train, CONFIG, params)
    X_train = fitted.transform(train)
    metrics.append(evaluate("elastic_net", model, X_train, fitted.transform_target(train[fitted.target]),
                            split="train"))
    fitted.save(ARTIFACTS / "fitted_pipeline.joblib")
    joblib.dump(model, ARTIFACTS / "model_elastic_net.joblib")

    test_path = RAW_DIR / SETTINGS["data"]["test_file"]
    if test_path.exists():
        test = pd.read_csv(test_path)
        preds = predict_prices(model, fitted, test)
        id_col = CONFIG.identifiers[0]
        submission = pd.DataFrame({id_col: test[id_col], fitted.target: preds.to_numpy()})
        submission.to_csv(ARTIFACTS / "submission.csv", index=False)
        logger.info("Wrote %d predictions to %s", len(submission), ARTIFACTS / "submission.csv")

    df_metrics = summarise_metrics(metrics)
    df_metrics.to_csv(ARTIFACTS / "model_metrics.csv", index=False)
    with open(ARTIFACTS / "model_metrics.json", "w") as f:
        json.dump(df_metrics.to_dict(orient="records"), f, indent=2)
    logger.info("=== Training complete ===\n%s", df_metrics)
    return df_metrics


def main(argv: Optional[Iterable[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Cross-validate, tune and fit the house-price model.")
    parser.add_argument("--run-tuning", action="store_true",
                        help="Run Optuna tuning (otherwise load cached params if available).")
    parser.add_argument("--n-trials", type=int, default=None, help="Optuna trials (default from config).")
    parser.add_argument("--n-jobs", type=int, default=1, help="Parallel Optuna trials.")
    args = parser.parse_args(list(argv) if argv is not None else None)

    run_training(run_tuning=args.run_tuning, n_trials=args.n_trials, n_jobs=args.n_jobs)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
