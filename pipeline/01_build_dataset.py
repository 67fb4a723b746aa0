# pipeline/01_build_dataset.py
from __future__ import annotations

import json
import logging
import pathlib

import pandas as pd

from ames_prep import HousePricePipeline, load_config
from ames_prep.config import load_settings

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("build_dataset")

# ---------- Paths & config ----------
PROJ = pathlib.Path(__file__).resolve().parents[1]
SETTINGS = load_settings(PROJ / "conf")
CONFIG = load_config(PROJ / "conf")

RAW_DIR = PROJ / SETTINGS["data"]["raw_dir"]
PROC_DIR = PROJ / SETTINGS["data"]["processed_dir"]
ARTIFACTS = PROJ / SETTINGS.get("artifacts_dir", "artifacts")


def main() -> int:
    PROC_DIR.mkdir(parents=True, exist_ok=True)
    train_path = RAW_DIR / SETTINGS["data"]["train_file"]
    logger.info("Loading raw training rows: %s", train_path)
    train = pd.read_csv(train_path)
    logger.info("Loaded %d rows x %d columns", *train.shape)

    pipe = HousePricePipeline(CONFIG)
    X, y = pipe.fit_transform(train)
    fitted = pipe.fitted_

    # ---------- Persist feature matrix (parquet) ----------
    matrix = X.assign(**{f"log_{fitted.target}": y})
    matrix_path = PROC_DIR / "features_train.parquet"
    matrix.to_parquet(matrix_path, index=False)
    logger.info("Saved feature matrix %s: %s", matrix.shape, matrix_path)

    # ---------- Persist fitted pipeline + description ----------
    fitted.save(ARTIFACTS / "fitted_pipeline.joblib")
    schema_path = PROC_DIR / "features_schema.json"
    with open(schema_path, "w", encoding="utf-8") as f:
        json.dump(fitted.describe(), f, indent=2)
    logger.info("Saved pipeline description: %s", schema_path)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
