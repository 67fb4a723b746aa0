from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from ames_prep.config import AgeFeature, FeatureGroup, PipelineConfig

NEIGHBORHOODS = [f"N{i:02d}" for i in range(12)]


def make_rows(n: int = 60, seed: int = 0) -> pd.DataFrame:
    """Small Ames-like frame: skewed areas, a garage group, a deferred column."""
    rng = np.random.RandomState(seed)
    qual = rng.randint(3, 10, size=n)
    lot_area = np.exp(rng.normal(9.0, 0.5, n)).round()
    gr_liv = rng.normal(1500, 400, n).round().clip(500)

    has_garage = rng.rand(n) > 0.2
    has_garage[:2] = True
    has_garage[2:4] = False
    garage_type = np.where(has_garage, rng.choice(["Attchd", "Detchd"], n), None)
    garage_area = np.where(has_garage, rng.normal(450, 120, n).round(), np.nan)
    garage_finish = np.where(has_garage, rng.choice(["Unf", "RFn", "Fin"], n), None)

    lot_frontage = (np.sqrt(lot_area) * 0.8 + rng.normal(0, 5, n)).round()
    lot_frontage[rng.rand(n) < 0.15] = np.nan
    lot_frontage[5] = np.nan

    year_built = rng.randint(1900, 2008, n)
    garage_year = np.where(has_garage, year_built + rng.randint(0, 10, n), np.nan)

    price = np.exp(10 + 0.1 * qual + 0.0004 * gr_liv + 0.1 * has_garage + rng.normal(0, 0.1, n)).round()

    return pd.DataFrame({
        "Id": np.arange(1, n + 1),
        "LotArea": lot_area,
        "LotFrontage": lot_frontage,
        "GrLivArea": gr_liv,
        "OverallQual": qual,
        "ExterQual": rng.choice(["Fa", "TA", "Gd", "Ex"], n, p=[0.1, 0.5, 0.3, 0.1]),
        "Neighborhood": [NEIGHBORHOODS[i % len(NEIGHBORHOODS)] for i in range(n)],
        "SaleCondition": rng.choice(["Normal", "Partial", "Abnorml", "Family"], n, p=[0.7, 0.15, 0.1, 0.05]),
        "GarageType": garage_type,
        "GarageArea": garage_area,
        "GarageFinish": garage_finish,
        "YearBuilt": year_built,
        "GarageYrBlt": garage_year,
        "YrSold": rng.randint(2006, 2011, n),
        "FullBath": rng.randint(1, 4, n),
        "HalfBath": rng.randint(0, 2, n),
        "Alley": np.where(rng.rand(n) < 0.1, "Grvl", None),
        "SalePrice": price,
    })


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(
        ordinal_levels={
            "ExterQual": ("Po", "Fa", "TA", "Gd", "Ex"),
            "GarageFinish": ("None", "Unf", "RFn", "Fin"),
        },
        numeric_ordinal_levels={"OverallQual": tuple(range(1, 11))},
        feature_groups=(
            FeatureGroup("garage", "GarageType", categorical=("GarageFinish",), numeric=("GarageArea",)),
        ),
        neighbor_column="LotFrontage",
        group_medians={"GarageYrBlt": "GarageType"},
        age_features=(
            AgeFeature("HouseAge", "YrSold", "YearBuilt"),
            AgeFeature("GarageAge", "YrSold", "GarageYrBlt", presence="GarageType"),
        ),
        sum_features={"TotalBathrooms": {"FullBath": 1.0, "HalfBath": 0.5}},
        drop_after_engineering=("YearBuilt", "GarageYrBlt"),
    )


@pytest.fixture
def rows() -> pd.DataFrame:
    return make_rows()


@pytest.fixture
def split(rows):
    return rows.iloc[:45], rows.iloc[45:]
