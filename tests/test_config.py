from pathlib import Path

import pytest

from ames_prep.config import NORMALIZER_CANDIDATES, PipelineConfig, load_config, load_settings
from ames_prep.exceptions import InvalidConfigError

CONF = Path(__file__).resolve().parents[1] / "conf"


def test_load_project_config():
    cfg = load_config(CONF)

    assert cfg.target == "SalePrice"
    assert cfg.identifiers == ("Id",)
    assert cfg.rare_category_share == 0.05
    assert cfg.target_smoothing == "auto"
    assert cfg.normalizer_candidates == NORMALIZER_CANDIDATES
    assert cfg.ordinal_levels["BsmtExposure"] == ("None", "No", "Mn", "Av", "Gd")
    assert cfg.ordinal_levels["CentralAir"] == ("N", "Y")
    assert cfg.numeric_ordinal_levels["OverallQual"] == tuple(range(1, 11))
    assert cfg.neighbor_column == "LotFrontage"
    assert cfg.group_medians == {"GarageYrBlt": "GarageType"}
    assert [g.name for g in cfg.feature_groups][:2] == ["garage", "basement"]
    assert {a.name for a in cfg.age_features} == {"HouseAge", "RemodAge", "GarageAge"}
    garage_age = next(a for a in cfg.age_features if a.name == "GarageAge")
    assert (garage_age.presence, garage_age.sentinel) == ("GarageType", "None")
    assert cfg.sum_features["TotalBathrooms"]["HalfBath"] == 0.5


def test_load_settings_sections():
    settings = load_settings(CONF)
    assert settings["data"]["train_file"] == "train.csv"
    assert settings["cv"]["n_splits"] == 5


@pytest.mark.parametrize("kwargs", [
    {"correlation_threshold": 1.5},
    {"max_missing_rate": -0.1},
    {"rare_category_share": 1.0},
    {"iqr_multiplier": 0},
    {"high_cardinality_threshold": 0},
    {"n_neighbors": 2.5},
    {"target_smoothing": -1.0},
    {"target_smoothing": "sometimes"},
    {"normalizer_candidates": ("identity", "cube")},
    {"ordinal_levels": {"ExterQual": ("TA", "TA")}},
    {"neighbor_column": "LotFrontage", "group_medians": {"LotFrontage": "Neighborhood"}},
])
def test_invalid_values_rejected(kwargs):
    with pytest.raises(InvalidConfigError):
        PipelineConfig(**kwargs)


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(InvalidConfigError):
        PipelineConfig.from_dict({"corelation_threshold": 0.9})


def test_from_dict_single_neighbor_column():
    assert PipelineConfig.from_dict({"neighbor_impute": ["LotFrontage"]}).neighbor_column == "LotFrontage"
    with pytest.raises(InvalidConfigError):
        PipelineConfig.from_dict({"neighbor_impute": ["LotFrontage", "MasVnrArea"]})


def test_from_dict_numeric_ordinal_forms():
    cfg = PipelineConfig.from_dict({"numeric_ordinal": {"Q": {"min": 1, "max": 3}, "R": [0, 5]}})
    assert cfg.numeric_ordinal_levels == {"Q": (1, 2, 3), "R": (0, 5)}
    with pytest.raises(InvalidConfigError):
        PipelineConfig.from_dict({"numeric_ordinal": {"Q": {"min": 3, "max": 1}}})


def test_invalid_config_is_value_error():
    with pytest.raises(ValueError):
        PipelineConfig(variance_threshold=-1.0)


def test_age_feature_presence_from_dict():
    cfg = PipelineConfig.from_dict({"engineer": {"ages": {
        "GarageAge": {"reference": "YrSold", "column": "GarageYrBlt", "presence": "GarageType"},
        "HouseAge": {"reference": "YrSold", "column": "YearBuilt"},
    }}})
    ages = {a.name: a for a in cfg.age_features}
    assert ages["GarageAge"].presence == "GarageType"
    assert ages["HouseAge"].presence is None
    with pytest.raises(InvalidConfigError):
        PipelineConfig.from_dict({"engineer": {"ages": {"HouseAge": {"reference": "YrSold"}}}})
