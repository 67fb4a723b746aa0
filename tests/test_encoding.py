import numpy as np
import pandas as pd
import pytest

from ames_prep.config import PipelineConfig
from ames_prep.encoding import (
    UNKNOWN_LEVEL,
    CategoricalEncoder,
    empirical_bayes_smoothing,
    shrinkage_weight,
)
from ames_prep.exceptions import (
    InvalidTargetError,
    MissingColumnError,
    SchemaError,
    UnknownColumnError,
    UnseenCategoryWarning,
)
from ames_prep.schema import ColumnKind, ColumnSpec, Schema

QUALITY = ("Po", "Fa", "TA", "Gd", "Ex")


def _encoder(*specs, **config):
    return CategoricalEncoder(Schema(tuple(specs)), PipelineConfig(**config))


def test_rare_nominal_categories_collapse_into_other():
    lot = ["A"] * 40 + ["B"] * 35 + ["C"] * 20 + ["D"] * 5
    enc = _encoder(ColumnSpec("LotConfig", ColumnKind.NOMINAL))
    out = enc.fit_transform(pd.DataFrame({"LotConfig": lot}))

    assert list(out.columns) == ["LotConfig_A", "LotConfig_B", "LotConfig_C", "LotConfig_other"]
    assert out.iloc[-1].tolist() == [0.0, 0.0, 0.0, 1.0]
    assert out.iloc[0].tolist() == [1.0, 0.0, 0.0, 0.0]
    assert (out.sum(axis=1) == 1.0).all()


def test_unseen_nominal_value_goes_to_other_with_warning():
    enc = _encoder(ColumnSpec("Street", ColumnKind.NOMINAL))
    enc.fit(pd.DataFrame({"Street": ["Pave"] * 6 + ["Grvl"] * 4}))

    with pytest.warns(UnseenCategoryWarning):
        out = enc.transform(pd.DataFrame({"Street": ["Dirt"]}))
    assert out.iloc[0].to_dict() == {"Street_Grvl": 0.0, "Street_Pave": 0.0, "Street_other": 1.0}


def test_ordinal_levels_map_to_rank():
    enc = _encoder(ColumnSpec("ExterQual", ColumnKind.ORDINAL, levels=QUALITY))
    out = enc.fit_transform(pd.DataFrame({"ExterQual": ["TA", "Gd", "Ex", "Fa"]}))
    assert out["ExterQual"].tolist() == [2.0, 3.0, 4.0, 1.0]


def test_unknown_ordinal_level_maps_to_sentinel_with_warning():
    enc = _encoder(ColumnSpec("ExterQual", ColumnKind.ORDINAL, levels=QUALITY))
    enc.fit(pd.DataFrame({"ExterQual": ["TA", "Gd"]}))

    with pytest.warns(UnseenCategoryWarning):
        out = enc.transform(pd.DataFrame({"ExterQual": ["Gd", "Superb"]}))
    assert out["ExterQual"].tolist() == [3.0, UNKNOWN_LEVEL]


def test_ordinal_fit_rejects_undeclared_levels():
    enc = _encoder(ColumnSpec("ExterQual", ColumnKind.ORDINAL, levels=QUALITY))
    with pytest.raises(SchemaError):
        enc.fit(pd.DataFrame({"ExterQual": ["TA", "Superb"]}))


def test_target_encoding_partial_pooling():
    enc = _encoder(ColumnSpec("Neighborhood", ColumnKind.HIGH_CARDINALITY), target_smoothing=2.0)
    X = pd.DataFrame({"Neighborhood": ["a", "a", "b"]})
    y = pd.Series([1.0, 3.0, 10.0])
    enc.fit(X, y)

    state = enc.state_.target["Neighborhood"]
    assert state.global_mean == pytest.approx(14 / 3)
    # w_a = 2 / (2 + 2), w_b = 1 / (1 + 2)
    assert state.values["a"] == pytest.approx(0.5 * 2.0 + 0.5 * 14 / 3)
    assert state.values["b"] == pytest.approx(10 / 3 + (2 / 3) * (14 / 3))

    with pytest.warns(UnseenCategoryWarning):
        out = enc.transform(pd.DataFrame({"Neighborhood": ["zz", "a"]}))
    assert list(out.columns) == ["Neighborhood_target_enc"]
    assert out["Neighborhood_target_enc"].tolist() == pytest.approx([14 / 3, state.values["a"]])


def test_target_encoding_needs_target():
    enc = _encoder(ColumnSpec("Neighborhood", ColumnKind.HIGH_CARDINALITY))
    with pytest.raises(InvalidTargetError):
        enc.fit(pd.DataFrame({"Neighborhood": ["a", "b"]}))


def test_shrinkage_weight_limits():
    assert shrinkage_weight(10, np.inf) == 0.0
    assert shrinkage_weight(10, 0.0) == 1.0
    assert shrinkage_weight(3, 1.0) == 0.75


def test_empirical_bayes_smoothing():
    groups = pd.Series(["a", "a", "b", "b"])
    # no spread inside categories -> no pooling
    assert empirical_bayes_smoothing(pd.Series([1.0, 1.0, 3.0, 3.0]), groups) == 0.0
    # identical category means -> full pooling
    assert np.isinf(empirical_bayes_smoothing(pd.Series([1.0, 3.0, 1.0, 3.0]), groups))


def test_auto_smoothing_with_equal_means_encodes_global_mean():
    enc = _encoder(ColumnSpec("Neighborhood", ColumnKind.HIGH_CARDINALITY))
    X = pd.DataFrame({"Neighborhood": ["a", "a", "b", "b"]})
    out = enc.fit_transform(X, pd.Series([1.0, 3.0, 1.0, 3.0]))
    assert out["Neighborhood_target_enc"].tolist() == [2.0] * 4


def test_output_order_follows_input_columns():
    enc = _encoder(
        ColumnSpec("LotArea", ColumnKind.CONTINUOUS),
        ColumnSpec("Street", ColumnKind.NOMINAL),
        ColumnSpec("ExterQual", ColumnKind.ORDINAL, levels=QUALITY),
    )
    X = pd.DataFrame({
        "LotArea": [8000.0, 9000.0, 10000.0, 11000.0],
        "Street": ["Pave", "Grvl", "Pave", "Pave"],
        "ExterQual": ["TA", "Gd", "TA", "Ex"],
    })
    out = enc.fit_transform(X)
    assert list(out.columns) == ["LotArea", "Street_Grvl", "Street_Pave", "Street_other", "ExterQual"]
    assert out.index.equals(X.index)


def test_transform_rejects_column_mismatch():
    enc = _encoder(ColumnSpec("Street", ColumnKind.NOMINAL))
    enc.fit(pd.DataFrame({"Street": ["Pave", "Grvl"]}))

    with pytest.raises(UnknownColumnError):
        enc.transform(pd.DataFrame({"Street": ["Pave"], "Alley": ["Grvl"]}))
    with pytest.raises(MissingColumnError):
        enc.transform(pd.DataFrame({"LotArea": [1.0]}).drop(columns="LotArea"))
