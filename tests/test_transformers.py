import numpy as np
import pandas as pd
import pytest
from scipy import stats

from ames_prep.base import FitScope
from ames_prep.exceptions import LeakageGuardError, MissingColumnError, NotFittedError
from ames_prep.neighbors import NeighborImputer
from ames_prep.transformers import DistributionNormalizer, FeatureFilter, OutlierClipper, TransformParams


# ---------------------------------------------------------------------------
# OutlierClipper
# ---------------------------------------------------------------------------


def test_clip_bounds_from_fit_quartiles():
    clipper = OutlierClipper(["GrLivArea"], multiplier=1.5)
    clipper.fit(pd.DataFrame({"GrLivArea": [10.0, 10.0, 50.0, 50.0]}))

    assert clipper.state_.bounds["GrLivArea"] == (-50.0, 110.0)
    out = clipper.transform(pd.DataFrame({"GrLivArea": [500.0, -100.0, 30.0]}))
    assert out["GrLivArea"].tolist() == [110.0, -50.0, 30.0]


def test_clip_with_zero_iqr_caps_to_constant():
    clipper = OutlierClipper(["PoolArea"]).fit(pd.DataFrame({"PoolArea": [5.0] * 4}))
    assert clipper.state_.bounds["PoolArea"] == (5.0, 5.0)
    out = clipper.transform(pd.DataFrame({"PoolArea": [9.0, 1.0]}))
    assert out["PoolArea"].tolist() == [5.0, 5.0]


def test_clip_never_drops_rows_and_leaves_other_columns():
    clipper = OutlierClipper(["a"]).fit(pd.DataFrame({"a": [1.0, 2.0, 3.0, 4.0], "b": [0, 0, 0, 0]}))
    test = pd.DataFrame({"a": [1e6, -1e6], "b": [1e6, -1e6]})
    out = clipper.transform(test)
    assert len(out) == 2
    assert out["b"].tolist() == [1e6, -1e6]


def test_transform_before_fit_raises():
    with pytest.raises(NotFittedError):
        OutlierClipper(["a"]).transform(pd.DataFrame({"a": [1.0]}))


def test_fit_scope_rejects_held_out_rows():
    df = pd.DataFrame({"a": [1.0, 2.0, 3.0, 4.0]})
    scope = FitScope(df.index[:2])
    with pytest.raises(LeakageGuardError):
        OutlierClipper(["a"]).fit(df, scope=scope)
    OutlierClipper(["a"]).fit(df.iloc[:2], scope=scope)


def test_fit_scope_needs_unique_index():
    with pytest.raises(LeakageGuardError):
        FitScope(pd.Index([0, 0, 1]))


# ---------------------------------------------------------------------------
# DistributionNormalizer
# ---------------------------------------------------------------------------


def test_normalizer_reduces_skew_and_renames():
    rng = np.random.RandomState(0)
    df = pd.DataFrame({"LotArea": np.exp(rng.normal(9.0, 0.8, 300)), "Flat": [3.0] * 300})
    norm = DistributionNormalizer(["LotArea", "Flat"]).fit(df)

    chosen = norm.state_.params["LotArea"].family
    assert chosen != "identity"
    assert norm.state_.params["Flat"].family == "identity"

    out = norm.transform(df)
    new_name = f"LotArea_{chosen.replace('-', '_')}"
    assert list(out.columns) == [new_name, "Flat"]
    assert abs(stats.skew(out[new_name])) < abs(stats.skew(df["LotArea"]))
    assert out["Flat"].tolist() == [3.0] * 300


def test_normalizer_skips_invalid_candidates():
    rng = np.random.RandomState(1)
    df = pd.DataFrame({"x": rng.normal(0.0, 1.0, 200) - 5.0})
    norm = DistributionNormalizer(["x"]).fit(df)
    assert set(norm.state_.skewness["x"]) == {"identity", "yeo-johnson"}


def test_transform_params_floor_keeps_values_defined():
    assert TransformParams("log1p", floor=0.0).apply([-5.0, 0.0]).tolist() == [0.0, 0.0]
    assert TransformParams("sqrt", floor=1.0).apply([0.0, 4.0]).tolist() == [1.0, 2.0]
    assert TransformParams("yeo-johnson", lmbda=0.0).apply([1.0])[0] == pytest.approx(np.log(2.0))
    with pytest.raises(ValueError):
        TransformParams("cube").apply([1.0])


# ---------------------------------------------------------------------------
# FeatureFilter
# ---------------------------------------------------------------------------


def test_filter_drops_constant_and_keeps_first_of_correlated_pair():
    df = pd.DataFrame({
        "a": [1.0, 2.0, 3.0, 4.0, 5.0],
        "b": [2.0, 4.0, 6.0, 8.0, 10.0],
        "const": [1.0] * 5,
        "c": [5.0, 3.0, 4.0, 1.0, 2.0],
    })
    filt = FeatureFilter(correlation_threshold=0.9).fit(df)

    assert filt.state_.kept == ("a", "c")
    assert set(filt.state_.dropped) == {"b", "const"}
    assert "'a'" in filt.state_.dropped["b"]
    assert list(filt.transform(df).columns) == ["a", "c"]


def test_filter_drops_dominant_value_columns():
    df = pd.DataFrame({"rare": [0.0] * 199 + [1.0], "x": np.arange(200, dtype=float)})
    filt = FeatureFilter().fit(df)
    assert filt.state_.kept == ("x",)


def test_filter_transform_requires_kept_columns():
    filt = FeatureFilter().fit(pd.DataFrame({"a": [1.0, 2.0, 3.0]}))
    with pytest.raises(MissingColumnError):
        filt.transform(pd.DataFrame({"b": [1.0]}))


# ---------------------------------------------------------------------------
# NeighborImputer
# ---------------------------------------------------------------------------


def test_neighbor_imputer_fills_from_similar_rows():
    train = pd.DataFrame({
        "LotArea": [1000.0, 1100.0, 1200.0, 9000.0, 9100.0, 9200.0],
        "LotFrontage": [20.0, 22.0, 24.0, 90.0, 92.0, 94.0],
    })
    imputer = NeighborImputer("LotFrontage", n_neighbors=3).fit(train)

    out = imputer.transform(pd.DataFrame({"LotArea": [1050.0, 9150.0], "LotFrontage": [np.nan, np.nan]}))
    assert out["LotFrontage"].tolist() == pytest.approx([22.0, 92.0])


def test_neighbor_imputer_without_column_is_a_no_op():
    df = pd.DataFrame({"a": [1.0, np.nan]})
    out = NeighborImputer(None).fit_transform(df)
    assert out["a"].isna().sum() == 1
