import numpy as np
import pandas as pd
import pytest

from kktreg.estimators.model import ConstrainedRegressionModel
from kktreg.utils.constraints import RegressionConstraint

DESCRIPTORS = ["x0", "x1", "x2", "x3"]
MAKERS = ["Ford", "GM", "BMW"]


@pytest.fixture
def model(auto_frame) -> ConstrainedRegressionModel:
    return ConstrainedRegressionModel.from_frame("Regressand", DESCRIPTORS + MAKERS, auto_frame)


def test_defaults(auto_frame) -> None:
    X = auto_frame[DESCRIPTORS]
    m = ConstrainedRegressionModel(X, auto_frame["Regressand"])
    assert m.regressor_keys == DESCRIPTORS
    assert m.observation_keys == list(auto_frame.index)
    assert m.count_regressors() == 4
    assert m.count_observations() == 11
    assert m.count_constraints() == 0
    assert np.all(m.observation_weights == 1.0)


def test_default_regressors_exclude_regressand(auto_frame) -> None:
    frame = auto_frame[DESCRIPTORS + ["Regressand"]]
    m = ConstrainedRegressionModel(frame, frame["Regressand"])
    assert m.regressor_keys == DESCRIPTORS


def test_from_frame(model, auto_frame) -> None:
    assert model.regressor_keys == DESCRIPTORS + MAKERS
    assert model.regressand_key == "Regressand"
    assert model.regressand_series.equals(auto_frame["Regressand"])


def test_regressand_cannot_be_regressor(model) -> None:
    with pytest.raises(ValueError, match="cannot also be a regressor"):
        model.with_regressors(["x0", "Regressand"])
    # failed mutation leaves the model untouched
    assert model.regressor_keys == DESCRIPTORS + MAKERS


def test_with_regressors_validates(model) -> None:
    with pytest.raises(KeyError, match="x9"):
        model.with_regressors(["x0", "x9"])
    with pytest.raises(ValueError, match="Duplicate regressor"):
        model.with_regressors(["x0", "x0"])
    assert model.with_regressors(["x0", "x1"]) is None
    assert model.count_regressors() == 2


def test_with_observations_validates(model) -> None:
    with pytest.raises(KeyError, match="row99"):
        model.with_observations(["row1", "row99"])
    model.with_observations(["row1", "row2", "row3"])
    assert model.count_observations() == 3


def test_with_weights_by_column_and_series(model, auto_frame) -> None:
    model.with_weights("Weight")
    assert model.observation_weights.equals(auto_frame["Weight"])
    partial = pd.Series(1.0, index=["row1", "row2"])
    with pytest.raises(KeyError, match="weights"):
        model.with_weights(partial)
    model.with_observations(["row1", "row2"])
    model.with_weights(partial)
    assert model.observation_weights.equals(partial)


def test_with_weights_rejects_unknown_column(model) -> None:
    with pytest.raises(KeyError, match="Missing"):
        model.with_weights("NoSuchColumn")


def test_with_constraint_object_and_terms(model, descriptor_frame) -> None:
    model.with_constraint(RegressionConstraint.from_frame(descriptor_frame, 3.0))
    model.with_constraint("AutoMaker", 0.0, {"Ford": 1.0, "GM": 1.0, "BMW": 1.0})
    assert model.count_constraints() == 2
    assert model.get_constraint_keys() == ["DescriptorConstraint", "AutoMaker"]


def test_with_constraint_requires_frame_columns(model) -> None:
    with pytest.raises(KeyError, match="Audi"):
        model.with_constraint("bad", 0.0, {"Audi": 1.0})
    with pytest.raises(ValueError, match="requires both"):
        model.with_constraint("bad")


def test_constraint_set_is_memoised_and_reset(model) -> None:
    first = model.get_constraint_set()
    assert model.get_constraint_set() is first
    revision = model.revision
    model.with_constraint("c", 1.0, {"x1": 1.0})
    assert model.revision == revision + 1
    second = model.get_constraint_set()
    assert second is not first
    assert second.count_constraints() == 1


def test_duplicate_constraint_detected_lazily(model) -> None:
    model.with_constraint("c", 1.0, {"x1": 1.0})
    model.with_constraint("c", 2.0, {"x2": 1.0})
    with pytest.raises(ValueError, match="Duplicate regression constraint"):
        model.get_constraint_set()


def test_with_category_uses_active_rows(model, auto_frame) -> None:
    model.with_weights("Weight")
    model.with_category("AutoMaker", MAKERS)
    con = model.get_constraint_set().get_constraint("AutoMaker")
    w = auto_frame["Weight"] / auto_frame["Weight"].sum()
    assert con.get_term("Ford") == pytest.approx(float(w[auto_frame["Ford"] == 1.0].sum()))
    assert con.terms.sum() == pytest.approx(1.0)
