import numpy as np
import pandas as pd
import pytest

from kktreg.estimators.model import ConstrainedRegressionModel
from kktreg.estimators.system import ConstrainedRegressionSystem, rescale_weights
from kktreg.utils.constraints import RegressionConstraint

DESCRIPTORS = ["x0", "x1", "x2", "x3"]
MAKERS = ["Ford", "GM", "BMW"]


@pytest.fixture
def constrained_model(auto_frame, descriptor_frame) -> ConstrainedRegressionModel:
    model = ConstrainedRegressionModel.from_frame("Regressand", DESCRIPTORS + MAKERS, auto_frame)
    model.with_weights("Weight")
    model.with_constraint(RegressionConstraint.from_frame(descriptor_frame, 3.0))
    model.with_constraint("AutoMaker", 0.0, pd.Series(1.0, index=MAKERS))
    return model


@pytest.fixture
def system(constrained_model) -> ConstrainedRegressionSystem:
    return constrained_model.build()


def test_dimensions(system) -> None:
    assert system.count_observations() == 11
    assert system.count_regressors() == 7
    assert system.count_constraints() == 2
    assert system.augmented_matrix.shape == (9, 9)
    assert system.augmented_vector.shape == (9,)
    assert system.two_atw.shape == (7, 11)


def test_design_matrix_and_regressand(system, auto_frame) -> None:
    assert np.array_equal(system.design_matrix, auto_frame[DESCRIPTORS + MAKERS].to_numpy())
    assert np.allclose(system.regressand_vector, auto_frame["Regressand"].to_numpy(), atol=1e-12)


def test_weight_vector_rescaled(system) -> None:
    # ten non-zero weights: rescaled to sum to 10
    expected = [0.5, 1.0, 1.5, 2.0, 0.0, 0.5, 1.0, 1.5, 0.5, 1.0, 0.5]
    assert np.allclose(system.weight_vector, expected)
    assert system.weight_vector.sum() == pytest.approx(10.0)


def test_augmented_matrix_entries(system) -> None:
    actual = system.augmented_matrix
    tol = 1e-12
    expected = {
        (0, 0): 20.0, (0, 2): 174.0, (1, 3): 2712.0, (1, 7): 1.0,
        (2, 1): -72.0, (2, 7): 2.0, (3, 6): 253.0, (4, 3): -334.0,
        (4, 8): 1.0, (5, 0): 11.0, (5, 8): 1.0, (6, 6): 3.0,
        (6, 8): 1.0, (7, 1): 1.0, (7, 2): 2.0, (8, 4): 1.0,
        (8, 5): 1.0, (8, 6): 1.0,
    }
    for (i, j), v in expected.items():
        assert actual[i, j] == pytest.approx(v, abs=tol), (i, j)
    assert np.allclose(actual, actual.T)
    assert np.all(actual[7:, 7:] == 0.0)


def test_augmented_vector(system) -> None:
    A = system.design_matrix
    W = np.diag(system.weight_vector)
    expected = 2.0 * A.T @ W @ system.regressand_vector
    assert np.allclose(system.augmented_vector[:7], expected)
    assert system.augmented_vector[7] == 3.0
    assert system.augmented_vector[8] == 0.0


def test_arrays_are_read_only(system) -> None:
    with pytest.raises(ValueError):
        system.augmented_matrix[0, 0] = 1.0
    with pytest.raises(ValueError):
        system.weight_vector[0] = 1.0


def test_augmented_frame_labels(system) -> None:
    frame = system.augmented_frame()
    assert list(frame.index) == DESCRIPTORS + MAKERS + ["DescriptorConstraint", "AutoMaker"]
    assert frame.loc["DescriptorConstraint", "x2"] == 2.0


def test_observation_subset(constrained_model) -> None:
    constrained_model.with_observations(["row1", "row2", "row3", "row4"])
    system = constrained_model.build()
    assert system.count_observations() == 4
    assert system.observation_keys == ["row1", "row2", "row3", "row4"]
    # weights 1,2,3,4 rescaled to sum to 4
    assert np.allclose(system.weight_vector, [0.4, 0.8, 1.2, 1.6])


def test_negative_weight_names_observation(constrained_model, auto_frame) -> None:
    weights = auto_frame["Weight"].copy()
    weights["row7"] = -1.0
    constrained_model.with_weights(weights)
    with pytest.raises(ValueError, match=r"row7.*negative"):
        constrained_model.build()


def test_all_zero_weights() -> None:
    with pytest.raises(ValueError, match="positive"):
        rescale_weights(pd.Series([0.0, 0.0], index=["a", "b"]))


def test_rescale_weights_unit_average() -> None:
    w = rescale_weights(pd.Series([2.0, 0.0, 6.0, 4.0]))
    assert np.allclose(w, [0.5, 0.0, 1.5, 1.0])
    assert w[w > 0].sum() == pytest.approx(np.count_nonzero(w))


def test_constraint_on_inactive_regressor(constrained_model) -> None:
    constrained_model.with_regressors(DESCRIPTORS)
    with pytest.raises(KeyError, match="constrained regressors"):
        constrained_model.build()


def test_missing_regressand_value(auto_frame) -> None:
    frame = auto_frame.copy()
    frame.loc["row3", "Regressand"] = np.nan
    model = ConstrainedRegressionModel.from_frame("Regressand", DESCRIPTORS, frame)
    with pytest.raises(ValueError, match="Regressand"):
        model.build()


def test_unconstrained_system_is_normal_equations(auto_frame) -> None:
    model = ConstrainedRegressionModel.from_frame("Regressand", DESCRIPTORS, auto_frame)
    system = model.build()
    A = system.design_matrix
    assert system.count_constraints() == 0
    assert np.allclose(system.augmented_matrix, 2.0 * A.T @ A)
    assert np.allclose(system.augmented_vector, 2.0 * A.T @ system.regressand_vector)
