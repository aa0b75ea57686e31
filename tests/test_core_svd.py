
import pytest
import numpy as np
from kktreg.core import svd as ksvd
from kktreg.core.linalg import machine_epsilon
from kktreg.core.svd import SVDSolver

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def square_system():
    A = np.array([
        [1.0, 2.0, 3.0, 4.0],
        [-3.0, -5.0, 8.0, 5.0],
        [10.0, -22.0, 90.0, 2.0],
        [5.0, 6.0, 12.0, 0.0],
    ])
    b = np.array([10.0, 2.0, 20.0, 30.0])
    return A, b

@pytest.fixture
def quadratic_fit(rng):
    x = np.linspace(-3.0, 3.0, 40)
    A = np.column_stack([np.ones_like(x), x, x**2])
    y = 5.0 - 3.0 * x + x**2 + 0.001 * rng.standard_normal(x.size)
    return A, y

# ---------------------------------------------------------------------
# Decomposition
# ---------------------------------------------------------------------

def test_decompose_shapes_and_reconstruction(rng):
    A = rng.standard_normal((7, 3))
    d = ksvd.decompose(A)
    assert d.row_dimension == 7
    assert d.column_dimension == 3
    assert d.U.shape == (7, 3)
    assert d.V.shape == (3, 3)
    assert np.all(np.diff(d.singular_values) <= 0)
    assert np.allclose(d.U @ np.diag(d.singular_values) @ d.V.T, A)

def test_decompose_rejects_non_finite():
    with pytest.raises(ValueError, match="NaN/Inf"):
        ksvd.decompose(np.array([[1.0, np.nan], [0.0, 1.0]]))

# ---------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------

def test_default_threshold_formula(rng):
    A = rng.standard_normal((6, 4))
    d = ksvd.decompose(A)
    expected = 0.5 * np.sqrt(6 + 4 + 1.0) * d.singular_values[0] * machine_epsilon()
    assert ksvd.default_threshold(d) == pytest.approx(max(expected, machine_epsilon()))
    assert SVDSolver(d).threshold == pytest.approx(ksvd.default_threshold(d))

def test_default_threshold_floored_for_zero_matrix():
    solver = SVDSolver.from_matrix(np.zeros((3, 2)))
    assert solver.threshold == machine_epsilon()
    assert np.allclose(solver.solve(np.ones(3)), 0.0)

@pytest.mark.parametrize("bad", [np.nan, np.inf, -1.0, 0.0, 1e-17])
def test_with_threshold_rejects_invalid(square_system, bad):
    A, _ = square_system
    solver = SVDSolver.from_matrix(A)
    with pytest.raises(ValueError, match="singular value threshold"):
        solver.with_threshold(bad)

def test_with_threshold_keeps_decomposition(square_system):
    A, _ = square_system
    solver = SVDSolver.from_matrix(A)
    before = solver.svd
    assert solver.with_threshold(1e-6) is solver
    assert solver.svd is before
    assert solver.threshold == 1e-6

def test_truncation_is_monotone(rng):
    A = rng.standard_normal((10, 5)) @ np.diag([1.0, 1e-2, 1e-4, 1e-6, 1e-8])
    solver = SVDSolver.from_matrix(A)
    counts = [solver.with_threshold(t).count_truncated() for t in (1e-12, 1e-7, 1e-5, 1e-3, 1e-1, 10.0)]
    assert counts == sorted(counts)
    assert counts[0] == 0
    assert counts[-1] == 5

def test_invert_singular_values_zeroes_small_values():
    A = np.diag([4.0, 2.0, 1e-9])
    solver = SVDSolver.from_matrix(A).with_threshold(1e-6)
    Dinv = solver.invert_singular_values()
    assert np.allclose(np.diag(Dinv), [0.25, 0.5, 0.0])
    assert solver.rank() == 2

# ---------------------------------------------------------------------
# Solving
# ---------------------------------------------------------------------

def test_square_solve(square_system):
    A, b = square_system
    x = SVDSolver.from_matrix(A).solve(b)
    assert np.allclose(x, [-3.991750, 4.691809, 1.817325, -0.210961], atol=1e-6)
    assert ksvd.is_exact_solution(A, x, b)
    assert ksvd.compute_rss(A, x, b) < 1e-20

def test_invert_matches_numpy(square_system):
    A, _ = square_system
    inv = SVDSolver.from_matrix(A).invert()
    expected = np.array([
        [0.5604007, -0.47554508, 0.068061285, -0.33352976],
        [-0.2206836, 0.19357690, -0.042575133, 0.24543312],
        [-0.1231585, 0.10135533, -0.007071302, 0.09958751],
        [0.3126105, -0.05391868, 0.009575722, -0.11402475],
    ])
    assert np.allclose(inv, expected, rtol=1e-6, atol=1e-8)
    assert np.allclose(inv, np.linalg.inv(A))
    assert np.allclose(inv @ A, np.eye(4))

def test_solve_matrix_rhs(square_system, rng):
    A, _ = square_system
    B = rng.standard_normal((4, 3))
    X = SVDSolver.from_matrix(A).solve(B)
    assert X.shape == (4, 3)
    assert np.allclose(A @ X, B)

def test_solve_rhs_length_mismatch(square_system):
    A, _ = square_system
    with pytest.raises(ValueError, match="rows"):
        SVDSolver.from_matrix(A).solve(np.ones(5))

def test_least_squares_quadratic(quadratic_fit):
    A, y = quadratic_fit
    x = SVDSolver.from_matrix(A).solve(y)
    assert np.allclose(x, [5.0, -3.0, 1.0], atol=0.01)
    assert ksvd.is_least_squares_solution(A, x, y)
    assert not ksvd.is_exact_solution(A, x, y)
    assert np.allclose(x, np.linalg.lstsq(A, y, rcond=None)[0])

def test_least_squares_oracle_detects_bad_solution(quadratic_fit):
    A, y = quadratic_fit
    assert not ksvd.is_least_squares_solution(A, np.array([4.0, -3.0, 1.0]), y)

def test_residual_sign_convention():
    A = np.ones((3, 1))
    x = np.array([2.0])
    b = np.array([1.0, 2.0, 3.0])
    assert np.allclose(ksvd.compute_fitted_values(A, x), [2.0, 2.0, 2.0])
    assert np.allclose(ksvd.compute_residual(A, x, b), [1.0, 0.0, -1.0])
    assert ksvd.compute_rss(A, x, b) == pytest.approx(2.0)

def test_minimum_norm_for_rank_deficient():
    A = np.array([[1.0, 2.0], [2.0, 4.0], [3.0, 6.0]])
    b = 3.0 * A[:, 0]
    x = SVDSolver.from_matrix(A).with_threshold(1e-8).solve(b)
    assert np.allclose(x, [0.6, 1.2])
    assert np.allclose(A @ x, b)
