import math

import numpy as np
import jax
import jax.numpy as jnp
import pytest

import nurbskit as nrb


# -------------------------------------------------------------------------------------------------------------------- #
# Test curves
# -------------------------------------------------------------------------------------------------------------------- #
P_square = jnp.array([[0.0, 1.0, 1.0, 0.0], [0.0, 0.0, 1.0, 1.0]])

P_wave = jnp.array(
    [
        [0.0, 0.5, 1.5, 2.0, 3.0, 3.5, 4.0],  # x-coordinates
        [0.0, 1.0, 1.2, -0.5, 0.3, 1.0, 0.0],  # y-coordinates
    ]
)

P_space = jnp.array(
    [
        [0.00, 0.30, 0.80, 1.00, 1.20, 1.60],  # x-coordinates
        [0.00, 0.50, 0.60, 0.20, -0.10, 0.30],  # y-coordinates
        [0.00, 0.10, 0.40, 0.50, 0.90, 1.00],  # z-coordinates
    ]
)

# Quarter of the unit circle as a rational quadratic Bezier curve
P_arc = jnp.array([[1.0, 1.0, 0.0], [0.0, 1.0, 1.0]])
W_arc = jnp.array([1.0, math.sqrt(2.0) / 2.0, 1.0])

# Parameters that do not coincide with the knots of the test curves
u_interior = [0.1, 0.3, 0.45, 0.6, 0.9]


def make_arc():
    return nrb.NurbsCurve(P_arc, weights=W_arc, degree=2)


def nested_jacfwd(fun, order):
    for _ in range(order):
        fun = jax.jacfwd(fun)
    return fun


# -------------------------------------------------------------------------------------------------------------------- #
# Position
# -------------------------------------------------------------------------------------------------------------------- #
def test_cubic_square_curve():
    curve = nrb.NurbsCurve(P_square, degree=3)
    np.testing.assert_allclose(curve.knots, [0, 0, 0, 0, 1, 1, 1, 1])
    np.testing.assert_allclose(curve.position(0.0), [0.0, 0.0], atol=1e-14)
    np.testing.assert_allclose(curve.position(1.0), [0.0, 1.0], atol=1e-14)
    np.testing.assert_allclose(curve.position(0.5), [0.75, 0.5], atol=1e-14)


def test_push_built_curve_matches_array_curve():
    curve = nrb.NurbsCurve(degree=3)
    for point in P_square.T:
        curve.push(point)
    np.testing.assert_allclose(curve.position(0.5), [0.75, 0.5], atol=1e-14)


@pytest.mark.parametrize("P, degree", [(P_wave, 3), (P_wave, 2), (P_space, 3), (P_space, 5)])
def test_clamped_curve_interpolates_end_points(P, degree):
    curve = nrb.NurbsCurve(P, degree=degree)
    u_min, u_max = curve.domain
    np.testing.assert_allclose(curve.position(u_min), P[:, 0], atol=1e-14)
    np.testing.assert_allclose(curve.position(u_max), P[:, -1], atol=1e-14)


def test_rational_clamped_curve_interpolates_end_points():
    W = jnp.array([2.0, 0.5, 1.0, 3.0, 0.7, 1.0, 4.0])
    curve = nrb.NurbsCurve(P_wave, weights=W, degree=3)
    np.testing.assert_allclose(curve.position(0.0), P_wave[:, 0], atol=1e-14)
    np.testing.assert_allclose(curve.position(1.0), P_wave[:, -1], atol=1e-14)


def test_clamped_curve_clips_the_parameter():
    curve = nrb.NurbsCurve(P_wave, degree=3)
    np.testing.assert_allclose(curve.position(-0.5), curve.position(0.0), atol=1e-14)
    np.testing.assert_allclose(curve.position(1.5), curve.position(1.0), atol=1e-14)


def test_curve_lies_in_bounding_box_of_control_points():
    curve = nrb.NurbsCurve(P_space, weights=jnp.array([1.0, 2.0, 0.5, 1.0, 3.0, 1.0]), degree=3)
    C = curve.position(jnp.linspace(0.0, 1.0, 101))
    tol = 1e-12
    assert np.all(C >= jnp.min(P_space, axis=1, keepdims=True) - tol)
    assert np.all(C <= jnp.max(P_space, axis=1, keepdims=True) + tol)


def test_position_shapes():
    curve = nrb.NurbsCurve(P_space, degree=3)
    assert curve.position(0.5).shape == (3,)
    assert curve.position(jnp.linspace(0.0, 1.0, 7)).shape == (3, 7)
    assert curve.position([0.2]).shape == (3, 1)


def test_rational_quarter_circle():
    curve = make_arc()
    C = curve.position(jnp.linspace(0.0, 1.0, 21))
    np.testing.assert_allclose(jnp.linalg.norm(C, axis=0), 1.0, atol=1e-14)
    np.testing.assert_allclose(curve.position(0.5), [math.sqrt(0.5), math.sqrt(0.5)], atol=1e-14)


def test_degree_zero_curve_is_piecewise_constant():
    P = jnp.array([[0.0, 1.0, 2.0]])
    curve = nrb.NurbsCurve(P, degree=0)
    np.testing.assert_allclose(curve.position(jnp.array([0.1, 0.4, 0.9, 1.0])), [[0.0, 1.0, 2.0, 2.0]])


# -------------------------------------------------------------------------------------------------------------------- #
# Periodic parametrization
# -------------------------------------------------------------------------------------------------------------------- #
@pytest.mark.parametrize("degree", [1, 2, 3])
def test_non_clamped_curve_is_periodic(degree):
    curve = nrb.NurbsCurve(P_wave, degree=degree, clamped=False)
    u_min, u_max = curve.domain
    width = u_max - u_min
    u = jnp.linspace(0.05, 0.95, 19)
    C = curve.position(u)
    np.testing.assert_allclose(curve.position(u + width), C, atol=1e-12)
    np.testing.assert_allclose(curve.position(u - width), C, atol=1e-12)
    np.testing.assert_allclose(curve.position(u + 3 * width), C, atol=1e-11)


def test_non_clamped_curve_wraps_the_upper_end():
    curve = nrb.NurbsCurve(P_wave, degree=3, clamped=False)
    np.testing.assert_allclose(curve.position(1.0), curve.position(0.0), atol=1e-14)


# -------------------------------------------------------------------------------------------------------------------- #
# Derivatives
# -------------------------------------------------------------------------------------------------------------------- #
@pytest.mark.parametrize("order", [1, 2, 3])
@pytest.mark.parametrize("P", [P_wave, P_space])
def test_derivatives_match_autodiff_for_unit_weights(P, order):
    curve = nrb.NurbsCurve(P, degree=3)
    dC_autodiff = nested_jacfwd(curve.position, order)
    for u in u_interior:
        np.testing.assert_allclose(curve.derivative(u, order), dC_autodiff(u), atol=1e-9)


def test_derivative_of_straight_line():
    curve = nrb.NurbsCurve(jnp.array([[0.0, 3.0], [0.0, 4.0]]), degree=1)
    dC = curve.derivative(jnp.linspace(0.0, 1.0, 5), 1)
    np.testing.assert_allclose(dC, jnp.array([[3.0], [4.0]]) * jnp.ones((1, 5)), atol=1e-14)


def test_derivatives_above_degree_are_zero():
    curve = nrb.NurbsCurve(P_wave, degree=2)
    np.testing.assert_array_equal(curve.derivative(0.3, 3), jnp.zeros(2))
    np.testing.assert_array_equal(curve.derivative(0.3, 7), jnp.zeros(2))


def test_zeroth_derivative_is_position_for_unit_weights():
    curve = nrb.NurbsCurve(P_space, degree=3)
    u = jnp.linspace(0.0, 1.0, 11)
    np.testing.assert_allclose(curve.derivative(u, 0), curve.position(u), atol=1e-14)


def test_derivative_shapes():
    curve = nrb.NurbsCurve(P_space, degree=3)
    assert curve.derivative(0.5).shape == (3,)
    assert curve.derivative(jnp.linspace(0.0, 1.0, 4), 2).shape == (3, 4)


@pytest.mark.parametrize("order", [-1, 1.5, True])
def test_invalid_derivative_order(order):
    curve = nrb.NurbsCurve(P_space, degree=3)
    with pytest.raises(ValueError):
        curve.derivative(0.5, order)


def test_derivative_ignores_weights_of_rational_curves():
    # Known limitation: the direct sum Σ P_i N_i' misses the quotient-rule terms of the weights
    curve = make_arc()
    dC_exact = jax.jacfwd(curve.position)(0.5)
    np.testing.assert_allclose(curve.derivative(0.5), [-1.0, 1.0], atol=1e-14)
    np.testing.assert_allclose(dC_exact, np.array([-1.0, 1.0]) / (0.5 + math.sqrt(2.0) / 4.0), atol=1e-12)
    assert not np.allclose(curve.derivative(0.5), dC_exact, atol=1e-3)


@pytest.mark.parametrize("order", [1, 2, 3])
def test_rational_derivative_matches_autodiff(order):
    W = jnp.array([1.0, 2.0, 0.5, 1.0, 3.0, 1.0])
    curve = nrb.NurbsCurve(P_space, weights=W, degree=3)
    dC_autodiff = nested_jacfwd(curve.position, order)
    for u in u_interior:
        np.testing.assert_allclose(curve.rational_derivative(u, order), dC_autodiff(u), atol=1e-8)


def test_rational_derivative_of_circle_is_tangent():
    curve = make_arc()
    u = jnp.linspace(0.05, 0.95, 10)
    C = curve.position(u)
    dC = curve.rational_derivative(u, 1)
    np.testing.assert_allclose(jnp.sum(C * dC, axis=0), 0.0, atol=1e-13)


def test_rational_derivative_equals_derivative_for_unit_weights():
    curve = nrb.NurbsCurve(P_wave, degree=3)
    u = jnp.array(u_interior)
    for order in range(4):
        np.testing.assert_allclose(curve.rational_derivative(u, order), curve.derivative(u, order), atol=1e-11)


# -------------------------------------------------------------------------------------------------------------------- #
# Invalid curves
# -------------------------------------------------------------------------------------------------------------------- #
def test_degree_higher_than_control_points_fails_fast():
    curve = nrb.NurbsCurve(P_square[:, :3], degree=3)
    with pytest.raises(nrb.ConfigurationError):
        curve.position(0.5)
    with pytest.raises(nrb.ConfigurationError):
        curve.derivative(0.5)


def test_empty_curve_cannot_be_evaluated():
    curve = nrb.NurbsCurve(degree=2, ndim=3)
    with pytest.raises(nrb.ConfigurationError):
        curve.position(0.0)
    with pytest.raises(nrb.ConfigurationError):
        curve.length()


@pytest.mark.parametrize("clamped", [True, False])
def test_zero_width_domain(clamped):
    curve = nrb.NurbsCurve(jnp.array([[0.0, 1.0]]), degree=1, knots=[0.5, 0.5, 0.5, 0.5], clamped=clamped)
    with pytest.raises(nrb.DomainError):
        curve.position(0.5)


def test_zero_weight_is_rejected_at_evaluation():
    curve = nrb.NurbsCurve(P_square, degree=3)
    curve.replace(1, [1.0, 0.0], weight=0.0)
    with pytest.raises(nrb.ConfigurationError, match="weights"):
        curve.position(0.5)


# -------------------------------------------------------------------------------------------------------------------- #
# Arc length
# -------------------------------------------------------------------------------------------------------------------- #
def test_length_of_straight_line():
    curve = nrb.NurbsCurve(jnp.array([[0.0, 3.0], [0.0, 4.0]]), degree=1)
    assert curve.length() == pytest.approx(5.0, abs=1e-12)
    assert curve.length(0.25, 0.75) == pytest.approx(2.5, abs=1e-12)


def test_length_of_uniformly_parametrized_segment():
    # Equispaced collinear control points give a linear parametrization
    curve = nrb.NurbsCurve(jnp.array([[0.0, 1.0, 2.0, 3.0], [0.0, 0.0, 0.0, 0.0]]), degree=3)
    result = curve.integrate_length()
    assert result.converged
    assert result.value == pytest.approx(3.0, abs=1e-12)


def test_total_length_uses_knot_range():
    curve = nrb.NurbsCurve(P_wave, degree=3)
    integrator = nrb.AdaptiveSimpson(accuracy=1e-8, max_depth=12)
    assert curve.length(integrator=integrator) == pytest.approx(curve.length(0.0, 1.0, integrator), abs=1e-14)


def test_length_is_additive():
    curve = nrb.NurbsCurve(P_space, degree=3)
    integrator = nrb.AdaptiveSimpson(accuracy=1e-9, max_depth=15)
    L_ab = curve.length(0.0, 0.3, integrator)
    L_bc = curve.length(0.3, 1.0, integrator)
    L_ac = curve.length(0.0, 1.0, integrator)
    assert L_ab + L_bc == pytest.approx(L_ac, abs=1e-8)


def test_length_is_bounded_by_chord_and_control_polygon():
    curve = nrb.NurbsCurve(P_wave, degree=3)
    L = curve.length()
    chord = float(jnp.linalg.norm(P_wave[:, -1] - P_wave[:, 0]))
    polygon = float(jnp.sum(jnp.linalg.norm(jnp.diff(P_wave, axis=1), axis=0)))
    assert chord < L < polygon


def test_length_with_clenshaw_curtis():
    curve = nrb.NurbsCurve(P_square, degree=3)
    L_simpson = curve.length(integrator=nrb.AdaptiveSimpson(accuracy=1e-10, max_depth=15))
    L_cc = curve.length(integrator=nrb.ClenshawCurtis())
    assert L_cc == pytest.approx(L_simpson, rel=1e-7)


def test_length_reports_best_effort_result():
    curve = nrb.NurbsCurve(P_wave, degree=3)
    result = curve.integrate_length(integrator=nrb.AdaptiveSimpson(accuracy=1e-15, max_depth=1))
    assert isinstance(result, nrb.IntegrationResult)
    assert not result.converged
    assert result.n_evaluations <= 2 ** 3 + 1
    assert result.value == pytest.approx(curve.length(), rel=5e-2)


# -------------------------------------------------------------------------------------------------------------------- #
# Parametric curve capability
# -------------------------------------------------------------------------------------------------------------------- #
def test_nurbs_curve_is_a_parametric_curve():
    assert isinstance(nrb.NurbsCurve(P_square), nrb.ParametricCurve)


def test_speed_is_norm_of_first_derivative():
    curve = nrb.NurbsCurve(P_space, degree=3)
    u = jnp.linspace(0.0, 1.0, 9)
    np.testing.assert_allclose(curve.speed(u), jnp.linalg.norm(curve.derivative(u, 1), axis=0), atol=1e-14)
    assert curve.speed(0.5).shape == ()


def test_null_curve():
    curve = nrb.NullCurve(ndim=3)
    np.testing.assert_array_equal(curve.position(0.7), jnp.zeros(3))
    np.testing.assert_array_equal(curve.derivative(jnp.linspace(0.0, 1.0, 4), 2), jnp.zeros((3, 4)))
    assert curve.length(0.0, 1.0) == 0.0
    assert curve.integrate_length(0.0, 1.0).converged


def test_parametric_curve_cannot_be_instantiated():
    with pytest.raises(TypeError):
        nrb.ParametricCurve()


def test_end_knot_multiplicity_above_degree_is_rejected():
    curve = nrb.NurbsCurve(P_square, degree=2, knots=[0.0, 0.0, 0.0, 1.0, 1.0, 1.0, 1.0])
    with pytest.raises(nrb.ConfigurationError):
        curve.position(1.0)
