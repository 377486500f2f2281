import numpy as np
import jax.numpy as jnp

from .exceptions import ConfigurationError, DomainError

__all__ = ["compute_uniform_knot_vector", "check_nurbs_configuration"]


# -------------------------------------------------------------------------------------------------------------------- #
# Knot vector generation
# -------------------------------------------------------------------------------------------------------------------- #
def compute_uniform_knot_vector(n_points, p, clamped=True):
    """
    Compute a uniform knot vector for a curve with `n_points` control points and degree `p`.

    Parameters
    ----------
    n_points : int
        Number of control points of the curve (n+1 in The NURBS Book notation).
    p : int
        Degree of the basis polynomials.
    clamped : bool
        If True, the first and last `p+1` knots are set to 0 and 1 and the interior knots
        are equispaced across the `n_points-p` knot spans. The curve interpolates the end
        control points.
        If False, all the knots are equispaced in [0, 1] and the curve parametrization is
        periodic (the parameter wraps around the knot range).

    Returns
    -------
    U : ndarray with shape (n_points+p+1,)
        The knot vector.

    Notes
    -----
    When there are fewer than `p+1` control points the clamped knot vector is still
    generated (first `p+1` knots at 0, the remaining at 1) so that the curve can be
    built incrementally. Such a curve cannot be evaluated until enough points are added.
    """
    if p < 0:
        raise ConfigurationError(f"The degree must be non-negative, got {p}")

    n_knots = n_points + p + 1

    if not clamped:
        # Dividing by (n_knots-1) spreads the knots across the whole index range
        return jnp.arange(n_knots) / max(n_knots - 1, 1)

    if n_points >= p + 1:
        # p zeros, n_points-p+1 equispaced points between 0 and 1, and p ones
        return jnp.concatenate(
            (jnp.zeros(p), jnp.linspace(0.0, 1.0, n_points - p + 1), jnp.ones(p))
        )

    n_zeros = min(p + 1, n_knots)
    return jnp.concatenate((jnp.zeros(n_zeros), jnp.ones(n_knots - n_zeros)))


# -------------------------------------------------------------------------------------------------------------------- #
# Validation of curve definitions
# -------------------------------------------------------------------------------------------------------------------- #
def check_nurbs_configuration(P, W, p, U):
    """
    Check that control points, weights, degree and knots define an evaluable curve.

    The checks are performed on concrete values before any knot or control point is
    indexed, so an inconsistent curve fails with an exception instead of reading out of
    bounds.

    Parameters
    ----------
    P : ndarray with shape (ndim, n+1)
        Control point coordinates.
    W : ndarray with shape (n+1,)
        Control point weights.
    p : int
        Degree of the basis polynomials.
    U : ndarray with shape (n+p+2,)
        Knot vector.

    Raises
    ------
    ConfigurationError
        If the degree, number of control points, weights or knots are inconsistent, or if a
        knot is repeated more than p+1 times at the ends of the valid parameter range.
    DomainError
        If the knot vector spans a parameter domain of zero width.
    """
    P = np.asarray(P)
    W = np.asarray(W)
    U = np.asarray(U)

    if P.ndim != 2:
        raise ConfigurationError("control_points must have shape (ndim, n+1)")
    n_points = P.shape[1]

    if p < 0:
        raise ConfigurationError(f"The degree must be non-negative, got {p}")
    if n_points < p + 1:
        raise ConfigurationError(
            f"A curve of degree {p} needs at least {p + 1} control points, got {n_points}"
        )

    if W.shape != (n_points,):
        raise ConfigurationError(
            f"Mismatch between number of control points ({n_points}) and weights {W.shape}"
        )
    if not np.all(np.isfinite(W)) or np.any(W == 0.0):
        raise ConfigurationError("The weights must be finite and different from zero")

    if U.ndim != 1 or U.size == 0:
        raise ConfigurationError("The knot vector must be a non-empty 1D array")
    if U.size != n_points + p + 1:
        raise ConfigurationError(
            f"Knot vector length {U.size} does not match n+p+1={n_points + p + 1}"
        )
    if np.any(np.diff(U) < 0.0):
        raise ConfigurationError("The knot vector must be non-decreasing")

    if U[-1] == U[0]:
        raise DomainError(f"The knot vector spans a zero-width domain [{U[0]}, {U[-1]}]")
    if U[p] == U[n_points]:
        raise DomainError(
            f"The valid parameter range [U[p], U[n+1]] = [{U[p]}, {U[n_points]}] is empty"
        )
    if U[p] == U[p + 1] or U[n_points - 1] == U[n_points]:
        raise ConfigurationError(
            "The first and last knot spans of the valid parameter range must be non-empty "
            f"(a knot is repeated more than p+1={p + 1} times at the ends)"
        )
