import logging
import numbers
import threading
from math import comb

import jax
import jax.numpy as jnp
import equinox as eqx

from .exceptions import ConfigurationError
from .knot_vectors import check_nurbs_configuration, compute_uniform_knot_vector
from .nurbs_basis_functions import (
    adjust_parameter,
    find_span,
    compute_nonzero_basis_polynomials,
    compute_nonzero_basis_polynomials_derivatives,
)
from .parametric_curve import ParametricCurve

logger = logging.getLogger(__name__)

__all__ = [
    "compute_nurbs_coordinates",
    "compute_bspline_derivatives",
    "compute_all_nurbs_derivatives",
    "SplineData",
    "NurbsCurve",
]


def _is_integer(value):
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _check_degree(degree):
    if not _is_integer(degree) or degree < 0:
        raise ConfigurationError(f"The degree must be a non-negative integer, got {degree!r}")
    return int(degree)


def _influence_indices(span, p):
    """Indices (p+1, N) of the control points that influence each knot span."""
    return span[None, :] - p + jnp.arange(p + 1)[:, None]


# ----------------------------------------------------------- #
# Standalone functions to compute values
# ----------------------------------------------------------- #
def compute_nurbs_coordinates(P, W, p, U, u):
    """
    Evaluate the coordinates of a NURBS (Non-Uniform Rational B-Spline) curve for a given parameter `u`.

    This function computes the coordinates of the NURBS curve in *homogeneous space* using
    the nonzero B-spline basis functions of the knot span and the control point weights
    (Equation 4.5 in The NURBS Book), and then maps them back to ordinary space via the
    rational perspective division (Equation 1.16).
    The implementation corresponds to Algorithm A4.1 from The NURBS Book.

    Parameters
    ----------
    P : ndarray (ndim, n+1)
        Array of control point coordinates.
        The first dimension spans spatial coordinates `(x, y, z, ...)`,
        and the second spans the control points along the curve `(0, 1, ..., n)`.

    W : ndarray (n+1,)
        Weights associated with each control point.

    p : int
        Degree of the B-spline basis functions.

    U : ndarray (r+1 = n + p + 2,)
        Knot vector.

    u : scalar or ndarray (N,)
        Parametric coordinate(s) at which to evaluate the curve. They must already lie in
        the curve domain (see `adjust_parameter`).

    Returns
    -------
    C : ndarray (ndim, N)
        Coordinates of the evaluated curve points.

    Notes
    -----
    - Only the p+1 control points of the knot span contribute to each point, so the
      result lies in the convex hull of those control points (for positive weights).
    - On a clamped knot vector the curve interpolates the first and last control points.
    """
    # Highest index of the control points (counting from zero)
    n = P.shape[1] - 1
    u = jnp.atleast_1d(jnp.asarray(u, dtype=U.dtype))

    # Locate the knot span and evaluate the nonzero basis functions N_{span-p+j,p}(u)
    span = find_span(n, p, U, u)
    N_basis = compute_nonzero_basis_polynomials(span, p, U, u)

    # Map control points to homogeneous space: P_w = (x*w, y*w, z*w, w)
    P_w = jnp.concatenate((P * W[None, :], W[None, :]), axis=0)

    # Evaluate the curve in homogeneous space: C_w = Σ_j N_{span-p+j,p}(u) * P_w[span-p+j]
    idx = _influence_indices(span, p)
    C_w = jnp.sum(P_w[:, idx] * N_basis[None, :, :], axis=1)

    # Project back to Euclidean space: (x, y, z) = (x*w, y*w, z*w) / w
    return C_w[:-1, :] / C_w[-1:, :]

compute_nurbs_coordinates = jax.jit(compute_nurbs_coordinates, static_argnames=("p",))


# ----------------------------------------------------------- #
# Standalone functions to compute derivatives
# ----------------------------------------------------------- #
def compute_bspline_derivatives(P, p, U, u, up_to_order):
    """
    Compute the derivatives of a polynomial B-spline curve up to a specified order.

    For each derivative order `k` the derivative of the curve is given by

        C^(k)(u) = Σ_i P_i * d^k N_{i,p}(u) / du^k

    (Algorithm A3.2 in The NURBS Book). Derivatives of order higher than `p` are zero.

    Parameters
    ----------
    P : ndarray (ndim, n+1)
        Control point coordinates.
    p : int
        Degree of the B-spline.
    U : ndarray (n+p+2,)
        Knot vector.
    u : scalar or ndarray (Nu,)
        Parametric evaluation points, already inside the curve domain.
    up_to_order : int
        Maximum derivative order to compute.

    Returns
    -------
    bspline_derivatives : ndarray (up_to_order+1, ndim, Nu)
        Derivatives of the B-spline curve, where
        `bspline_derivatives[k, :, :] = d^k C(u) / du^k`.

    Notes
    -----
    The weights do not enter this sum. For a rational curve with non-unit weights the
    result is not the derivative of `compute_nurbs_coordinates`; use
    `compute_all_nurbs_derivatives` for the exact rational derivatives.
    """
    n = P.shape[1] - 1
    u = jnp.atleast_1d(jnp.asarray(u, dtype=U.dtype))

    span = find_span(n, p, U, u)
    ders = compute_nonzero_basis_polynomials_derivatives(span, p, U, u, up_to_order)

    # P_span has shape (ndim, p+1, Nu) and ders has shape (up_to_order+1, p+1, Nu)
    P_span = P[:, _influence_indices(span, p)]
    return jnp.sum(P_span[None, :, :, :] * ders[:, None, :, :], axis=2)

compute_bspline_derivatives = jax.jit(
    compute_bspline_derivatives,
    static_argnames=("p", "up_to_order"),
)


def compute_all_nurbs_derivatives(P, W, p, U, u, up_to_order):
    """
    Compute all analytic derivatives of a NURBS curve up to a specified order.

    This function extends the polynomial B-spline derivative computation
    to rational NURBS curves by applying the quotient rule recursively,
    following Algorithm A4.2 from The NURBS Book (Piegl & Tiller, 2nd ed.):

        C^(k) = (A^(k) - Σ_{i=1}^{k} binomial(k, i) w^(i) C^(k-i)) / w

    where A and w are the coordinates and the weight of the curve in homogeneous space.

    Parameters
    ----------
    P : ndarray (ndim, n+1)
        Control point coordinates.

    W : ndarray (n+1,)
        Control point weights.

    p : int
        Degree of the NURBS.

    U : ndarray (n+p+2,)
        Knot vector.

    u : scalar or ndarray (Nu,)
        Parametric evaluation points, already inside the curve domain.

    up_to_order : int
        Maximum derivative order to compute. Rational curves can have nonzero derivatives
        of order higher than `p`.

    Returns
    -------
    nurbs_derivatives : ndarray (up_to_order+1, ndim, Nu)
        Derivatives of the NURBS curve

    """
    # Map control points to homogeneous coordinates: P_w = (x*w, y*w, z*w, w)
    P_w = jnp.concatenate((P * W[None, :], W[None, :]), axis=0)

    # Compute all B-spline derivatives in homogeneous space → (up_to_order+1, ndim+1, Nu)
    bspline_derivatives = compute_bspline_derivatives(P_w, p, U, u, up_to_order)

    # Split spatial and weight components
    A_ders = bspline_derivatives[:, :-1, :]
    w_ders = bspline_derivatives[:, -1:, :]

    # Zeroth derivative: C(u) = A0 / w0
    nurbs_derivatives = [A_ders[0] / w_ders[0]]

    # Recursive computation for higher-order derivatives (Algorithm A4.2)
    for order in range(1, up_to_order + 1):
        temp_num = A_ders[order]
        for i in range(1, order + 1):
            temp_num = temp_num - comb(order, i) * w_ders[i] * nurbs_derivatives[order - i]
        nurbs_derivatives.append(temp_num / w_ders[0])

    return jnp.stack(nurbs_derivatives)

compute_all_nurbs_derivatives = jax.jit(
    compute_all_nurbs_derivatives,
    static_argnames=("p", "up_to_order"),
)


# ----------------------------------------------------------- #
# Curve definition snapshot
# ----------------------------------------------------------- #
class SplineData(eqx.Module):
    """Immutable snapshot of the definition of a spline curve

    Every mutation of a `NurbsCurve` builds a new snapshot, and every evaluation reads a
    single snapshot, so a query never mixes control points and knots from different states.
    """

    P: jnp.ndarray  # (ndim, n+1)
    W: jnp.ndarray  # (n+1,)
    p: int = eqx.field(static=True)
    U: jnp.ndarray  # (n+p+2,)
    uniform: bool = eqx.field(static=True)
    clamped: bool = eqx.field(static=True)


# ----------------------------------------------------------- #
# Main NURBS curve class
# ----------------------------------------------------------- #
class NurbsCurve(ParametricCurve):
    """Create a NURBS (Non-Uniform Rational Basis Spline) curve object

    Parameters
    ----------
    control_points : ndarray with shape (ndim, n+1), optional
        Array containing the coordinates of the control points
        The first dimension of `P` spans the coordinates of the control points (any number of dimensions)
        The second dimension of `P` spans the u-direction control points (0,1,...,n)
        If omitted, the curve starts empty and is filled with `push`

    weights : ndarray with shape (n+1,), optional
        Array containing the weight of the control points. Defaults to unit weights

    degree : int
        Degree of the basis polynomials

    knots : ndarray with shape (r+1=n+p+2,), optional
        User-defined knot vector. If given, the curve is non-uniform and its knots are only
        changed by `set_knots`. If omitted, a uniform knot vector is generated and kept up to
        date when control points are added or removed

    clamped : bool
        Clamped curves interpolate their end control points and clip the parameter into the
        knot range. Non-clamped curves wrap the parameter around the knot range (periodic
        parametrization)

    ndim : int, optional
        Number of spatial dimensions of an empty curve. If omitted, it is taken from the
        first point pushed

    Notes
    -----
    The curve is mutable: control points can be appended, inserted, erased and replaced,
    and the degree and knot-vector flags can be changed. Inconsistent definitions are
    accepted while the curve is being edited and are reported with `ConfigurationError`
    or `DomainError` when the curve is evaluated.

    `derivative` computes Σ P_i N_i^(k)(u), which ignores the weights. It is exact for
    unit-weight curves only. `rational_derivative` applies the quotient rule and is exact
    for any weights.

    Mutations are serialized by a lock and never affect evaluations already in progress.
    Use `copy()` to keep a frozen version of the curve while it is being edited.

    References
    ----------
    The NURBS Book. See references to equations and algorithms throughout the code
    L. Piegl and W. Tiller
    Springer, second edition

    Curves and Surfaces for CADGD. See references to equations the source code
    G. Farin
    Morgan Kaufmann Publishers, fifth edition

    """

    def __init__(self, control_points=None, weights=None, degree=3, knots=None, clamped=True, ndim=None):

        # Void initialization
        if control_points is None:
            P = jnp.zeros((0 if ndim is None else ndim, 0))
        else:
            P = jnp.asarray(control_points, dtype=float)
            if P.ndim != 2:
                raise ConfigurationError("control_points must have shape (ndim, n+1)")
            if ndim is not None and P.shape[0] != ndim:
                raise ConfigurationError(f"control_points must have {ndim} coordinates, got {P.shape[0]}")

        n_points = P.shape[1]
        if weights is None:
            W = jnp.ones((n_points,), dtype=P.dtype)
        else:
            W = jnp.asarray(weights, dtype=P.dtype)
            if W.shape != (n_points,):
                raise ConfigurationError("Mismatch between number of control points and weights")

        degree = _check_degree(degree)

        uniform = knots is None
        if uniform:
            U = compute_uniform_knot_vector(n_points, degree, clamped)
        else:
            U = jnp.asarray(knots, dtype=float)

        self._lock = threading.RLock()
        self._data = SplineData(P, W, degree, U, uniform, bool(clamped))

    @classmethod
    def _from_data(cls, data):
        curve = cls.__new__(cls)
        curve._lock = threading.RLock()
        curve._data = data
        return curve

    def copy(self):
        """Return an independent curve with the same definition"""
        return self._from_data(self._data)

    def __repr__(self):
        data = self._data
        return (
            f"{type(self).__name__}(ndim={data.P.shape[0]}, degree={data.p}, "
            f"n_control_points={data.P.shape[1]}, uniform={data.uniform}, clamped={data.clamped})"
        )

    # ---------------------------------------------------------------------------------------------------------------- #
    # Curve definition
    # ---------------------------------------------------------------------------------------------------------------- #
    @property
    def control_points(self):
        return self._data.P

    @property
    def weights(self):
        return self._data.W

    @property
    def knots(self):
        return self._data.U

    @property
    def ndim(self):
        return self._data.P.shape[0]

    @property
    def n_control_points(self):
        return self._data.P.shape[1]

    @property
    def is_rational(self):
        return bool(jnp.any(self._data.W != 1.0))

    @property
    def domain(self):
        """Parameter range (U[0], U[-1]) covered by the knot vector"""
        U = self._data.U
        if U.size == 0:
            raise ConfigurationError("The knot vector is empty")
        return float(U[0]), float(U[-1])

    @property
    def degree(self):
        return self._data.p

    @degree.setter
    def degree(self, degree):
        degree = _check_degree(degree)
        with self._lock:
            self._update(p=degree)

    @property
    def uniform(self):
        return self._data.uniform

    @uniform.setter
    def uniform(self, uniform):
        with self._lock:
            self._update(uniform=bool(uniform))

    @property
    def clamped(self):
        return self._data.clamped

    @clamped.setter
    def clamped(self, clamped):
        with self._lock:
            self._update(clamped=bool(clamped))

    def _update(self, regenerate=True, **changes):
        """Install a new snapshot, regenerating the knots of uniform curves"""
        data = self._data
        fields = dict(P=data.P, W=data.W, p=data.p, U=data.U, uniform=data.uniform, clamped=data.clamped)
        fields.update(changes)

        if regenerate and fields["uniform"]:
            fields["U"] = compute_uniform_knot_vector(fields["P"].shape[1], fields["p"], fields["clamped"])
            logger.debug(
                "Regenerated %s knot vector with %d knots (degree %d, %d control points)",
                "clamped" if fields["clamped"] else "periodic",
                fields["U"].shape[0], fields["p"], fields["P"].shape[1],
            )

        self._data = SplineData(**fields)

    def _as_point(self, point, P):
        """Convert `point` to a coordinate array compatible with the control points `P`"""
        point = jnp.ravel(jnp.asarray(point, dtype=float))
        if P.shape[1] == 0 and P.shape[0] == 0:
            return point, jnp.zeros((point.shape[0], 0))
        if point.shape[0] != P.shape[0]:
            raise ConfigurationError(f"Expected a point with {P.shape[0]} coordinates, got {point.shape[0]}")
        return point, P

    def push(self, point, weight=1.0):
        """Append a control point at the end of the curve"""
        with self._lock:
            self.insert(self.n_control_points, point, weight)

    def insert(self, index, point, weight=1.0):
        """Insert a control point before position `index`"""
        with self._lock:
            data = self._data
            size = data.P.shape[1]
            if not _is_integer(index):
                raise TypeError(f"Control point indices must be integers, got {index!r}")
            if not -size <= index <= size:
                raise IndexError(f"Insertion index {index} out of range for {size} control points")
            if index < 0:
                index += size
            point, P = self._as_point(point, data.P)
            W = data.W
            self._update(
                P=jnp.concatenate((P[:, :index], point[:, None], P[:, index:]), axis=1),
                W=jnp.concatenate((W[:index], jnp.full((1,), weight, dtype=W.dtype), W[index:])),
            )

    def erase(self, index):
        """Remove the control point at position `index`"""
        with self._lock:
            data = self._data
            index = self._check_index(index, data.P.shape[1])
            self._update(
                P=jnp.delete(data.P, index, axis=1),
                W=jnp.delete(data.W, index),
            )

    def replace(self, index, point, weight=1.0):
        """Overwrite the control point at position `index`, keeping the knot vector"""
        with self._lock:
            data = self._data
            index = self._check_index(index, data.P.shape[1])
            point, P = self._as_point(point, data.P)
            self._update(
                regenerate=False,
                P=P.at[:, index].set(point),
                W=data.W.at[index].set(weight),
            )

    @staticmethod
    def _check_index(index, size):
        if not _is_integer(index):
            raise TypeError(f"Control point indices must be integers, got {index!r}")
        if not -size <= index < size:
            raise IndexError(f"Control point index {index} out of range for {size} control points")
        return index % size

    def set_control_points(self, control_points, weights=None):
        """Replace all the control points (and weights) of the curve"""
        P = jnp.asarray(control_points, dtype=float)
        if P.ndim != 2:
            raise ConfigurationError("control_points must have shape (ndim, n+1)")
        W = jnp.ones((P.shape[1],), dtype=P.dtype) if weights is None else jnp.asarray(weights, dtype=P.dtype)
        if W.shape != (P.shape[1],):
            raise ConfigurationError("Mismatch between number of control points and weights")
        with self._lock:
            self._update(P=P, W=W)

    def set_knots(self, knots):
        """Install a user-defined knot vector and make the curve non-uniform"""
        with self._lock:
            self._update(regenerate=False, U=jnp.asarray(knots, dtype=float), uniform=False)

    # ---------------------------------------------------------------------------------------------------------------- #
    # Define functions to compute NURBS properties
    # ---------------------------------------------------------------------------------------------------------------- #
    def _evaluable_data(self):
        data = self._data
        check_nurbs_configuration(data.P, data.W, data.p, data.U)
        return data

    @staticmethod
    def _check_order(order):
        if not _is_integer(order) or order < 0:
            raise ValueError(f"The derivative order must be a non-negative integer, got {order!r}")
        return int(order)

    def position(self, u):
        """Evaluate the coordinates of the curve for the input `u` parametrization

        Parameters
        ----------
        u : scalar or ndarray with shape (N,)
            Parameter used to evaluate the curve. Clamped curves clip it into the knot range
            and periodic curves wrap it around the knot range

        Returns
        -------
        C : ndarray with shape (ndim,) or (ndim, N)
            Array containing the coordinates of the curve
            The first dimension of `C` spans the `(x,y,z)` coordinates
            The second dimension of `C` (array input only) spans the `u` sample points

        """
        data = self._evaluable_data()
        u_adjusted = adjust_parameter(u, data.U, data.clamped)
        C = compute_nurbs_coordinates(data.P, data.W, data.p, data.U, u_adjusted)
        return C[:, 0] if jnp.ndim(u) == 0 else C

    def derivative(self, u, order=1):
        """Evaluate the derivative of the curve for the input u-parametrization

        The derivative is computed as Σ P_i N_i^(k)(u), without the quotient-rule terms of
        the weights. It is the exact derivative of the curve only when all the weights are
        equal to one; see `rational_derivative` for rational curves

        Parameters
        ----------
        u : scalar or ndarray with shape (N,)
            Scalar or array containing the u-parameter used to evaluate the curve

        order : integer
            Order of the derivative. Orders above the degree give zero

        Returns
        -------
        dC : ndarray with shape (ndim,) or (ndim, N)
            Array containing the derivative of the desired order

        """
        order = self._check_order(order)
        data = self._evaluable_data()
        u_adjusted = adjust_parameter(u, data.U, data.clamped)
        dC = compute_bspline_derivatives(data.P, data.p, data.U, u_adjusted, order)[order]
        return dC[:, 0] if jnp.ndim(u) == 0 else dC

    def rational_derivative(self, u, order=1):
        """Evaluate the exact derivative of the rational curve (quotient rule, Algorithm A4.2)"""
        order = self._check_order(order)
        data = self._evaluable_data()
        u_adjusted = adjust_parameter(u, data.U, data.clamped)
        dC = compute_all_nurbs_derivatives(data.P, data.W, data.p, data.U, u_adjusted, order)[order]
        return dC[:, 0] if jnp.ndim(u) == 0 else dC

    def integrate_length(self, u1=None, u2=None, integrator=None):
        """Integrate the speed over [u1, u2], by default over the whole knot range

        All the integrand evaluations read the snapshot taken when the call starts, so
        mutations made while the integration runs do not affect the result

        """
        data = self._evaluable_data()
        u_min, u_max = float(data.U[0]), float(data.U[-1])
        u1 = u_min if u1 is None else u1
        u2 = u_max if u2 is None else u2
        return ParametricCurve.integrate_length(self._from_data(data), u1, u2, integrator)

    def length(self, u1=None, u2=None, integrator=None):
        """Compute the arc length of the curve in the interval [u1, u2]

        The limits default to the first and last knots, so `length()` is the total arc
        length of the curve

        """
        return self.integrate_length(u1, u2, integrator).value
