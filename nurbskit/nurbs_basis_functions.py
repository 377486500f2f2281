import jax
import jax.numpy as jnp

__all__ = [
    "adjust_parameter",
    "find_span",
    "compute_nonzero_basis_polynomials",
    "compute_nonzero_basis_polynomials_derivatives",
    "compute_basis_polynomials",
    "compute_basis_polynomials_derivatives",
]


# -------------------------------------------------------------------------------------------------------------------- #
# Parameter handling
# -------------------------------------------------------------------------------------------------------------------- #
def adjust_parameter(u, U, clamped):
    """
    Map the parameter `u` into the domain [U[0], U[-1]] of the knot vector.

    Parameters
    ----------
    u : scalar or ndarray (N,)
        Parametric coordinates.
    U : ndarray
        Knot vector.
    clamped : bool
        If True, `u` is clipped into [U[0], U[-1]].
        If False, `u` is wrapped into [U[0], U[-1]) by adding or subtracting the width of
        the domain as many times as needed (periodic parametrization).

    Returns
    -------
    u : ndarray
        Parametric coordinates inside the curve domain, same shape as the input.
    """
    u = jnp.asarray(u, dtype=U.dtype)
    u_min, u_max = U[0], U[-1]

    if clamped:
        return jnp.clip(u, u_min, u_max)

    width = u_max - u_min
    u_wrapped = u_min + jnp.mod(u - u_min, width)

    # Rounding in `mod` can land exactly on the upper end for tiny negative offsets
    return jnp.where(u_wrapped >= u_max, u_wrapped - width, u_wrapped)

adjust_parameter = jax.jit(adjust_parameter, static_argnames=("clamped",))


def find_span(n, p, U, u):
    """
    Determine the knot span index of the parameter values `u`.

    Binary search over the knot vector (Algorithm A2.1 in The NURBS Book) restricted to the
    spans [p, n]. Parameters on or below U[p] are assigned to span `p` and parameters on or
    above U[n+1] are assigned to span `n`, so the returned index always addresses `p+1`
    existing control points.

    Parameters
    ----------
    n : int
        Highest index of the control points (number of control points = n+1).
    p : int
        Degree of the basis polynomials.
    U : ndarray (n+p+2,)
        Knot vector.
    u : scalar or ndarray (N,)
        Parametric coordinates.

    Returns
    -------
    span : ndarray of int with shape (N,)
        Index `i` of the knot span such that U[i] <= u < U[i+1].
    """
    u = jnp.atleast_1d(jnp.asarray(u, dtype=U.dtype))
    span = jnp.searchsorted(U, u, side="right") - 1
    span = jnp.where(u <= U[p], p, span)
    span = jnp.where(u >= U[n + 1], n, span)
    return jnp.clip(span, p, n)

find_span = jax.jit(find_span, static_argnames=("n", "p"))


# -------------------------------------------------------------------------------------------------------------------- #
# Nonzero basis functions and derivatives within a knot span
# -------------------------------------------------------------------------------------------------------------------- #
def compute_nonzero_basis_polynomials(span, p, U, u):
    """
    Evaluate the `p+1` basis functions of degree `p` that are nonzero on the knot span.

    Implements the triangular Cox-de Boor recurrence of Algorithm A2.2 in The NURBS Book.
    The computations are vectorized over the parameter values.

    Parameters
    ----------
    span : ndarray of int (N,)
        Knot span index of each parameter value (see `find_span`).
    p : int
        Degree of the basis polynomials.
    U : ndarray
        Knot vector.
    u : scalar or ndarray (N,)
        Parametric coordinates.

    Returns
    -------
    N : ndarray of shape (p+1, N)
        N[j, :] contains the values of the basis function N_{span-p+j, p}.
    """
    u = jnp.atleast_1d(jnp.asarray(u, dtype=U.dtype))
    N = jnp.zeros((p + 1,) + u.shape, dtype=u.dtype)
    N = N.at[0].set(1.0)
    left = jnp.zeros_like(N)
    right = jnp.zeros_like(N)

    for j in range(1, p + 1):
        left = left.at[j].set(u - U[span + 1 - j])
        right = right.at[j].set(U[span + j] - u)
        saved = jnp.zeros_like(u)
        for r in range(j):
            temp = N[r] / (right[r + 1] + left[j - r])
            N = N.at[r].set(saved + right[r + 1] * temp)
            saved = left[j - r] * temp
        N = N.at[j].set(saved)

    return N

compute_nonzero_basis_polynomials = jax.jit(
    compute_nonzero_basis_polynomials,
    static_argnames=("p",),
)


def compute_nonzero_basis_polynomials_derivatives(span, p, U, u, up_to_order):
    """
    Evaluate the derivatives of the nonzero basis functions on the knot span.

    Implements Algorithm A2.3 in The NURBS Book. The basis values and the knot differences
    are stored in the triangular table `ndu`, the derivative coefficients are computed
    row by row from the finite differences of the previous order, and the derivative of
    order `k` is finally scaled by the falling factorial p(p-1)...(p-k+1).

    Parameters
    ----------
    span : ndarray of int (N,)
        Knot span index of each parameter value (see `find_span`).
    p : int
        Degree of the basis polynomials.
    U : ndarray
        Knot vector.
    u : scalar or ndarray (N,)
        Parametric coordinates.
    up_to_order : int
        Highest derivative order to compute. Orders above `p` are identically zero.

    Returns
    -------
    ders : ndarray of shape (up_to_order+1, p+1, N)
        ders[k, j, :] is the k-th derivative of the basis function N_{span-p+j, p}.
    """
    u = jnp.atleast_1d(jnp.asarray(u, dtype=U.dtype))
    n_ders = min(up_to_order, p)

    # Basis functions (upper triangle) and knot differences (lower triangle)
    ndu = jnp.zeros((p + 1, p + 1) + u.shape, dtype=u.dtype)
    ndu = ndu.at[0, 0].set(1.0)
    left = jnp.zeros((p + 1,) + u.shape, dtype=u.dtype)
    right = jnp.zeros_like(left)

    for j in range(1, p + 1):
        left = left.at[j].set(u - U[span + 1 - j])
        right = right.at[j].set(U[span + j] - u)
        saved = jnp.zeros_like(u)
        for r in range(j):
            ndu = ndu.at[j, r].set(right[r + 1] + left[j - r])
            temp = ndu[r, j - 1] / ndu[j, r]
            ndu = ndu.at[r, j].set(saved + right[r + 1] * temp)
            saved = left[j - r] * temp
        ndu = ndu.at[j, j].set(saved)

    ders = jnp.zeros((up_to_order + 1, p + 1) + u.shape, dtype=u.dtype)
    ders = ders.at[0].set(ndu[:, p])

    for r in range(p + 1):
        # Two alternating rows of derivative coefficients
        a = jnp.zeros((2, p + 1) + u.shape, dtype=u.dtype)
        a = a.at[0, 0].set(1.0)
        s1, s2 = 0, 1
        for k in range(1, n_ders + 1):
            d = jnp.zeros_like(u)
            rk, pk = r - k, p - k
            if r >= k:
                a = a.at[s2, 0].set(a[s1, 0] / ndu[pk + 1, rk])
                d = a[s2, 0] * ndu[rk, pk]
            j1 = 1 if rk >= -1 else -rk
            j2 = k - 1 if r - 1 <= pk else p - r
            for j in range(j1, j2 + 1):
                a = a.at[s2, j].set((a[s1, j] - a[s1, j - 1]) / ndu[pk + 1, rk + j])
                d = d + a[s2, j] * ndu[rk + j, pk]
            if r <= pk:
                a = a.at[s2, k].set(-a[s1, k - 1] / ndu[pk + 1, r])
                d = d + a[s2, k] * ndu[r, pk]
            ders = ders.at[k, r].set(d)
            s1, s2 = s2, s1

    # Multiply through by the falling factorial p(p-1)...(p-k+1)
    factor = p
    for k in range(1, n_ders + 1):
        ders = ders.at[k].multiply(factor)
        factor *= p - k

    return ders

compute_nonzero_basis_polynomials_derivatives = jax.jit(
    compute_nonzero_basis_polynomials_derivatives,
    static_argnames=("p", "up_to_order"),
)


# -------------------------------------------------------------------------------------------------------------------- #
# Full set of basis functions
# -------------------------------------------------------------------------------------------------------------------- #
def _scatter_to_full_basis(n, p, span, values):
    """Place the (p+1, N) nonzero values into a zero-initialized (n+1, N) array."""
    rows = span[None, :] - p + jnp.arange(p + 1)[:, None]
    cols = jnp.broadcast_to(jnp.arange(span.shape[0])[None, :], rows.shape)
    full = jnp.zeros((n + 1, span.shape[0]), dtype=values.dtype)
    return full.at[rows, cols].set(values)


def compute_basis_polynomials(n, p, U, u):
    """
    Evaluate all the B-spline basis functions of degree `p` for a set of parameter values `u`.

    Parameters
    ----------
    n : int
        Highest index of the basis functions (number of functions = n+1).
    p : int
        Degree of the basis polynomials.
    U : array_like
        Knot vector of length n+p+2 defining the B-spline basis.
    u : float or array_like
        Scalar or array of parameter values where the basis functions are evaluated.

    Returns
    -------
    N : ndarray of shape (n+1, Nu)
        Array containing all basis functions evaluated at each u value.
        The first axis spans the basis index i, the second spans the parameter samples.
    """
    U = jnp.asarray(U, dtype=float)
    u = jnp.atleast_1d(jnp.asarray(u, dtype=U.dtype))
    span = find_span(n, p, U, u)
    N = compute_nonzero_basis_polynomials(span, p, U, u)
    return _scatter_to_full_basis(n, p, span, N)

compute_basis_polynomials = jax.jit(
    compute_basis_polynomials,
    static_argnames=("n", "p"),
)


def compute_basis_polynomials_derivatives(n, p, U, u, derivative_order):
    """
    Evaluate the derivative of order `derivative_order` of all the basis functions.

    Returns
    -------
    N_ders : ndarray of shape (n+1, Nu)
        Derivative of each basis function at all u-values (zero for orders above `p`).
    """
    U = jnp.asarray(U, dtype=float)
    u = jnp.atleast_1d(jnp.asarray(u, dtype=U.dtype))
    span = find_span(n, p, U, u)
    ders = compute_nonzero_basis_polynomials_derivatives(span, p, U, u, derivative_order)
    return _scatter_to_full_basis(n, p, span, ders[derivative_order])

compute_basis_polynomials_derivatives = jax.jit(
    compute_basis_polynomials_derivatives,
    static_argnames=("n", "p", "derivative_order"),
)
