import logging
from typing import NamedTuple

import equinox as eqx
import jax.numpy as jnp
import quadax

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ACCURACY = 1e-6
DEFAULT_MAX_DEPTH = 5
DEFAULT_N_POINTS = 40

__all__ = [
    "DEFAULT_ACCURACY",
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_N_POINTS",
    "IntegrationResult",
    "AdaptiveSimpson",
    "ClenshawCurtis",
]


class IntegrationResult(NamedTuple):
    """Outcome of a numerical quadrature.

    `converged` is False when the integrator ran out of refinement budget before meeting
    its accuracy target. The value is then the best available estimate.
    """

    value: float
    error: float
    converged: bool
    n_evaluations: int


# -------------------------------------------------------------------------------------------------------------------- #
# Adaptive Simpson quadrature
# -------------------------------------------------------------------------------------------------------------------- #
class AdaptiveSimpson(eqx.Module):
    """Adaptive Simpson quadrature with a hard recursion depth limit

    Parameters
    ----------
    accuracy : float
        Target absolute accuracy of the integral. The tolerance is halved each time an
        interval is bisected.

    max_depth : int
        Maximum number of bisection levels. The recursion stops at this depth even if the
        accuracy target is not met, so the number of integrand evaluations never exceeds
        2**(max_depth+2) + 1.

    Notes
    -----
    The integrand is any callable mapping a real number to a real number. The accepted
    estimate on each interval is the Richardson extrapolation S2 + (S2 - S)/15 of the
    coarse Simpson estimate S and the composite estimate S2 over the two halves.

    """

    accuracy: float = DEFAULT_ACCURACY
    max_depth: int = DEFAULT_MAX_DEPTH

    def __check_init__(self):
        if not self.accuracy > 0.0:
            raise ConfigurationError(f"accuracy must be positive, got {self.accuracy}")
        if self.max_depth < 0:
            raise ConfigurationError(f"max_depth must be non-negative, got {self.max_depth}")

    def __call__(self, fun, a, b):
        return self.integrate(fun, a, b).value

    def integrate(self, fun, a, b):
        """Compute the integral of `fun` over [a, b]

        Parameters
        ----------
        fun : callable
            Scalar integrand f(x).
        a, b : float
            Limits of integration.

        Returns
        -------
        result : IntegrationResult
            Value, error estimate, convergence flag and number of integrand evaluations.

        """
        a, b = float(a), float(b)
        f = _CountingIntegrand(fun)

        c = (a + b) / 2.0
        fa, fb, fc = f(a), f(b), f(c)
        S = (b - a) / 6.0 * (fa + 4.0 * fc + fb)
        value, error, converged = self._refine(f, a, b, self.accuracy, S, fa, fb, fc, self.max_depth)

        if not converged:
            logger.debug(
                "Adaptive Simpson reached max_depth=%d on [%g, %g] with error estimate %.3e "
                "(accuracy %.3e)",
                self.max_depth, a, b, error, self.accuracy,
            )

        return IntegrationResult(value, error, converged, f.n_evaluations)

    def _refine(self, f, a, b, eps, S, fa, fb, fc, depth):
        c = (a + b) / 2.0
        h = b - a
        fd = f((a + c) / 2.0)
        fe = f((c + b) / 2.0)
        S_left = h / 12.0 * (fa + 4.0 * fd + fc)
        S_right = h / 12.0 * (fc + 4.0 * fe + fb)
        S2 = S_left + S_right
        delta = S2 - S

        within_tolerance = abs(delta) <= 15.0 * eps
        if within_tolerance or depth <= 0:
            return S2 + delta / 15.0, abs(delta) / 15.0, within_tolerance

        value_left, error_left, ok_left = self._refine(f, a, c, eps / 2.0, S_left, fa, fc, fd, depth - 1)
        value_right, error_right, ok_right = self._refine(f, c, b, eps / 2.0, S_right, fc, fb, fe, depth - 1)
        return value_left + value_right, error_left + error_right, ok_left and ok_right


class _CountingIntegrand:
    """Wrap a scalar integrand, convert its output to float and count the calls."""

    def __init__(self, fun):
        self.fun = fun
        self.n_evaluations = 0

    def __call__(self, x):
        self.n_evaluations += 1
        return float(self.fun(x))


# -------------------------------------------------------------------------------------------------------------------- #
# Fixed-order Clenshaw-Curtis quadrature
# -------------------------------------------------------------------------------------------------------------------- #
class ClenshawCurtis(eqx.Module):
    """Clenshaw-Curtis quadrature of fixed order using `quadax`

    The integrand is evaluated at all the quadrature nodes at once, so it must accept an
    array of abscissas and return an array of the same shape.
    The order of the closed rule `n_points` must be a positive multiple of 4.
    The result is flagged as converged when the error estimate of the rule is below
    `accuracy`.
    """

    n_points: int = DEFAULT_N_POINTS
    accuracy: float = DEFAULT_ACCURACY

    def __check_init__(self):
        if self.n_points < 4 or self.n_points % 4 != 0:
            raise ConfigurationError(f"n_points must be a positive multiple of 4, got {self.n_points}")
        if not self.accuracy > 0.0:
            raise ConfigurationError(f"accuracy must be positive, got {self.accuracy}")

    def __call__(self, fun, a, b):
        return self.integrate(fun, a, b).value

    def integrate(self, fun, a, b):
        def integrand(x, *args):
            return fun(x)

        rule = quadax.ClenshawCurtisRule(self.n_points)
        value, err, *_ = rule.integrate(integrand, float(a), float(b), args=())
        value, err = float(jnp.squeeze(value)), float(jnp.abs(jnp.squeeze(err)))

        converged = err <= self.accuracy
        if not converged:
            logger.debug(
                "Clenshaw-Curtis rule with %d points has error estimate %.3e (accuracy %.3e)",
                self.n_points, err, self.accuracy,
            )

        return IntegrationResult(value, err, converged, self.n_points)
