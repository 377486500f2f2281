from abc import ABC, abstractmethod

import jax.numpy as jnp

from .integration import AdaptiveSimpson

__all__ = ["ParametricCurve", "NullCurve"]


class ParametricCurve(ABC):
    """Capability shared by all the parametric curves

    Consumers such as frame or sweep generators only rely on this interface:

        - `position(u)`: coordinates of the curve
        - `derivative(u, order)`: parametric derivative of any order
        - `length(u1, u2, integrator)`: arc length computed by numerical quadrature

    Scalar parameters return arrays with shape (ndim,) and 1D arrays of parameters return
    arrays with shape (ndim, N).
    """

    @property
    @abstractmethod
    def ndim(self):
        """Number of spatial dimensions of the curve."""

    @abstractmethod
    def position(self, u):
        """Evaluate the coordinates of the curve at `u`."""

    @abstractmethod
    def derivative(self, u, order=1):
        """Evaluate the derivative of order `order` of the curve at `u`."""

    def speed(self, u):
        """Evaluate the norm of the first derivative ||C'(u)||, same shape as `u`."""
        u = jnp.asarray(u)
        dC = self.derivative(jnp.atleast_1d(u), 1)
        return jnp.reshape(jnp.linalg.norm(dC, axis=0), u.shape)

    def integrate_length(self, u1, u2, integrator=None):
        """Integrate the speed over [u1, u2] and return the full `IntegrationResult`"""
        if integrator is None:
            integrator = AdaptiveSimpson()
        return integrator.integrate(self.speed, u1, u2)

    def length(self, u1, u2, integrator=None):
        """Compute the arc length of the curve in the interval [u1, u2]

        The definition of the arc length is given by equation 10.3 (Farin's textbook)

        Parameters
        ----------
        u1, u2 : scalar
            Limits of integration for the arc length computation

        integrator : AdaptiveSimpson, ClenshawCurtis or compatible, optional
            Quadrature used for the computation. Defaults to `AdaptiveSimpson()`

        Returns
        -------
        L : float
            Arc length of the curve in the interval [u1, u2]

        """
        return self.integrate_length(u1, u2, integrator).value


class NullCurve(ParametricCurve):
    """Degenerate curve located at the origin, with zero derivatives and zero length"""

    def __init__(self, ndim=3):
        self._ndim = ndim

    @property
    def ndim(self):
        return self._ndim

    def position(self, u):
        return jnp.zeros((self._ndim,) + jnp.shape(u))

    def derivative(self, u, order=1):
        return jnp.zeros((self._ndim,) + jnp.shape(u))
