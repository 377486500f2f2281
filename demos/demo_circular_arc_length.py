"""Example showing how to represent a circular arc with a rational NURBS curve and check its arc length."""

# -------------------------------------------------------------------------------------------------------------------- #
# Imports
# -------------------------------------------------------------------------------------------------------------------- #
import logging

import numpy as np
import jax
import nurbskit as nrb

logging.basicConfig(level=logging.DEBUG, format="%(name)s - %(levelname)s - %(message)s")
nrb.print_package_info()


# -------------------------------------------------------------------------------------------------------------------- #
# Quarter of a circle as a rational quadratic curve
# -------------------------------------------------------------------------------------------------------------------- #
R = 0.5
P = R * np.array([[1.0, 1.0, 0.0], [0.0, 1.0, 1.0]])
W = np.array([1.0, np.sqrt(2) / 2, 1.0])
arc = nrb.NurbsCurve(P, weights=W, degree=2)
print(arc)

# Radius along the curve
u = np.linspace(0, 1, 100)
radius = np.linalg.norm(arc.position(u), axis=0)

# Arc length with both quadratures (a run that hits its depth cutoff logs a debug record)
simpson = arc.integrate_length()
simpson_fine = arc.integrate_length(integrator=nrb.AdaptiveSimpson(accuracy=1e-12, max_depth=20))
clenshaw_curtis = arc.integrate_length(integrator=nrb.ClenshawCurtis(n_points=40))
arc_exact = R * np.pi / 2

# Report results
print("\n=== Quarter circle check ===")
print(f"Radius RMS error                  : {np.sqrt(np.mean((radius - R)**2)):.3e}")
print(f"Arc length (analytical)           : {arc_exact:.12f}")
for name, result in [("Simpson", simpson), ("Simpson fine", simpson_fine), ("Clenshaw-Curtis", clenshaw_curtis)]:
    print(
        f"Arc length ({name:15s})     : {result.value:.12f}  "
        f"error {abs(result.value - arc_exact):.3e}  "
        f"converged={result.converged}  evaluations={result.n_evaluations}"
    )


# -------------------------------------------------------------------------------------------------------------------- #
# Derivatives of the rational curve
# -------------------------------------------------------------------------------------------------------------------- #
u0 = 0.5
dC_autodiff = jax.jacfwd(arc.position)(u0)
print("\n=== First derivative at u = 0.5 ===")
print(f"Automatic differentiation         : {np.asarray(dC_autodiff)}")
print(f"rational_derivative (exact)       : {np.asarray(arc.rational_derivative(u0))}")
print(f"derivative (ignores the weights)  : {np.asarray(arc.derivative(u0))}")
