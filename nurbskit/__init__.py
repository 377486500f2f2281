import os
os.environ["JAX_PLATFORM_NAME"] = "cpu"
import jax
import jax.numpy
jax.config.update("jax_enable_x64", True)

# Import curve modules
from .exceptions import *
from .knot_vectors import *
from .nurbs_basis_functions import *
from .integration import *
from .parametric_curve import *
from .nurbs_curve import *

# Package info
__version__ = "0.1.0"
PACKAGE_NAME = "nurbskit"
BREAKLINE = 80 * "-"


def print_banner():
    """Prints a banner."""
    banner = r"""
                       __         __   _ __ 
       ____  __  _____/ /_  _____/ /__(_) /_
      / __ \/ / / / ___/ __ \/ ___/ //_/ / __/
     / / / / /_/ / /  / /_/ (__  ) ,< / / /_  
    /_/ /_/\__,_/_/  /_.___/____/_/|_/_/\__/  
    """
    print(BREAKLINE)
    print(banner)
    print(BREAKLINE)


def print_package_info():
    """Prints package information with predefined values."""

    info = f""" Version:       {__version__}
 Package:       {PACKAGE_NAME}
 JAX backend:   {jax.default_backend()}
 Float dtype:   {jax.numpy.result_type(float)}"""
    print_banner()
    print(BREAKLINE)
    print(info)
    print(BREAKLINE)
