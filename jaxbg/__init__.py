"""jaxbg: background evolution and growth history of a flat FLRW universe in JAX.

Usage:
    import jaxbg

    # Define parameters
    params = jaxbg.CosmologicalParameters(Omega_cdm=0.25, Omega_b=0.05, Omega_de=0.7)

    # Solve the background once, then query it at any redshift
    bg = jaxbg.solve(params)
    print(bg.evaluate("H", 1.0))        # H(z=1) in units of H0
    print(bg.z_of_chi.evaluate(1.0))    # redshift at chi = c/H0

    # Free the buffers when done
    jaxbg.release(bg)

Logging is silent by default; call ``jaxbg.init_logging()`` to see it.
"""

import jax
jax.config.update("jax_enable_x64", True)

from loguru import logger

from jaxbg.constants import c_SI, hubble_distance_Mpc_h  # noqa: F401
from jaxbg.errors import (  # noqa: F401
    BackgroundError,
    ConvergenceError,
    InterpolationError,
    NonFiniteResultError,
    NonMonotonicError,
    OutOfDomainError,
    ParameterError,
    ReleasedError,
)
from jaxbg.params import (  # noqa: F401
    CosmologicalParameters,
    PrecisionParams,
    SourcePopulation,
    w0wa,
)
from jaxbg.interpolation import Interpolant, METHODS  # noqa: F401
from jaxbg.diagnostics import SolveDiagnostics  # noqa: F401
from jaxbg.background import (  # noqa: F401
    BackgroundModel,
    background_solve,
    release,
    H_of_z,
    comoving_distance,
    z_of_comoving_distance,
    angular_diameter_distance,
    luminosity_distance,
    to_mpc_over_h,
)
from jaxbg.log import init_logging, disable_logging  # noqa: F401

__version__ = "0.1.0"

solve = background_solve

logger.disable("jaxbg")
