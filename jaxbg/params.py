"""Parameter containers for jaxbg.

CosmologicalParameters: density fractions, dark-energy model, source biases.
SourcePopulation: bias functions of one correlated tracer population.
PrecisionParams: numerical precision settings (grid sizes, tolerances).

All containers are frozen dataclasses; use ``replace`` to derive variants.
Density fractions are present-day values Omega_x (not Omega_x h^2).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace as _dc_replace
from typing import Callable, Union

import jax.numpy as jnp

from jaxbg import constants as const
from jaxbg.errors import ParameterError
from jaxbg.interpolation import METHODS

RedshiftFunction = Union[float, Callable]
"""Either a constant or a callable f(z) accepting a redshift array."""


def as_function(value: RedshiftFunction) -> Callable:
    """Promote a constant to a callable of redshift; callables pass through."""
    if callable(value):
        return value
    constant = float(value)

    def _constant(z):
        return jnp.full(jnp.shape(z), constant)

    return _constant


def sample(value: RedshiftFunction, z) -> jnp.ndarray:
    """Evaluate a redshift function on an array, broadcasting scalar results."""
    z = jnp.asarray(z)
    return jnp.broadcast_to(jnp.asarray(as_function(value)(z), dtype=z.dtype), z.shape)


# ---------------------------------------------------------------------------
# Dark energy equation of state
# ---------------------------------------------------------------------------

def w0wa(w0: float = -1.0, wa: float = 0.0) -> Callable:
    """CPL equation of state w(z) = w0 + wa * z / (1 + z), i.e. w0 + wa (1 - a)."""

    def w_of_z(z):
        z = jnp.asarray(z)
        return w0 + wa * z / (1.0 + z)

    w_of_z.w0 = w0
    w_of_z.wa = wa
    return w_of_z


def wint_w0wa(z, w0: float = -1.0, wa: float = 0.0):
    """Closed form of exp(3 int_0^z (1 + w)/(1 + z') dz') for the CPL model.

    = (1 + z)^{3 (1 + w0 + wa)} * exp(-3 wa z / (1 + z))
    """
    z = jnp.asarray(z)
    return jnp.power(1.0 + z, 3.0 * (1.0 + w0 + wa)) * jnp.exp(-3.0 * wa * z / (1.0 + z))


# ---------------------------------------------------------------------------
# Tracer populations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SourcePopulation:
    """Bias functions of one tracer population.

    Each field is a constant or a callable of redshift:
        matter_bias:        linear galaxy bias b(z)
        magnification_bias: s(z), slope of the cumulative number counts
        evolution_bias:     f_evo(z), evolution of the comoving number density
    """

    matter_bias: RedshiftFunction = 1.0
    magnification_bias: RedshiftFunction = 0.0
    evolution_bias: RedshiftFunction = 0.0

    def s(self, z):
        return sample(self.magnification_bias, z)

    def fevo(self, z):
        return sample(self.evolution_bias, z)

    def b(self, z):
        return sample(self.matter_bias, z)


# ---------------------------------------------------------------------------
# CosmologicalParameters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CosmologicalParameters:
    """Cosmological input of a background solve.

    The dark-energy model ``w`` is a constant or a callable w(z) accepting a
    redshift array (see ``w0wa``). ``background_bins`` output bins are laid
    out linearly in [0, PrecisionParams.bg_z_max].
    """

    # Densities
    Omega_cdm: float = 0.25
    Omega_b: float = 0.05
    Omega_g: float = 0.0
    Omega_de: float = 0.7

    # Dark energy equation of state
    w: RedshiftFunction = -1.0

    # Tracers (one per correlated population)
    source1: SourcePopulation = field(default_factory=SourcePopulation)
    source2: SourcePopulation = field(default_factory=SourcePopulation)

    # Output sampling
    background_bins: int = 1000
    interp_method: str = "cubic2"

    @property
    def Omega_m(self) -> float:
        """Total matter fraction Omega_cdm + Omega_b."""
        return self.Omega_cdm + self.Omega_b

    @property
    def matter_only(self) -> bool:
        """True when matter makes up the whole matter/dark-energy ratio (Omega_m = 1)."""
        return math.isclose(self.Omega_m, 1.0, rel_tol=0.0, abs_tol=1e-12)

    def w_of_z(self, z):
        return sample(self.w, z)

    def validate(self) -> CosmologicalParameters:
        """Raise ParameterError if the parameters cannot be solved; return self."""
        for name in ("Omega_cdm", "Omega_b", "Omega_g", "Omega_de"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0.0:
                raise ParameterError(f"{name} must be finite and non-negative, got {value!r}")
        if self.Omega_m > 1.0 and not self.matter_only:
            raise ParameterError(
                f"Omega_cdm + Omega_b must not exceed 1, got {self.Omega_m!r}"
            )
        if self.Omega_m + self.Omega_g + self.Omega_de <= 0.0:
            raise ParameterError("at least one density fraction must be positive")
        if int(self.background_bins) != self.background_bins or self.background_bins < 2:
            raise ParameterError(
                f"background_bins must be an integer >= 2, got {self.background_bins!r}"
            )
        if self.interp_method not in METHODS:
            raise ParameterError(
                f"unknown interpolation method {self.interp_method!r}; "
                f"choose one of {sorted(METHODS)}"
            )
        if self.background_bins < METHODS[self.interp_method]:
            raise ParameterError(
                f"interpolation method {self.interp_method!r} needs at least "
                f"{METHODS[self.interp_method]} bins, got {self.background_bins}"
            )
        return self

    def replace(self, **kwargs) -> CosmologicalParameters:
        """Return a new CosmologicalParameters with specified fields replaced."""
        return _dc_replace(self, **kwargs)


# ---------------------------------------------------------------------------
# PrecisionParams
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PrecisionParams:
    """Numerical precision parameters.

    The defaults reproduce the reference tabulation: w(z) and its integrals on
    16385 points in z in [0, 100], adaptive 61-point Gauss-Kronrod quadrature
    at relative tolerance 1e-5, and an order-8 Runge-Kutta growth integration
    at relative tolerance 1e-6.
    """

    # Dense tabulation of w(z), wint(z), xint(z)
    eos_z_max: float = const.eos_z_max_default
    eos_n_points: int = const.eos_n_points_default

    # Output bins
    bg_z_max: float = const.bg_z_max_default

    # Adaptive quadrature
    quad_epsabs: float = 0.0
    quad_epsrel: float = 1e-5
    quad_order: int = 61
    quad_max_ninter: int = 64          # maximum number of subintervals
    quad_error_floor: float = 1e-12    # abs. error accepted when roundoff limits convergence

    # Growth ODE
    growth_a_ini: float = 0.05         # deep matter domination, D1 ~ a
    growth_D_ini: float = 0.05
    growth_dD_ini: float = 1.0
    growth_dt0: float = 1e-6           # initial step in a
    growth_rtol: float = 1e-6
    growth_atol: float = 0.0
    growth_solver: str = "dopri8"      # or "kvaerno5"
    ode_max_steps: int = 16384

    # Relativistic corrections
    G_z_epsilon: float = const.G_z_epsilon_default

    # Raise ConvergenceError instead of logging a warning
    strict: bool = False

    def validate(self) -> PrecisionParams:
        """Raise ParameterError for inconsistent settings; return self."""
        if self.eos_n_points < METHODS["cubic2"]:
            raise ParameterError(f"eos_n_points must be >= 3, got {self.eos_n_points}")
        if not 0.0 < self.bg_z_max <= self.eos_z_max:
            raise ParameterError(
                f"bg_z_max must lie in (0, eos_z_max={self.eos_z_max}], got {self.bg_z_max}"
            )
        if self.quad_epsrel <= 0.0 and self.quad_epsabs <= 0.0:
            raise ParameterError("quad_epsabs and quad_epsrel cannot both be zero")
        if self.quad_order not in (15, 21, 31, 41, 51, 61):
            raise ParameterError(f"unsupported Gauss-Kronrod order {self.quad_order}")
        a_min = 1.0 / (1.0 + self.bg_z_max)
        if not 0.0 < self.growth_a_ini < a_min:
            raise ParameterError(
                f"growth_a_ini must lie in (0, {a_min:.6g}) so every bin is reached "
                f"by forward integration, got {self.growth_a_ini}"
            )
        if 1.0 / self.growth_a_ini - 1.0 > self.eos_z_max:
            raise ParameterError(
                "growth_a_ini lies before the tabulated w(z) range "
                f"(z_ini={1.0 / self.growth_a_ini - 1.0:.6g} > eos_z_max={self.eos_z_max})"
            )
        if self.growth_rtol <= 0.0:
            raise ParameterError(f"growth_rtol must be positive, got {self.growth_rtol}")
        if self.growth_solver not in ("dopri8", "kvaerno5"):
            raise ParameterError(f"unknown growth_solver {self.growth_solver!r}")
        return self

    def replace(self, **kwargs) -> PrecisionParams:
        """Return a new PrecisionParams with specified fields replaced."""
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        current.update(kwargs)
        return PrecisionParams(**current)

    @staticmethod
    def reference():
        """Reference settings (the defaults), spelled out for readability."""
        return PrecisionParams()

    @staticmethod
    def fast():
        """Reduced tabulation for tests and quick looks.

        2049 dense points keep the w(z) tables accurate to ~1e-7 for smooth
        models; tolerances are unchanged.
        """
        return PrecisionParams(
            eos_n_points=2049,
            quad_max_ninter=32,
        )
