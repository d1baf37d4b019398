"""Background module for jaxbg.

Computes the homogeneous expansion history and linear growth history of a
flat FLRW universe and exposes them as interpolants of redshift. All
quantities are dimensionless: H in units of H0, distances in units of c/H0.

Pipeline (each stage reads only the outputs of earlier stages):
    1. w(z) sampled on the dense grid          (eos.sample_eos)
    2. wint(z), xint(z) by adaptive quadrature  (eos.tabulate_wint/_xint)
    3. per output bin z_i in [0, bg_z_max]:
         a, H, conformal H and its derivative   closed form
         chi                                    adaptive quadrature
         D1, f, g                               growth ODE (growth.solve_growth)
         G1, G2                                 relativistic corrections
    4. one Interpolant per quantity, plus the inverse z(chi)

Key functions:
    background_solve(params, prec) -> BackgroundModel
    release(model)

Design choices:
    - Bins are independent: quadratures and growth integrations are vmapped
      over all bins at once; the read-only tables of step 2 are shared.
    - Numerical kernels report statuses instead of raising; the statuses are
      collected into SolveDiagnostics attached to the model.
    - Nothing non-finite leaves a successful solve (NonFiniteResultError).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from functools import partial
from typing import NamedTuple

import jax
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Float
from loguru import logger

from jaxbg import constants as const
from jaxbg.diagnostics import SolveDiagnostics, failed_indices, report, require_finite
from jaxbg.eos import IntegrationParams, build_integration_params
from jaxbg.growth import growth_rate, solve_growth
from jaxbg.interpolation import Interpolant
from jaxbg.params import CosmologicalParameters, PrecisionParams, SourcePopulation
from jaxbg.quadrature import integrate_many


QUANTITIES = (
    "a", "H", "conformal_H", "conformal_H_prime",
    "D1", "g", "f", "chi", "G1", "G2",
)
"""Forward quantities of a BackgroundModel, all interpolants of z."""


# ---------------------------------------------------------------------------
# BackgroundTable: per-bin arrays of one sampling pass
# ---------------------------------------------------------------------------

class BackgroundTable(NamedTuple):
    """Per-bin samples of every background quantity (bins increasing in z)."""

    z: Float[Array, "N"]
    a: Float[Array, "N"]                  # scale factor, a = 1 today
    H: Float[Array, "N"]                  # Hubble rate [H0]
    conformal_H: Float[Array, "N"]        # a H [H0]
    conformal_H_prime: Float[Array, "N"]  # d(conformal H)/d(conformal time) [H0^2]
    D1: Float[Array, "N"]                 # growth factor
    g: Float[Array, "N"]                  # (1 + z) D1
    f: Float[Array, "N"]                  # growth rate d ln D1 / d ln a
    chi: Float[Array, "N"]                # comoving distance [c/H0]
    G1: Float[Array, "N"]                 # relativistic correction, population 1
    G2: Float[Array, "N"]                 # relativistic correction, population 2


# ---------------------------------------------------------------------------
# BackgroundModel
# ---------------------------------------------------------------------------

@jax.tree_util.register_pytree_node_class
@dataclass(frozen=True)
class BackgroundModel:
    """Output of the background module.

    One Interpolant per quantity as a function of redshift, valid on
    z in [0, bg_z_max], plus the inverse z(chi) valid on
    chi in [chi(0), chi(bg_z_max)]. Immutable once built; call ``release``
    to free the buffers early.
    """

    a: Interpolant
    H: Interpolant
    conformal_H: Interpolant
    conformal_H_prime: Interpolant
    D1: Interpolant
    g: Interpolant
    f: Interpolant
    chi: Interpolant
    G1: Interpolant
    G2: Interpolant
    z_of_chi: Interpolant

    params: CosmologicalParameters
    diagnostics: SolveDiagnostics

    def evaluate(self, quantity: str, z):
        """Value of a quantity ('H', 'chi', ..., or 'z_of_chi') at z (or chi)."""
        return self._get(quantity).evaluate(z)

    def evaluate_derivative(self, quantity: str, z):
        """Derivative of a quantity with respect to its argument."""
        return self._get(quantity).derivative(z)

    def _get(self, quantity: str) -> Interpolant:
        if quantity not in QUANTITIES and quantity != "z_of_chi":
            raise KeyError(f"unknown background quantity {quantity!r}")
        return getattr(self, quantity)

    @property
    def z_range(self) -> tuple[float, float]:
        return self.a.domain

    @property
    def chi_range(self) -> tuple[float, float]:
        return self.z_of_chi.domain

    def interpolants(self) -> dict[str, Interpolant]:
        out = {name: getattr(self, name) for name in QUANTITIES}
        out["z_of_chi"] = self.z_of_chi
        return out

    def release(self) -> None:
        """Free every interpolant buffer; the model is unusable afterwards."""
        for interp in self.interpolants().values():
            interp.release()

    def tree_flatten(self):
        children = [getattr(self, name) for name in QUANTITIES] + [self.z_of_chi]
        aux = (self.params, self.diagnostics)
        return children, aux

    @classmethod
    def tree_unflatten(cls, aux, children):
        return cls(*children, *aux)


# ---------------------------------------------------------------------------
# Closed-form background functions
# ---------------------------------------------------------------------------

def _E2(z, Omega_m, Omega_g, Omega_de, wint):
    """(H/H0)^2 = Omega_m (1+z)^3 + Omega_g (1+z)^4 + Omega_de wint(z)."""
    zp1 = 1.0 + z
    return Omega_m * zp1**3 + Omega_g * zp1**4 + Omega_de * wint


def _conformal_H_prime(z, Omega_m, Omega_g, Omega_de, w, wint):
    """Derivative of aH with respect to conformal time, in units of H0^2.

    = -[(1+z)^3 (2 (1+z) Omega_g + Omega_m) + (1 + 3w) Omega_de wint] / (2 (1+z)^2)
    """
    zp1 = 1.0 + z
    return -(
        zp1**3 * (2.0 * zp1 * Omega_g + Omega_m)
        + (1.0 + 3.0 * w) * Omega_de * wint
    ) / zp1**2 / 2.0


def relativistic_correction(z, conformal_H, conformal_H_prime, chi,
                            source: SourcePopulation, epsilon: float):
    """G(z) = H'/H^2 + (2 - 5s)/(chi H) + 5s - f_evo, with H the conformal Hubble rate.

    Set to exactly 0 for z <= epsilon, where 1/chi diverges.
    """
    s = source.s(z)
    fevo = source.fevo(z)
    regular = z > epsilon
    chi_safe = jnp.where(regular, chi, 1.0)
    G = (
        conformal_H_prime / conformal_H**2
        + (2.0 - 5.0 * s) / (chi_safe * conformal_H)
        + 5.0 * s
        - fevo
    )
    return jnp.where(regular, G, 0.0)


# ---------------------------------------------------------------------------
# Sampling pass
# ---------------------------------------------------------------------------

def output_bins(n_bins: int, prec: PrecisionParams) -> Float[Array, "N"]:
    """z_i = bg_z_max * i / (n_bins - 1), i = 0..n_bins-1."""
    return prec.bg_z_max * jnp.arange(n_bins, dtype=float) / (n_bins - 1)


@partial(jax.jit, static_argnames=("epsabs", "epsrel", "order", "max_ninter"))
def _comoving_quadratures(wint: Interpolant, densities, z, *, epsabs, epsrel,
                          order, max_ninter):
    Omega_m, Omega_g, Omega_de = densities

    def integrand(zp):
        return 1.0 / jnp.sqrt(_E2(zp, Omega_m, Omega_g, Omega_de, wint.evaluate(zp)))

    return integrate_many(integrand, jnp.zeros_like(z), z, epsabs=epsabs,
                          epsrel=epsrel, order=order, max_ninter=max_ninter)


def sample_fields(
    params: CosmologicalParameters,
    ipar: IntegrationParams,
    prec: PrecisionParams,
):
    """Compute every background quantity on the output bins.

    Returns:
        (BackgroundTable, QuadResult of the comoving distances,
         boolean array of finished growth integrations)
    """
    Omega_m, Omega_g, Omega_de = params.Omega_m, params.Omega_g, params.Omega_de

    z = output_bins(params.background_bins, prec)
    a = 1.0 / (1.0 + z)
    w = ipar.w.evaluate(z)
    wint = ipar.wint.evaluate(z)

    H = jnp.sqrt(_E2(z, Omega_m, Omega_g, Omega_de, wint))
    conformal_H = a * H
    conformal_H_prime = _conformal_H_prime(z, Omega_m, Omega_g, Omega_de, w, wint)

    chi_res = _comoving_quadratures(
        ipar.wint, (Omega_m, Omega_g, Omega_de), z,
        epsabs=prec.quad_epsabs, epsrel=prec.quad_epsrel,
        order=prec.quad_order, max_ninter=prec.quad_max_ninter,
    )
    chi = chi_res.value
    logger.debug("Comoving distances: chi(z_max)={:.6g}", float(chi[-1]))

    D1, dD1_da, growth_ok = solve_growth(a, ipar, prec)
    f = growth_rate(D1, dD1_da, a)
    g = (1.0 + z) * D1
    logger.debug("Growth factor: D1(0)={:.6g}, f(0)={:.6g}", float(D1[0]), float(f[0]))

    G1 = relativistic_correction(z, conformal_H, conformal_H_prime, chi,
                                 params.source1, prec.G_z_epsilon)
    G2 = relativistic_correction(z, conformal_H, conformal_H_prime, chi,
                                 params.source2, prec.G_z_epsilon)

    table = BackgroundTable(
        z=z, a=a, H=H, conformal_H=conformal_H, conformal_H_prime=conformal_H_prime,
        D1=D1, g=g, f=f, chi=chi, G1=G1, G2=G2,
    )
    return table, chi_res, growth_ok


def assemble(table: BackgroundTable, params: CosmologicalParameters,
             diagnostics: SolveDiagnostics) -> BackgroundModel:
    """Build the output interpolants from a sampling pass.

    The inverse z(chi) swaps the roles of the chi and z samples; it raises
    NonMonotonicError unless chi is strictly increasing.
    """
    method = params.interp_method
    splines = {
        name: Interpolant(table.z, getattr(table, name), method, name=name)
        for name in QUANTITIES
    }
    z_of_chi = Interpolant(table.chi, table.z, method, name="z_of_chi")
    return BackgroundModel(**splines, z_of_chi=z_of_chi, params=params,
                           diagnostics=diagnostics)


# ---------------------------------------------------------------------------
# Main solver
# ---------------------------------------------------------------------------

def background_solve(
    params: CosmologicalParameters = CosmologicalParameters(),
    prec: PrecisionParams = PrecisionParams(),
) -> BackgroundModel:
    """Solve the background cosmology.

    Args:
        params: cosmological parameters
        prec: precision parameters

    Returns:
        BackgroundModel with all background interpolants

    Raises:
        ParameterError: invalid params or prec
        NonFiniteResultError: a tabulated or sampled quantity is NaN/inf
        NonMonotonicError: chi(z) is not strictly increasing
        ConvergenceError: some integration did not converge and prec.strict
    """
    params.validate()
    prec.validate()

    logger.info("Initializing the background ({} bins, method {!r})...",
                params.background_bins, params.interp_method)
    start = time.perf_counter()

    ipar, tables = build_integration_params(params, prec)
    try:
        table, chi_res, growth_ok = sample_fields(params, ipar, prec)
    finally:
        # The coefficient tables live for one solve only.
        for interp in ipar:
            if interp is not None:
                interp.release()

    floor = prec.quad_error_floor
    wint_res, xint_res = tables["wint"], tables["xint"]
    quad_errors = [wint_res.error, chi_res.error]
    if xint_res is not None:
        quad_errors.append(xint_res.error)
    diagnostics = SolveDiagnostics(
        wint_failures=wint_res.n_failed(floor),
        xint_failures=0 if xint_res is None else xint_res.n_failed(floor),
        chi_failures=chi_res.n_failed(floor),
        growth_failures=int(np.sum(~np.asarray(growth_ok))),
        chi_failed_bins=failed_indices(chi_res.converged(floor)),
        growth_failed_bins=failed_indices(growth_ok),
        max_quad_error=float(max(np.max(np.asarray(e)) for e in quad_errors)),
        elapsed_s=time.perf_counter() - start,
        notes=("matter-only growth limit",) if params.matter_only else (),
    )
    report(diagnostics, prec.strict)
    require_finite(table._asdict(), table.z)

    model = assemble(table, params, diagnostics)
    logger.info("Background initialized in {:.2f} s", time.perf_counter() - start)
    return model


def release(model: BackgroundModel) -> None:
    """Free all interpolants owned by ``model``."""
    model.release()


# ---------------------------------------------------------------------------
# Convenience functions
# ---------------------------------------------------------------------------

def H_of_z(bg: BackgroundModel, z):
    """Hubble rate at redshift z in units of H0."""
    return bg.H.evaluate(z)


def comoving_distance(bg: BackgroundModel, z):
    """Comoving distance to redshift z in units of c/H0."""
    return bg.chi.evaluate(z)


def z_of_comoving_distance(bg: BackgroundModel, chi):
    """Redshift at comoving distance chi (units of c/H0)."""
    return bg.z_of_chi.evaluate(chi)


def angular_diameter_distance(bg: BackgroundModel, z):
    """Angular diameter distance D_A(z) = chi(z) / (1 + z)  (flat universe)."""
    return comoving_distance(bg, z) / (1.0 + jnp.asarray(z))


def luminosity_distance(bg: BackgroundModel, z):
    """Luminosity distance D_L(z) = chi(z) (1 + z)  (flat universe)."""
    return comoving_distance(bg, z) * (1.0 + jnp.asarray(z))


def to_mpc_over_h(distance):
    """Convert a distance in units of c/H0 to Mpc/h."""
    return const.hubble_distance_Mpc_h * distance
