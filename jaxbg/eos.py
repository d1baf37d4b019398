"""Dark-energy equation of state and its auxiliary integrals.

Tabulates, on a dense redshift grid z in [0, eos_z_max]:

    w(z)                                       the equation of state
    wint(z) = exp(3 int_0^z (1 + w)/(1 + z') dz')
                                               rho_de(z) / rho_de(0)
    xint(z) = Omega_m/(1 - Omega_m) exp(-3 int_{1/(1+z)}^1 w(a)/a da)
                                               rho_m(z) / rho_de(z)

and wraps each table in an Interpolant so the growth ODE and the distance
integrand can evaluate them in O(log N) per call. The tables are built once
per solve and are read-only afterwards.

Design choices:
    - Each table point is an independent adaptive Gauss-Kronrod quadrature
      from the grid origin (no cumulative summation), vectorised with vmap.
    - xint(0) is set from its closed form, avoiding the degenerate interval.
    - For Omega_m = 1 the ratio xint diverges; no table is built and the
      growth ODE takes the x -> inf limit (see growth.growth_coefficients).
"""

from __future__ import annotations

from functools import partial
from typing import NamedTuple, Optional

import jax
import jax.numpy as jnp
from jaxtyping import Array, Float
from loguru import logger

from jaxbg.diagnostics import require_finite
from jaxbg.interpolation import Interpolant
from jaxbg.params import CosmologicalParameters, PrecisionParams
from jaxbg.quadrature import QuadResult, integrate_many

TABLE_METHOD = "cubic2"
"""Internal tables use the natural cubic spline regardless of the output method."""


class IntegrationParams(NamedTuple):
    """Coefficient tables of the growth ODE and the distance integrand.

    ``xint`` is None when Omega_m = 1 (matter only; the ratio is infinite).
    """

    w: Interpolant
    wint: Interpolant
    xint: Optional[Interpolant]


def dense_grid(prec: PrecisionParams) -> Float[Array, "N"]:
    """z_i = eos_z_max * i / (N - 1), i = 0..N-1."""
    n = prec.eos_n_points
    return prec.eos_z_max * jnp.arange(n, dtype=float) / (n - 1)


def _quad_kwargs(prec: PrecisionParams) -> dict:
    return dict(
        epsabs=prec.quad_epsabs,
        epsrel=prec.quad_epsrel,
        order=prec.quad_order,
        max_ninter=prec.quad_max_ninter,
    )


def sample_eos(params: CosmologicalParameters, prec: PrecisionParams) -> Interpolant:
    """Sample the caller's w(z) on the dense grid and wrap it in an Interpolant."""
    z = dense_grid(prec)
    w = params.w_of_z(z)
    require_finite({"w": w}, z, label="equation of state")
    return Interpolant(z, w, TABLE_METHOD, name="w")


# ---------------------------------------------------------------------------
# Auxiliary integrals
# ---------------------------------------------------------------------------

@partial(jax.jit, static_argnames=("epsabs", "epsrel", "order", "max_ninter"))
def _wint_quadratures(w: Interpolant, z, *, epsabs, epsrel, order, max_ninter):
    def integrand(zp):
        return (1.0 + w.evaluate(zp)) / (1.0 + zp)

    return integrate_many(integrand, jnp.zeros_like(z), z, epsabs=epsabs,
                          epsrel=epsrel, order=order, max_ninter=max_ninter)


@partial(jax.jit, static_argnames=("epsabs", "epsrel", "order", "max_ninter"))
def _xint_quadratures(w: Interpolant, z, *, epsabs, epsrel, order, max_ninter):
    def integrand(a):
        return w.evaluate(1.0 / a - 1.0) / a

    return integrate_many(integrand, 1.0 / (1.0 + z), jnp.ones_like(z), epsabs=epsabs,
                          epsrel=epsrel, order=order, max_ninter=max_ninter)


def tabulate_wint(w: Interpolant, prec: PrecisionParams) -> tuple[Interpolant, QuadResult]:
    """Tabulate wint(z) = exp(3 int_0^z (1 + w(z'))/(1 + z') dz').

    Returns:
        (wint interpolant, QuadResult of the exponent integrals)
    """
    z = dense_grid(prec)
    res = _wint_quadratures(w, z, **_quad_kwargs(prec))
    wint = jnp.exp(3.0 * res.value)
    require_finite({"wint": wint}, z, label="dark-energy density table")
    return Interpolant(z, wint, TABLE_METHOD, name="wint"), res


def tabulate_xint(
    w: Interpolant,
    Omega_m: float,
    prec: PrecisionParams,
) -> tuple[Interpolant, QuadResult]:
    """Tabulate xint(z) = Omega_m/(1 - Omega_m) exp(-3 int_{1/(1+z)}^1 w(a)/a da).

    xint(0) is the prefactor itself. Requires Omega_m < 1.

    Returns:
        (xint interpolant, QuadResult of the exponent integrals)
    """
    z = dense_grid(prec)
    ratio0 = Omega_m / (1.0 - Omega_m)
    res = _xint_quadratures(w, z, **_quad_kwargs(prec))
    xint = jnp.where(z == 0.0, ratio0, ratio0 * jnp.exp(-3.0 * res.value))
    require_finite({"xint": xint}, z, label="matter/dark-energy ratio table")
    return Interpolant(z, xint, TABLE_METHOD, name="xint"), res


def build_integration_params(
    params: CosmologicalParameters,
    prec: PrecisionParams,
) -> tuple[IntegrationParams, dict]:
    """Build w, wint and xint tables for one solve.

    Returns:
        (IntegrationParams, {"wint": QuadResult, "xint": QuadResult or None})
    """
    w = sample_eos(params, prec)
    wint, wint_res = tabulate_wint(w, prec)
    logger.debug("Tabulated wint on {} points, wint(z_max)={:.6g}",
                 prec.eos_n_points, float(wint.y[-1]))

    if params.matter_only:
        logger.debug("Omega_m = 1: using the matter-only limit of the growth equation")
        return IntegrationParams(w=w, wint=wint, xint=None), {"wint": wint_res, "xint": None}

    xint, xint_res = tabulate_xint(w, params.Omega_m, prec)
    logger.debug("Tabulated xint on {} points, xint(0)={:.6g}",
                 prec.eos_n_points, float(xint.y[0]))
    return IntegrationParams(w=w, wint=wint, xint=xint), {"wint": wint_res, "xint": xint_res}
