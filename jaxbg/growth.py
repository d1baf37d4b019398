"""Linear growth factor D1(a) from the second-order growth equation.

State vector y = (D1, dD1/da), independent variable the scale factor a.
With z = 1/a - 1, w = w(z) and x = xint(z) = rho_m / rho_de:

    dy0/da = y1
    dy1/da = -(3/2) (1 - w/(1+x)) y1/a + (3/2) (x/(1+x)) y0/a^2

Every requested scale factor gets its own integration from the fixed
early-time initial condition (D1, dD1/da) = (0.05, 1.0) at a = 0.05, where
D1 tracks a during matter domination. The integrations are independent and
run as one vmapped batch.

The vector field carries a custom JVP built from the analytic Jacobian
``growth_jacobian`` (partial derivatives in y plus the explicit a
derivative), so implicit solvers use it in their Newton iterations instead
of differentiating through the spline evaluation.
"""

from __future__ import annotations

from functools import partial

import jax
import jax.numpy as jnp
from jaxtyping import Array, Float

from jaxbg import ode
from jaxbg.eos import IntegrationParams
from jaxbg.params import PrecisionParams


def growth_coefficients(a, ipar: IntegrationParams):
    """Damping and source coefficients of the growth equation and their z-derivatives.

    Returns:
        (c, s, dc/dz, ds/dz) with c = 1 - w/(1+x) and s = x/(1+x).
        Without an xint table (Omega_m = 1) this is the x -> inf limit
        c = s = 1.
    """
    z = 1.0 / a - 1.0
    if ipar.xint is None:
        one, zero = jnp.ones_like(z), jnp.zeros_like(z)
        return one, one, zero, zero

    w = ipar.w.evaluate(z)
    dw = ipar.w.derivative(z)
    x = ipar.xint.evaluate(z)
    dx = ipar.xint.derivative(z)
    inv = 1.0 / (1.0 + x)
    c = 1.0 - w * inv
    s = x * inv
    dc_dz = -(dw * (1.0 + x) - w * dx) * inv**2
    ds_dz = dx * inv**2
    return c, s, dc_dz, ds_dz


def _growth_field(a, y, ipar: IntegrationParams) -> Float[Array, "2"]:
    c, s, _, _ = growth_coefficients(a, ipar)
    return jnp.stack([
        y[1],
        -1.5 * c * y[1] / a + 1.5 * s * y[0] / a**2,
    ])


def growth_jacobian(a, y, ipar: IntegrationParams):
    """Analytic Jacobian of the growth equation.

    Returns:
        dfdy: shape (2, 2), partial derivatives with respect to (y0, y1)
        dfdt: shape (2,), explicit derivative with respect to a
    """
    c, s, dc_dz, ds_dz = growth_coefficients(a, ipar)
    dz_da = -1.0 / a**2
    y0, y1 = y[0], y[1]

    dfdy = jnp.array([
        [0.0, 1.0],
        [1.5 * s / a**2, -1.5 * c / a],
    ])
    df1_da = (
        -1.5 * (dc_dz * dz_da * y1 / a - c * y1 / a**2)
        + 1.5 * (ds_dz * dz_da * y0 / a**2 - 2.0 * s * y0 / a**3)
    )
    dfdt = jnp.stack([jnp.zeros_like(df1_da), df1_da])
    return dfdy, dfdt


# Vector field f(a, y); its JVP comes from the analytic Jacobian.
growth_rhs = jax.custom_jvp(_growth_field)


@growth_rhs.defjvp
def _growth_rhs_jvp(primals, tangents):
    a, y, ipar = primals
    a_dot, y_dot, _ = tangents  # coefficient tables are not differentiated
    dfdy, dfdt = growth_jacobian(a, y, ipar)
    return _growth_field(a, y, ipar), dfdy @ y_dot + dfdt * a_dot


def _vector_field(a, y, ipar):
    return growth_rhs(a, y, ipar)


@partial(jax.jit, static_argnames=(
    "a_ini", "D_ini", "dD_ini", "dt0", "rtol", "atol", "solver", "max_steps"))
def _solve_batch(a_targets, ipar, *, a_ini, D_ini, dD_ini, dt0, rtol, atol,
                 solver, max_steps):
    y0 = jnp.array([D_ini, dD_ini])

    def one(a_target):
        sol = ode.solve(
            solver, _vector_field, a_ini, a_target, y0,
            args=ipar, rtol=rtol, atol=atol, dt0=dt0, max_steps=max_steps,
        )
        return sol.ys[-1], ode.succeeded(sol)

    ys, ok = jax.vmap(one)(a_targets)
    return ys[:, 0], ys[:, 1], ok


def solve_growth(
    a_targets: Float[Array, "N"],
    ipar: IntegrationParams,
    prec: PrecisionParams = PrecisionParams(),
):
    """Integrate the growth equation from a_ini to each target scale factor.

    Args:
        a_targets: scale factors, each > prec.growth_a_ini
        ipar: w/xint coefficient tables
        prec: initial condition, tolerances and solver choice

    Returns:
        (D1, dD1/da, ok) arrays of shape (N,); ok flags finished integrations
    """
    return _solve_batch(
        jnp.asarray(a_targets, dtype=float),
        ipar,
        a_ini=prec.growth_a_ini,
        D_ini=prec.growth_D_ini,
        dD_ini=prec.growth_dD_ini,
        dt0=prec.growth_dt0,
        rtol=prec.growth_rtol,
        atol=prec.growth_atol,
        solver=prec.growth_solver,
        max_steps=prec.ode_max_steps,
    )


def growth_rate(D1, dD1_da, a):
    """f = d ln D1 / d ln a = a D1'(a) / D1(a)."""
    return dD1_da * a / D1
