"""Adaptive Gauss-Kronrod quadrature wrappers around quadax.

Every integral of the background engine (the two w(z) integrals and the
comoving distance) goes through ``integrate``, which returns the value
together with quadax's error estimate and status instead of raising, so it
can run under jit/vmap. Callers collect the statuses and decide afterwards
whether a degraded result is acceptable (see background.SolveDiagnostics).
"""

from __future__ import annotations

from typing import Callable, NamedTuple

import jax
import jax.numpy as jnp
import numpy as np
import quadax
from jaxtyping import Array, Float


class QuadResult(NamedTuple):
    """Value, absolute error estimate and status of one (or many) quadratures.

    status == 0 means the requested tolerance was met; anything else means
    the subdivision limit was hit or the integrand misbehaved.
    """

    value: Float[Array, "..."]
    error: Float[Array, "..."]
    status: Array

    def converged(self, floor: float = 0.0):
        """Boolean mask of acceptable results.

        A result whose error estimate is below ``floor`` is accepted even if
        quadax flagged it: with epsabs = 0 an identically vanishing integrand
        cannot meet a purely relative tolerance.
        """
        return (self.status == 0) | (self.error <= floor)

    def n_failed(self, floor: float = 0.0) -> int:
        return int(np.sum(~np.asarray(self.converged(floor))))


def integrate(
    fun: Callable,
    a: float,
    b: float,
    epsabs: float = 0.0,
    epsrel: float = 1e-5,
    order: int = 61,
    max_ninter: int = 64,
) -> QuadResult:
    """Integrate ``fun`` from a to b with adaptive Gauss-Kronrod quadrature.

    Args:
        fun: integrand, callable t -> f(t), must be JAX-traceable
        a, b: integration limits
        epsabs: absolute tolerance
        epsrel: relative tolerance
        order: Gauss-Kronrod rule order (15, 21, 31, 41, 51 or 61)
        max_ninter: maximum number of subintervals

    Returns:
        QuadResult(value, error, status)
    """
    y, info = quadax.quadgk(
        fun,
        jnp.array([a, b]),
        epsabs=epsabs,
        epsrel=epsrel,
        order=order,
        max_ninter=max_ninter,
    )
    # A zero-width interval is exactly zero; do not trust the estimator there.
    empty = a == b
    return QuadResult(
        value=jnp.where(empty, 0.0, y),
        error=jnp.where(empty, 0.0, info.err),
        status=jnp.where(empty, 0, info.status),
    )


def integrate_many(
    fun: Callable,
    lower: Float[Array, "N"],
    upper: Float[Array, "N"],
    **kwargs,
) -> QuadResult:
    """Vectorised ``integrate`` over arrays of limits (one quadrature per pair).

    The quadratures are independent; ``vmap`` runs them as one batched
    computation.
    """
    lower, upper = jnp.broadcast_arrays(jnp.asarray(lower, dtype=float),
                                        jnp.asarray(upper, dtype=float))
    return jax.vmap(lambda lo, hi: integrate(fun, lo, hi, **kwargs))(lower, upper)
