"""Interpolation primitive for jaxbg.

Provides ``Interpolant``, a 1-D interpolating function registered as a JAX
pytree so it can live inside other pytrees (e.g. BackgroundModel, the ODE
coefficient bundle) and flow through jit/vmap.

The piecewise polynomials come from interpax; the derivative table each
method needs (natural-spline second-derivative solve, Akima slopes, ...) is
computed once at construction, so evaluation is a binary search plus a
polynomial evaluation.

Key properties:
- Stateless evaluation: no cached lookup index, so one Interpolant may be
  read by any number of concurrent evaluations.
- Construction from concrete arrays validates the samples (finite, strictly
  increasing x, enough points for the method) and raises InterpolationError.
- Concrete queries outside [x[0], x[-1]] raise OutOfDomainError; traced
  queries (inside jit/vmap/an ODE solve) return NaN there instead.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
import numpy as np
from interpax import approx_df, interp1d
from jaxtyping import Array, Float

from jaxbg.errors import (
    InterpolationError,
    NonMonotonicError,
    OutOfDomainError,
    ReleasedError,
)

METHODS = {
    "linear": 2,
    "cubic": 3,
    "cubic2": 3,
    "catmull-rom": 3,
    "monotonic": 3,
    "monotonic-0": 3,
    "akima": 5,
}
"""Supported interpolation methods and the minimum number of samples each needs.

``cubic2`` is the natural cubic spline (C2, zero curvature at both ends),
``monotonic`` the Fritsch-Carlson monotone cubic, ``akima`` the Akima spline.
"""

DEFAULT_METHOD = "cubic2"


def _concrete(value):
    """Return ``value`` as a numpy array, or None if it is a JAX tracer."""
    try:
        return np.asarray(value)
    except jax.errors.TracerArrayConversionError:
        return None


def validate_samples(x, y, method: str = DEFAULT_METHOD) -> None:
    """Check that (x, y) can be interpolated with ``method``.

    Raises:
        InterpolationError: unknown method, shape mismatch, too few points,
            non-finite samples.
        NonMonotonicError: x not strictly increasing.
    """
    if method not in METHODS:
        raise InterpolationError(
            f"unknown interpolation method {method!r}; choose one of {sorted(METHODS)}"
        )
    if jnp.ndim(x) != 1 or jnp.shape(x) != jnp.shape(y):
        raise InterpolationError(
            f"x and y must be 1-D arrays of equal length, got shapes "
            f"{jnp.shape(x)} and {jnp.shape(y)}"
        )
    n_min = METHODS[method]
    if jnp.shape(x)[0] < n_min:
        raise InterpolationError(
            f"method {method!r} needs at least {n_min} points, got {jnp.shape(x)[0]}"
        )

    x_np, y_np = _concrete(x), _concrete(y)
    if x_np is None or y_np is None:
        # Traced samples cannot be inspected; interpolation yields NaN instead.
        return
    if not (np.all(np.isfinite(x_np)) and np.all(np.isfinite(y_np))):
        bad = int(np.flatnonzero(~(np.isfinite(x_np) & np.isfinite(y_np)))[0])
        raise InterpolationError(
            f"samples must be finite (first bad sample at index {bad}: "
            f"x={x_np[bad]!r}, y={y_np[bad]!r})"
        )
    steps = np.diff(x_np)
    if np.any(steps <= 0.0):
        bad = int(np.flatnonzero(steps <= 0.0)[0])
        raise NonMonotonicError(
            f"x must be strictly increasing (x[{bad}]={x_np[bad]!r} >= "
            f"x[{bad + 1}]={x_np[bad + 1]!r})",
            index=bad,
        )


@jax.tree_util.register_pytree_node_class
class Interpolant:
    """Continuous, differentiable function reconstructed from samples.

    Attributes:
        x: knot positions, shape (N,), strictly increasing
        y: knot values, shape (N,)
        fx: first-derivative table used by the cubic methods (None for linear)
        method: interpolation method, one of METHODS
    """

    def __init__(
        self,
        x: Float[Array, "N"],
        y: Float[Array, "N"],
        method: str = DEFAULT_METHOD,
        name: str | None = None,
    ):
        """Build the interpolant; copies the samples.

        Args:
            x: knot positions, shape (N,), must be strictly increasing
            y: knot values, shape (N,)
            method: interpolation method, one of METHODS
            name: label used in error messages
        """
        validate_samples(x, y, method)
        self.x = jnp.array(x, dtype=float)
        self.y = jnp.array(y, dtype=float)
        self.method = method
        self.name = name
        self.fx = None if method == "linear" else approx_df(self.x, self.y, method)
        self._released = False

    # --- evaluation ---

    @property
    def domain(self) -> tuple[float, float]:
        """Closed interval [x[0], x[-1]] on which queries are valid."""
        self._check_live()
        return float(self.x[0]), float(self.x[-1])

    def _check_live(self):
        if self._released:
            label = f" {self.name!r}" if self.name else ""
            raise ReleasedError(f"interpolant{label} has been released")

    def _check_domain(self, x_eval):
        x_np, knots = _concrete(x_eval), _concrete(self.x)
        if x_np is None or knots is None or x_np.size == 0:
            return
        lo, hi = float(knots[0]), float(knots[-1])
        outside = (x_np < lo) | (x_np > hi) | np.isnan(x_np)
        if np.any(outside):
            bad = x_np.reshape(-1)[np.flatnonzero(outside.reshape(-1))[0]]
            raise OutOfDomainError(float(bad), (lo, hi), name=self.name)

    def _interp(self, x_eval, derivative: int):
        x_eval = jnp.asarray(x_eval, dtype=self.x.dtype)
        kwargs = {} if self.fx is None else {"fx": self.fx}
        out = interp1d(
            jnp.ravel(x_eval), self.x, self.y,
            method=self.method, derivative=derivative, extrap=False, **kwargs,
        )
        return out.reshape(x_eval.shape)

    def evaluate(self, x_eval: Float[Array, "..."]) -> Float[Array, "..."]:
        """Evaluate the interpolant at given points (any shape)."""
        self._check_live()
        self._check_domain(x_eval)
        return self._interp(x_eval, 0)

    def derivative(self, x_eval: Float[Array, "..."]) -> Float[Array, "..."]:
        """Evaluate dy/dx of the interpolant at given points (any shape)."""
        self._check_live()
        self._check_domain(x_eval)
        return self._interp(x_eval, 1)

    __call__ = evaluate

    def release(self) -> None:
        """Free the sample buffers. Further use raises ReleasedError."""
        if self._released:
            return
        for buf in (self.x, self.y, self.fx):
            if isinstance(buf, jax.Array) and not buf.is_deleted():
                buf.delete()
        self._released = True

    def __repr__(self):
        label = f"{self.name}, " if self.name else ""
        if self._released:
            return f"Interpolant({label}released)"
        return f"Interpolant({label}method={self.method!r}, n={self.x.shape[0]})"

    # --- JAX pytree registration ---

    def tree_flatten(self):
        children = (self.x, self.y, self.fx)
        aux_data = (self.method, self.name)
        return children, aux_data

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        obj = object.__new__(cls)
        obj.x, obj.y, obj.fx = children
        obj.method, obj.name = aux_data
        obj._released = False
        return obj
