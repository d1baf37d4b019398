"""Test the Interpolant primitive (interpax-backed splines)."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from jaxbg.errors import (
    InterpolationError,
    NonMonotonicError,
    OutOfDomainError,
    ReleasedError,
)
from jaxbg.interpolation import METHODS, Interpolant


def test_spline_sin():
    """Natural cubic spline of sin(x) should match to high accuracy."""
    x = jnp.linspace(0, 2 * jnp.pi, 100)
    spl = Interpolant(x, jnp.sin(x))

    x_eval = jnp.linspace(0.1, 2 * jnp.pi - 0.1, 500)
    max_err = float(jnp.max(jnp.abs(spl.evaluate(x_eval) - jnp.sin(x_eval))))
    assert max_err < 1e-5, f"Spline sin error: {max_err:.2e}"


def test_spline_derivative_cos():
    """Derivative of spline(sin) should be cos."""
    x = jnp.linspace(0, 2 * jnp.pi, 200)
    spl = Interpolant(x, jnp.sin(x))

    x_eval = jnp.linspace(0.1, 2 * jnp.pi - 0.1, 100)
    max_err = float(jnp.max(jnp.abs(spl.derivative(x_eval) - jnp.cos(x_eval))))
    assert max_err < 1e-3, f"Spline derivative error: {max_err:.2e}"


def test_spline_exp():
    """Spline of exp(x) on a sparse grid."""
    x = jnp.linspace(0, 5, 50)
    spl = Interpolant(x, jnp.exp(x))

    x_eval = jnp.linspace(0.1, 4.9, 200)
    rel_err = jnp.abs(spl.evaluate(x_eval) - jnp.exp(x_eval)) / jnp.exp(x_eval)
    max_rel_err = float(jnp.max(rel_err))
    assert max_rel_err < 5e-4, f"Spline exp rel error: {max_rel_err:.2e} (50 points on exp(0..5))"


@pytest.mark.parametrize("method", sorted(METHODS))
def test_reproduces_knots(method):
    """Every method passes through its samples."""
    x = jnp.linspace(0.0, 3.0, 31)
    y = jnp.exp(-x) * jnp.cos(2 * x)
    spl = Interpolant(x, y, method)
    np.testing.assert_allclose(spl.evaluate(x), y, rtol=0, atol=1e-12)


@pytest.mark.parametrize("method", sorted(set(METHODS) - {"monotonic-0"}))
def test_reproduces_straight_line(method):
    """Methods with free end slopes are exact on linear data, derivative included."""
    x = jnp.linspace(-1.0, 2.0, 13)
    spl = Interpolant(x, 3.0 * x - 0.5, method)
    x_eval = jnp.linspace(-0.95, 1.95, 41)
    np.testing.assert_allclose(spl.evaluate(x_eval), 3.0 * x_eval - 0.5, atol=1e-10)
    np.testing.assert_allclose(spl.derivative(x_eval), 3.0, atol=1e-9)


def test_endpoints_are_in_domain():
    x = jnp.linspace(0.0, 1.0, 11)
    spl = Interpolant(x, x**2)
    assert spl.domain == (0.0, 1.0)
    np.testing.assert_allclose(spl.evaluate(jnp.array([0.0, 1.0])), [0.0, 1.0], atol=1e-14)


def test_scalar_and_shaped_queries():
    x = jnp.linspace(0.0, 1.0, 21)
    spl = Interpolant(x, 2.0 * x)
    assert spl(0.25).shape == ()
    assert spl.evaluate(jnp.full((3, 4), 0.5)).shape == (3, 4)


class TestInterpolantErrors:
    """Invalid samples and invalid queries."""

    def test_out_of_domain_raises(self):
        spl = Interpolant(jnp.linspace(0.0, 1.0, 5), jnp.arange(5.0))
        with pytest.raises(OutOfDomainError) as exc:
            spl.evaluate(1.5)
        assert exc.value.value == 1.5
        assert exc.value.domain == (0.0, 1.0)

    def test_below_domain_raises_for_derivative(self):
        spl = Interpolant(jnp.linspace(0.0, 1.0, 5), jnp.arange(5.0))
        with pytest.raises(OutOfDomainError):
            spl.derivative(jnp.array([0.5, -1e-3]))

    def test_nan_query_raises(self):
        spl = Interpolant(jnp.linspace(0.0, 1.0, 5), jnp.arange(5.0))
        with pytest.raises(OutOfDomainError):
            spl.evaluate(jnp.nan)

    def test_out_of_domain_traced_is_nan(self):
        """Inside jit there is no exception; out-of-range queries return NaN."""
        spl = Interpolant(jnp.linspace(0.0, 1.0, 5), jnp.arange(5.0))
        out = jax.jit(lambda s, q: s.evaluate(q))(spl, jnp.array([0.5, 2.0]))
        assert np.isfinite(out[0])
        assert np.isnan(out[1])

    def test_non_monotonic_rejected(self):
        x = jnp.array([0.0, 1.0, 1.0, 2.0])
        with pytest.raises(NonMonotonicError) as exc:
            Interpolant(x, jnp.zeros(4))
        assert exc.value.index == 1

    def test_decreasing_rejected(self):
        with pytest.raises(NonMonotonicError):
            Interpolant(jnp.array([3.0, 2.0, 1.0]), jnp.zeros(3))

    def test_too_few_points(self):
        with pytest.raises(InterpolationError, match="at least 5"):
            Interpolant(jnp.arange(4.0), jnp.arange(4.0), "akima")

    def test_linear_needs_two_points(self):
        spl = Interpolant(jnp.array([0.0, 1.0]), jnp.array([1.0, 3.0]), "linear")
        assert float(spl(0.5)) == pytest.approx(2.0)

    def test_unknown_method(self):
        with pytest.raises(InterpolationError, match="unknown interpolation method"):
            Interpolant(jnp.arange(4.0), jnp.arange(4.0), "quintic")

    def test_non_finite_samples(self):
        with pytest.raises(InterpolationError, match="finite"):
            Interpolant(jnp.arange(4.0), jnp.array([0.0, jnp.inf, 1.0, 2.0]))

    def test_shape_mismatch(self):
        with pytest.raises(InterpolationError, match="equal length"):
            Interpolant(jnp.arange(4.0), jnp.arange(5.0))


class TestRelease:

    def test_use_after_release(self):
        spl = Interpolant(jnp.linspace(0.0, 1.0, 5), jnp.arange(5.0), name="H")
        spl.release()
        with pytest.raises(ReleasedError, match="'H'"):
            spl.evaluate(0.5)
        with pytest.raises(ReleasedError):
            spl.domain

    def test_release_twice(self):
        spl = Interpolant(jnp.linspace(0.0, 1.0, 5), jnp.arange(5.0))
        spl.release()
        spl.release()
        assert "released" in repr(spl)

    def test_release_does_not_touch_caller_arrays(self):
        x = jnp.linspace(0.0, 1.0, 5)
        spl = Interpolant(x, x)
        spl.release()
        assert float(x[-1]) == 1.0


def test_spline_pytree():
    """Interpolant should work as a JAX pytree (flatten/unflatten)."""
    x = jnp.linspace(0, 1, 10)
    spl = Interpolant(x, x**2, "akima", name="sq")

    leaves, treedef = jax.tree_util.tree_flatten(spl)
    spl2 = jax.tree_util.tree_unflatten(treedef, leaves)
    assert spl2.method == "akima" and spl2.name == "sq"
    np.testing.assert_allclose(spl2.evaluate(0.5), spl.evaluate(0.5))


def test_spline_grad():
    """Gradient with respect to the samples flows through the interpolant."""
    x = jnp.linspace(0, 1, 20)

    def f(scale):
        return Interpolant(x, scale * x**2).evaluate(0.5)

    g = float(jax.grad(f)(1.0))
    assert abs(g - 0.25) < 1e-3, f"Spline grad: {g:.6f}, expected 0.25"


def test_concurrent_readers():
    """One interpolant can be evaluated by many vmapped lanes at once."""
    x = jnp.linspace(0.0, 2.0, 41)
    spl = Interpolant(x, jnp.sin(x))
    q = jnp.linspace(0.0, 2.0, 64)
    batched = jax.vmap(spl.evaluate)(q)
    np.testing.assert_allclose(batched, spl.evaluate(q), rtol=0, atol=1e-15)
