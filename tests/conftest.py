"""Test fixtures for the jaxbg test suite.

Provides:
- Solved background models for the fiducial LCDM, a CPL dark-energy model
  and Einstein-de Sitter (module/session scoped, solved once)
- Default and reduced PrecisionParams
- --fast flag for quick regression checks
"""

# Enable 64-bit JAX (required for the 1e-6 level comparisons)
import jax
jax.config.update("jax_enable_x64", True)

import numpy as np
import pytest

from jaxbg import CosmologicalParameters, PrecisionParams, background_solve, w0wa


def pytest_addoption(parser):
    parser.addoption(
        "--fast", action="store_true", default=False,
        help="Use the reduced tabulation grid for the fiducial solve"
    )


@pytest.fixture
def fast_mode(request):
    return request.config.getoption("--fast")


@pytest.fixture(scope="session")
def prec_fast():
    return PrecisionParams.fast()


@pytest.fixture(scope="session")
def lcdm_params():
    """Fiducial LCDM: Omega_cdm=0.25, Omega_b=0.05, Omega_g=0, Omega_de=0.7, w=-1."""
    return CosmologicalParameters(background_bins=1000)


@pytest.fixture(scope="session")
def lcdm_bg(request, lcdm_params):
    """Fiducial LCDM background at reference precision (reduced with --fast)."""
    fast = request.config.getoption("--fast")
    prec = PrecisionParams.fast() if fast else PrecisionParams.reference()
    return background_solve(lcdm_params, prec)


@pytest.fixture(scope="session")
def cpl_bg(prec_fast):
    """w0-wa dark energy with w0=-0.9, wa=0.2 and a small radiation component."""
    params = CosmologicalParameters(
        Omega_cdm=0.26, Omega_b=0.05, Omega_g=5e-5, Omega_de=0.68995,
        w=w0wa(-0.9, 0.2), background_bins=400,
    )
    return background_solve(params, prec_fast)


@pytest.fixture(scope="session")
def eds_bg(prec_fast):
    """Einstein-de Sitter: Omega_m = 1, no dark energy."""
    params = CosmologicalParameters(
        Omega_cdm=0.95, Omega_b=0.05, Omega_de=0.0, background_bins=300,
    )
    return background_solve(params, prec_fast)


def relative_error(computed, reference, eps=1e-30):
    """Compute relative error, avoiding division by zero."""
    return np.abs(computed - reference) / (np.abs(reference) + eps)


def max_relative_error(computed, reference, eps=1e-30):
    """Return (max_rel_err, index_of_max)."""
    rel = relative_error(np.asarray(computed), np.asarray(reference), eps)
    idx = np.argmax(rel)
    return float(rel.flat[idx]), int(idx)


def assert_close(computed, reference, rtol, name="quantity", coordinate=None):
    """Assert computed matches reference within rtol, with clear error message."""
    computed = np.atleast_1d(np.asarray(computed, dtype=float))
    reference = np.broadcast_to(np.asarray(reference, dtype=float), computed.shape)
    max_err, idx = max_relative_error(computed, reference)
    if max_err > rtol:
        coord_str = f" at index {idx}"
        if coordinate is not None:
            coord_str = f" at {np.asarray(coordinate).flat[idx]:.6g}"
        msg = (
            f"{name}: max rel error {max_err:.4%}{coord_str}"
            f" (expected {reference.flat[idx]:.6e}, got {computed.flat[idx]:.6e})"
            f" -- tolerance {rtol:.4%}"
        )
        raise AssertionError(msg)
