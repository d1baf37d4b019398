"""Exception hierarchy for jaxbg.

Every failure the background engine reports derives from BackgroundError,
and additionally from the builtin exception a caller would naturally catch
(ValueError for bad input, ArithmeticError for numerical trouble, ...).

    BackgroundError
    ├── ParameterError          (ValueError)
    ├── InterpolationError      (ValueError)
    │   └── NonMonotonicError
    ├── OutOfDomainError        (ValueError)
    ├── ConvergenceError        (ArithmeticError)
    ├── NonFiniteResultError    (FloatingPointError)
    └── ReleasedError           (RuntimeError)
"""

from __future__ import annotations


class BackgroundError(Exception):
    """Base class for all errors raised by jaxbg."""


class ParameterError(BackgroundError, ValueError):
    """Invalid cosmological or precision parameters."""


class InterpolationError(BackgroundError, ValueError):
    """Sample arrays cannot be turned into an interpolant."""


class NonMonotonicError(InterpolationError):
    """Independent variable of an interpolant is not strictly increasing."""

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.index = index


class OutOfDomainError(BackgroundError, ValueError):
    """An interpolant was queried outside the range it was built on."""

    def __init__(self, value, domain: tuple[float, float], name: str | None = None):
        self.value = value
        self.domain = domain
        self.name = name
        label = f"{name}: " if name else ""
        super().__init__(
            f"{label}query {value!r} outside interpolation domain "
            f"[{domain[0]:.10g}, {domain[1]:.10g}]"
        )


class ConvergenceError(BackgroundError, ArithmeticError):
    """Quadrature or ODE integration did not reach the requested tolerance."""

    def __init__(self, message: str, diagnostics=None):
        super().__init__(message)
        self.diagnostics = diagnostics


class NonFiniteResultError(BackgroundError, FloatingPointError):
    """A solve produced NaN or infinite values."""

    def __init__(self, message: str, offending: dict | None = None):
        super().__init__(message)
        self.offending = offending or {}


class ReleasedError(BackgroundError, RuntimeError):
    """An interpolant was used after its buffers were released."""
