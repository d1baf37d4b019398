"""Convergence and finiteness bookkeeping for a background solve.

The numerical kernels never raise: each quadrature and each growth
integration returns a status next to its value. ``SolveDiagnostics`` gathers
those statuses for one solve; ``report`` then logs them and, in strict mode,
turns them into a ConvergenceError. ``require_finite`` is the last gate
before results leave the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from loguru import logger

from jaxbg.errors import ConvergenceError, NonFiniteResultError


@dataclass(frozen=True)
class SolveDiagnostics:
    """Outcome of the numerical integrations of one solve.

    Counts are numbers of non-converged quadratures (per tabulated integral)
    and non-finished growth integrations; the ``*_bins`` tuples list the
    affected output bin indices.
    """

    wint_failures: int = 0
    xint_failures: int = 0
    chi_failures: int = 0
    growth_failures: int = 0
    chi_failed_bins: tuple[int, ...] = ()
    growth_failed_bins: tuple[int, ...] = ()
    max_quad_error: float = 0.0
    elapsed_s: float = 0.0
    notes: tuple[str, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return not (self.wint_failures or self.xint_failures
                    or self.chi_failures or self.growth_failures)

    def summary(self) -> str:
        if self.ok:
            return "all integrations converged"
        parts = []
        if self.wint_failures:
            parts.append(f"{self.wint_failures} wint quadratures")
        if self.xint_failures:
            parts.append(f"{self.xint_failures} xint quadratures")
        if self.chi_failures:
            parts.append(f"{self.chi_failures} comoving-distance quadratures "
                         f"(bins {_short(self.chi_failed_bins)})")
        if self.growth_failures:
            parts.append(f"{self.growth_failures} growth integrations "
                         f"(bins {_short(self.growth_failed_bins)})")
        return "not converged: " + ", ".join(parts)


def _short(indices, limit: int = 8) -> str:
    shown = ", ".join(str(i) for i in indices[:limit])
    return shown + (", ..." if len(indices) > limit else "")


def failed_indices(ok_mask) -> tuple[int, ...]:
    return tuple(int(i) for i in np.flatnonzero(~np.asarray(ok_mask)))


def report(diagnostics: SolveDiagnostics, strict: bool) -> None:
    """Log the diagnostics; raise ConvergenceError if strict and not ok."""
    if diagnostics.ok:
        logger.debug("Background integrations converged (max quad error {:.3e})",
                     diagnostics.max_quad_error)
        return
    if strict:
        raise ConvergenceError(diagnostics.summary(), diagnostics=diagnostics)
    logger.warning("Background solve degraded: {}", diagnostics.summary())


def require_finite(arrays: dict, coordinate=None, label: str = "background") -> None:
    """Raise NonFiniteResultError if any array holds NaN or inf.

    Logs a dump of every offending quantity (index, coordinate, value) first,
    so a failed solve can be diagnosed from the log alone.
    """
    offending = {}
    for name, values in arrays.items():
        values = np.asarray(values)
        bad = np.flatnonzero(~np.isfinite(values))
        if bad.size:
            offending[name] = bad
    if not offending:
        return

    coord = None if coordinate is None else np.asarray(coordinate)
    for name, bad in offending.items():
        values = np.asarray(arrays[name])
        for i in bad[:5]:
            where = f"z={coord[i]:.6g}" if coord is not None else f"index {i}"
            logger.error("{} {}: non-finite value {} at {}", label, name, values[i], where)
    names = ", ".join(f"{k} ({v.size})" for k, v in offending.items())
    raise NonFiniteResultError(f"{label} produced non-finite values in: {names}",
                               offending={k: tuple(int(i) for i in v)
                                          for k, v in offending.items()})
