"""Exceptions raised by the variogram fitting routines."""


class VariogramFitError(Exception):
    """Base class for all fitting errors."""


class InvalidInputError(VariogramFitError, ValueError):
    """Malformed sample curve, model template or kappa grid."""


class InsufficientDataError(VariogramFitError, ValueError):
    """The sample curve carries too little information to fit anything."""


class FitDivergenceError(VariogramFitError, RuntimeError):
    """Every kappa of a grid search failed to converge."""


class NoConvergentModelError(VariogramFitError, RuntimeError):
    """None of the candidate models converged."""
