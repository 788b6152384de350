from typing import Optional


class GPDynamicsError(Exception):
    """Base class for errors raised by gpdynamics models."""


class EmptyInputError(GPDynamicsError, ValueError):
    """No transitions were supplied to a learning call."""


class DimensionMismatchError(GPDynamicsError, ValueError):
    """Vector lengths are inconsistent across transitions or with a query."""


class FitFailureError(GPDynamicsError, RuntimeError):
    """A regressor failed to fit or to optimize its hyperparameters.

    Args:
        dimension: Output dimension whose regressor failed. None when the
            failure is not tied to a single dimension (joint fits).
        cause: The underlying exception.
    """

    def __init__(self, dimension: Optional[int], cause: BaseException):
        self.dimension = dimension
        self.cause = cause
        if dimension is None:
            message = f"Model fit failed: {cause}"
        else:
            message = f"Fit failed for output dimension {dimension}: {cause}"
        super().__init__(message)

    def __reduce__(self):
        return (type(self), (self.dimension, self.cause))


class NotFittedError(GPDynamicsError, RuntimeError):
    """The model was queried or saved before a successful learn call."""
