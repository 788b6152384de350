"""gpdynamics package initialization.

Learned dynamics models for model-based policy search: a per-dimension
Gaussian process ensemble and a lightweight mean-function model that share
the same learn / predict / save contract.
"""

from gpdynamics.errors import (
    GPDynamicsError,
    EmptyInputError,
    DimensionMismatchError,
    FitFailureError,
    NotFittedError,
)
from gpdynamics.wrapping import Transition, Diagnostics, ModelSettings
from gpdynamics.models.ensemble import RegressionEnsemble
from gpdynamics.models.mean_model import MeanFunctionModel

__all__ = [
    "GPDynamicsError",
    "EmptyInputError",
    "DimensionMismatchError",
    "FitFailureError",
    "NotFittedError",
    "Transition",
    "Diagnostics",
    "ModelSettings",
    "RegressionEnsemble",
    "MeanFunctionModel",
]
