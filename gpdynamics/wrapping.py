from typing import Any, Dict, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, field_validator

from gpdynamics.models.regressor_configuration import REGRESSOR_REGISTRY


def _as_read_only_vector(value) -> np.ndarray:
    vector = np.array(value, dtype=float)
    if vector.ndim != 1:
        raise ValueError(f"Expected a 1-D vector, got shape {vector.shape}")
    vector.setflags(write=False)
    return vector


class Transition(BaseModel):
    """One observed transition of the controlled system.

    The target is usually the state delta produced by applying ``action`` in
    ``state``. Vectors are copied into read-only float arrays on construction.
    """

    state: np.ndarray
    action: np.ndarray
    target: np.ndarray

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @field_validator("state", "action", "target", mode="before")
    def coerce_vector(cls, v):
        return _as_read_only_vector(v)

    @classmethod
    def from_tuple(cls, observation: Sequence) -> "Transition":
        state, action, target = observation
        return cls(state=state, action=action, target=target)


class Diagnostics(BaseModel):
    """Column statistics of the training inputs (state followed by action)."""

    mean: np.ndarray
    std: np.ndarray
    limit: np.ndarray

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ModelSettings(BaseModel):
    """Construction-time settings of the regression ensemble."""

    regressor_architecture: str = "gp"
    regressor_params: Dict[str, Any] = {}
    noise: float = 0.01
    n_jobs: int = -1
    snapshot_path: Optional[str] = "gpdynamics_data.bin"
    random_state: Optional[int] = None

    @field_validator("regressor_architecture")
    def architecture_registered(cls, v):
        if v not in REGRESSOR_REGISTRY:
            raise ValueError(
                f"Unknown regressor architecture: {v}. "
                f"Choose from {sorted(REGRESSOR_REGISTRY)}."
            )
        return v

    @field_validator("noise")
    def noise_non_negative(cls, v):
        if v < 0:
            raise ValueError("noise must be non-negative")
        return v

    @field_validator("n_jobs")
    def n_jobs_non_zero(cls, v):
        if v == 0:
            raise ValueError("n_jobs must be a non-zero integer")
        return v
