import inspect
from copy import deepcopy
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict

from gpdynamics.models.regressors import (
    BaseScalarRegressor,
    FixedNoiseGP,
    LearnedNoiseGP,
)


class RegressorConfig(BaseModel):
    regressor_name: str
    regressor_class: Type
    default_params: Dict[str, Any]
    accepts_noise: bool

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def is_scalar_regressor(self) -> bool:
        return issubclass(self.regressor_class, BaseScalarRegressor)


# Reference names of regressor back-ends:
GP_NAME: str = "gp"  # Squared exponential ARD kernel, caller supplied noise
GP_MATERN_NAME: str = "gp_matern"  # Matern 5/2 ARD kernel, caller supplied noise
GP_LEARNED_NOISE_NAME: str = "gp_learned_noise"  # Noise level is a hyperparameter

REGRESSOR_REGISTRY = {
    GP_NAME: RegressorConfig(
        regressor_name=GP_NAME,
        regressor_class=FixedNoiseGP,
        default_params={
            "kernel": "rbf",
            "alpha": 1e-10,
            "n_restarts_optimizer": 2,
        },
        accepts_noise=True,
    ),
    GP_MATERN_NAME: RegressorConfig(
        regressor_name=GP_MATERN_NAME,
        regressor_class=FixedNoiseGP,
        default_params={
            "kernel": "matern",
            "alpha": 1e-10,
            "n_restarts_optimizer": 2,
        },
        accepts_noise=True,
    ),
    GP_LEARNED_NOISE_NAME: RegressorConfig(
        regressor_name=GP_LEARNED_NOISE_NAME,
        regressor_class=LearnedNoiseGP,
        default_params={
            "kernel": "rbf",
            "alpha": 1e-10,
            "n_restarts_optimizer": 2,
            "noise_level": 1e-2,
        },
        accepts_noise=False,
    ),
}


def initialize_regressor(
    regressor_architecture: str,
    input_dim: int,
    initialization_params: Dict = None,
    random_state: Optional[int] = None,
) -> BaseScalarRegressor:
    """Create a fresh, unfitted regressor from the registry.

    Args:
        regressor_architecture: Registered regressor name from REGRESSOR_REGISTRY.
        input_dim: Length of the regressor's input vectors.
        initialization_params: Overrides of the registry default parameters.
        random_state: Seed, forwarded only to classes accepting random_state.

    Raises:
        KeyError: If regressor_architecture is not registered.
    """
    regressor_config = REGRESSOR_REGISTRY[regressor_architecture]

    params = deepcopy(regressor_config.default_params)
    if initialization_params:
        params.update(initialization_params)

    if random_state is not None:
        init_signature = inspect.signature(regressor_config.regressor_class.__init__)
        accepts_random_state = "random_state" in init_signature.parameters or any(
            p.kind == inspect.Parameter.VAR_KEYWORD
            for p in init_signature.parameters.values()
        )
        if accepts_random_state:
            params["random_state"] = random_state

    return regressor_config.regressor_class(input_dim, 1, **params)
