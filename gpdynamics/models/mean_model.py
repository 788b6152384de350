import copy
import logging
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.optimize import minimize

from gpdynamics.errors import DimensionMismatchError, FitFailureError, NotFittedError
from gpdynamics.models.mean_functions import (
    LINEAR_NAME,
    MEAN_FUNCTION_REGISTRY,
    BaseMeanFunction,
)
from gpdynamics.utils.persistence import write_snapshot, write_text_dump
from gpdynamics.utils.preprocessing import assemble_transitions, compute_diagnostics
from gpdynamics.wrapping import Diagnostics, Transition

logger = logging.getLogger(__name__)


class MeanFunctionModel:
    """Uncertainty-blind dynamics model backed by one parametric mean function.

    All output dimensions are fit jointly by minimizing the total squared
    error with ``scipy.optimize.minimize``. The mean function is created on
    the first ``learn`` call and later calls warm-start from its current
    hyperparameters. Predictions always report zero variance, so this model
    must not feed algorithms that rely on calibrated uncertainty.

    Args:
        mean_function: Name in MEAN_FUNCTION_REGISTRY.
        mean_function_params: Extra constructor arguments of the mean function.
        optimizer_method: Method passed to ``scipy.optimize.minimize``.
        max_iter: Iteration cap of the optimizer.
        snapshot_path: Where ``learn`` writes a binary snapshot of its
            training data. None disables the snapshot.
    """

    def __init__(
        self,
        mean_function: str = LINEAR_NAME,
        mean_function_params: Optional[Dict] = None,
        optimizer_method: str = "L-BFGS-B",
        max_iter: int = 1000,
        snapshot_path: Optional[str] = None,
    ):
        if mean_function not in MEAN_FUNCTION_REGISTRY:
            raise ValueError(
                f"Unknown mean function: {mean_function}. "
                f"Choose from {sorted(MEAN_FUNCTION_REGISTRY)}."
            )
        self.mean_function = mean_function
        self.mean_function_params = mean_function_params or {}
        self.optimizer_method = optimizer_method
        self.max_iter = max_iter
        self.snapshot_path = snapshot_path

        self._mean: Optional[BaseMeanFunction] = None
        self._samples: Optional[np.ndarray] = None
        self._targets: Optional[np.ndarray] = None
        self._diagnostics: Optional[Diagnostics] = None

    @property
    def is_fitted(self) -> bool:
        return self._samples is not None

    @property
    def diagnostics(self) -> Optional[Diagnostics]:
        if self._diagnostics is None:
            return None
        return self._diagnostics.model_copy(deep=True)

    @property
    def samples(self) -> np.ndarray:
        self._check_is_fitted()
        return self._samples.copy()

    @property
    def targets(self) -> np.ndarray:
        self._check_is_fitted()
        return self._targets.copy()

    def h_params(self) -> np.ndarray:
        self._check_is_fitted()
        return self._mean.h_params()

    def learn(
        self,
        transitions: Sequence[Union[Transition, Sequence]],
        only_limits: bool = False,
    ) -> None:
        samples, targets = assemble_transitions(transitions)
        diagnostics = compute_diagnostics(samples)

        if only_limits:
            self._diagnostics = diagnostics
            return

        if self.snapshot_path is not None:
            write_snapshot(self.snapshot_path, np.hstack([samples, targets]))

        mean = self._mean
        if (
            mean is None
            or mean.input_dim != samples.shape[1]
            or mean.output_dim != targets.shape[1]
        ):
            mean = MEAN_FUNCTION_REGISTRY[self.mean_function](
                samples.shape[1], targets.shape[1], **self.mean_function_params
            )

        best_params = self._optimize(mean, samples, targets)
        logger.info(f"Mean function hyperparameters: {best_params}")

        mean.set_h_params(best_params)
        self._mean = mean
        self._samples = samples
        self._targets = targets
        self._diagnostics = diagnostics

    def _optimize(
        self, mean: BaseMeanFunction, samples: np.ndarray, targets: np.ndarray
    ) -> np.ndarray:
        if not (np.all(np.isfinite(samples)) and np.all(np.isfinite(targets))):
            raise FitFailureError(None, ValueError("Training data contains non-finite values"))
        candidate = copy.deepcopy(mean)

        def objective(params: np.ndarray):
            candidate.set_h_params(params)
            residuals = candidate(samples) - targets
            sse = float(np.sum(residuals**2))
            if not candidate.has_gradient:
                return sse
            return sse, candidate.squared_error_gradient(samples, residuals)

        result = minimize(
            fun=objective,
            x0=mean.h_params(),
            jac=mean.has_gradient,
            method=self.optimizer_method,
            options={"maxiter": self.max_iter},
        )

        if not np.all(np.isfinite(result.x)) or not np.isfinite(result.fun):
            raise FitFailureError(
                None, ValueError(f"Optimizer returned non-finite values: {result.message}")
            )
        if not result.success:
            logger.warning(
                f"Mean function optimization did not converge: {result.message}"
            )
        return result.x

    def predict(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return the mean function at ``x`` and a zero variance vector."""
        self._check_is_fitted()
        x = np.asarray(x, dtype=float).ravel()
        if len(x) != self._mean.input_dim:
            raise DimensionMismatchError(
                f"Expected a query of length {self._mean.input_dim}, got {len(x)}"
            )
        mu = self._mean(x)
        return mu, np.zeros(mu.shape[0])

    def predict_full(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        return self.predict(x)

    def save(self, path: str) -> None:
        self._check_is_fitted()
        write_text_dump(path, self._samples, self._targets)

    def _check_is_fitted(self) -> None:
        if not self.is_fitted:
            raise NotFittedError("MeanFunctionModel must be fitted with learn before use")
