"""Per-dimension Gaussian process ensemble for learned dynamics.

The ensemble predicts a D_t-dimensional target (typically a state delta)
from a state-action input by fitting one independent single-output regressor
per target column. Fitting and querying fan out over the dimensions and join
before returning.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from gpdynamics.errors import (
    DimensionMismatchError,
    EmptyInputError,
    FitFailureError,
    NotFittedError,
)
from gpdynamics.models.regressor_configuration import (
    GP_NAME,
    REGRESSOR_REGISTRY,
    initialize_regressor,
)
from gpdynamics.models.regressors import (
    BaseScalarRegressor,
    suppressed_bound_warnings,
)
from gpdynamics.utils.parallel import run_parallel_or_sequential
from gpdynamics.utils.persistence import (
    read_snapshot,
    split_snapshot,
    write_snapshot,
    write_text_dump,
)
from gpdynamics.utils.preprocessing import assemble_transitions, compute_diagnostics
from gpdynamics.wrapping import Diagnostics, ModelSettings, Transition

logger = logging.getLogger(__name__)


class RegressionEnsemble:
    """Multi-output probabilistic dynamics model built from scalar regressors.

    Every ``learn`` call discards the previous regressors and fits D_t fresh
    ones, one per target column, on the same samples. Dimensions share no
    hyperparameters. A failed ``learn`` leaves the previously fitted state
    (or the unfitted state) untouched.

    Calls to ``learn`` must be serialized by the caller and must not overlap
    with queries. Concurrent ``predict``/``predict_full`` calls are safe.
    There is no timeout: a hyperparameter optimization that never returns
    blocks ``learn``.

    Args:
        regressor_architecture: Name of the regressor back-end in
            REGRESSOR_REGISTRY. Chosen once for the life of the ensemble.
        regressor_params: Overrides of the back-end default parameters.
        noise: Observation noise variance handed to every sample of
            back-ends that accept caller supplied noise. Ignored otherwise.
        n_jobs: Width of the per-dimension fan-out. 1 runs sequentially,
            -1 uses all cores.
        snapshot_path: Where ``learn`` writes the binary snapshot of its
            training data. None disables the snapshot.
        random_state: Seed forwarded to the regressors.
    """

    def __init__(
        self,
        regressor_architecture: str = GP_NAME,
        regressor_params: Optional[Dict] = None,
        noise: float = 0.01,
        n_jobs: int = -1,
        snapshot_path: Optional[str] = "gpdynamics_data.bin",
        random_state: Optional[int] = None,
    ):
        self.settings = ModelSettings(
            regressor_architecture=regressor_architecture,
            regressor_params=regressor_params or {},
            noise=noise,
            n_jobs=n_jobs,
            snapshot_path=snapshot_path,
            random_state=random_state,
        )
        self.regressor_config = REGRESSOR_REGISTRY[regressor_architecture]

        self._regressors: List[BaseScalarRegressor] = []
        self._targets: Optional[np.ndarray] = None
        self._diagnostics: Optional[Diagnostics] = None

    @property
    def is_fitted(self) -> bool:
        return len(self._regressors) > 0

    @property
    def input_dim(self) -> Optional[int]:
        return self._regressors[0].input_dim if self.is_fitted else None

    @property
    def output_dim(self) -> Optional[int]:
        return len(self._regressors) if self.is_fitted else None

    @property
    def regressors(self) -> Tuple[BaseScalarRegressor, ...]:
        return tuple(self._regressors)

    @property
    def diagnostics(self) -> Optional[Diagnostics]:
        if self._diagnostics is None:
            return None
        return self._diagnostics.model_copy(deep=True)

    @property
    def limits(self) -> Optional[np.ndarray]:
        return None if self._diagnostics is None else self._diagnostics.limit.copy()

    @property
    def samples(self) -> np.ndarray:
        self._check_is_fitted()
        return np.array(self._regressors[0].samples())

    @property
    def targets(self) -> np.ndarray:
        self._check_is_fitted()
        return self._targets.copy()

    def learn(
        self,
        transitions: Sequence[Union[Transition, Sequence]],
        only_limits: bool = False,
    ) -> None:
        """Fit the ensemble on observed transitions.

        Args:
            transitions: Transition records or ``(state, action, target)``
                tuples.
            only_limits: Only refresh the input diagnostics. The fitted
                regressors are kept as they are.

        Raises:
            EmptyInputError: If ``transitions`` is empty.
            DimensionMismatchError: If transition dimensions are inconsistent.
            FitFailureError: If any dimension's regressor fails to fit.
        """
        samples, targets = assemble_transitions(transitions)
        diagnostics = compute_diagnostics(samples)

        if only_limits:
            self._diagnostics = diagnostics
            return

        if self.settings.snapshot_path is not None:
            write_snapshot(self.settings.snapshot_path, np.hstack([samples, targets]))

        self._fit(samples, targets, diagnostics)

    def learn_from_snapshot(
        self, path: str, input_dim: int, limit: Optional[int] = None
    ) -> None:
        """Fit the ensemble on a binary snapshot written by an earlier ``learn``.

        Args:
            path: Snapshot file.
            input_dim: Number of sample columns (state plus action) in the
                snapshot; the remaining columns are targets.
            limit: Use only the first ``limit`` rows. All rows when None.
        """
        samples, targets = split_snapshot(read_snapshot(path), input_dim, limit)
        if len(samples) == 0:
            raise EmptyInputError(f"Snapshot {path} holds no usable rows")
        logger.info(f"Loading {len(samples)} rows from {path}")
        self._fit(samples, targets, compute_diagnostics(samples))

    def _fit(
        self, samples: np.ndarray, targets: np.ndarray, diagnostics: Diagnostics
    ) -> None:
        n_dims = targets.shape[1]
        logger.info(f"GP samples: {len(samples)}, output dimensions: {n_dims}")

        regressors = [
            initialize_regressor(
                self.settings.regressor_architecture,
                input_dim=samples.shape[1],
                initialization_params=self.settings.regressor_params,
                random_state=self.settings.random_state,
            )
            for _ in range(n_dims)
        ]
        if self.regressor_config.accepts_noise:
            noise = np.full(len(samples), self.settings.noise)
        else:
            noise = None

        def fit_dimension(dimension: int) -> BaseScalarRegressor:
            regressor = regressors[dimension]
            try:
                regressor.fit(samples, targets[:, dimension], noise)
                regressor.optimize_hyperparameters(quiet=False)
            except Exception as e:
                raise FitFailureError(dimension, e) from e
            return regressor

        # Worker threads share one filter list, so the filter is held here
        with suppressed_bound_warnings():
            try:
                fitted = run_parallel_or_sequential(
                    fit_dimension, range(n_dims), n_jobs=self.settings.n_jobs
                )
            except FitFailureError as e:
                # Rebuilt so the chain survives joblib's re-raise
                raise FitFailureError(e.dimension, e.cause) from e.cause

        self._regressors = list(fitted)
        self._targets = targets.copy()
        self._diagnostics = diagnostics

        for dimension, params in enumerate(self.h_params()):
            logger.info(f"Dimension {dimension} hyperparameters: {np.exp(params)}")

    def h_params(self) -> List[np.ndarray]:
        """Log-space kernel hyperparameters of every dimension's regressor."""
        return [regressor.h_params() for regressor in self._regressors]

    def predict(self, x: np.ndarray) -> Tuple[np.ndarray, float]:
        """Predict the mean target and a single scalar uncertainty.

        The uncertainty is the arithmetic mean of the per-dimension variances,
        useful as a relative confidence signal only.
        """
        mean, variance = self.predict_full(x)
        return mean, float(np.mean(variance))

    def predict_full(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Predict the mean target and per-dimension variances at ``x``."""
        self._check_is_fitted()
        x = np.asarray(x, dtype=float).ravel()
        if len(x) != self.input_dim:
            raise DimensionMismatchError(
                f"Expected a query of length {self.input_dim}, got {len(x)}"
            )

        results = run_parallel_or_sequential(
            lambda regressor: regressor.query(x),
            self._regressors,
            n_jobs=self.settings.n_jobs,
        )
        mean = np.array([m[0] for m, _ in results])
        variance = np.array([s for _, s in results])
        return mean, variance

    def save(self, path: str) -> None:
        """Write the training samples and targets as a text dump."""
        self._check_is_fitted()
        write_text_dump(path, self.samples, self._targets)

    def _check_is_fitted(self) -> None:
        if not self.is_fitted:
            raise NotFittedError(
                "RegressionEnsemble must be fitted with learn before use"
            )
