"""Single-output Gaussian process regressors used as ensemble members.

Every regressor answers one output dimension of the dynamics model. The
ensemble drives them through a fixed protocol: ``fit`` computes the posterior
under the current kernel hyperparameters, ``optimize_hyperparameters``
maximizes the log marginal likelihood and refits, and ``query`` returns the
posterior mean and variance at a single input.

Two noise profiles exist. ``FixedNoiseGP`` takes a per-sample observation
noise variance from the caller. ``LearnedNoiseGP`` ignores any supplied noise
and learns a white-noise level as one of its kernel hyperparameters.
"""

import copy
import logging
import warnings
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from sklearn.gaussian_process import GaussianProcessRegressor
from sklearn.gaussian_process.kernels import (
    RBF,
    Matern,
    RationalQuadratic,
    WhiteKernel,
    ConstantKernel as C,
    Kernel,
)

from gpdynamics.errors import DimensionMismatchError, NotFittedError

logger = logging.getLogger(__name__)


@contextmanager
def suppressed_bound_warnings():
    """Silence sklearn's hyperparameter-at-bound warnings for the enclosed block.

    The warnings filter list is process wide, so enter this from the thread
    that starts a fan-out, never from inside the worker threads.
    """
    with warnings.catch_warnings():
        warnings.filterwarnings(
            "ignore",
            message=".*close to the specified.*bound.*",
            category=UserWarning,
            module="sklearn.gaussian_process.kernels",
        )
        yield


class BaseScalarRegressor(ABC):
    """Capability shared by all ensemble members.

    Args:
        input_dim: Length of the input vectors (state plus action).
        output_dim: Number of outputs. Only single-output regressors exist.
    """

    def __init__(self, input_dim: int, output_dim: int = 1):
        if output_dim != 1:
            raise ValueError(
                f"{type(self).__name__} models a single output, got {output_dim}"
            )
        self.input_dim = input_dim
        self.output_dim = output_dim
        self.X_train_ = None

    @property
    def is_fitted(self) -> bool:
        return self.X_train_ is not None

    @abstractmethod
    def fit(
        self,
        samples: Sequence[np.ndarray],
        targets: Sequence[float],
        noise: Optional[Sequence[float]] = None,
    ) -> "BaseScalarRegressor":
        """Condition the model on training data with current hyperparameters."""

    @abstractmethod
    def optimize_hyperparameters(self, quiet: bool = True) -> None:
        """Tune hyperparameters on the data passed to ``fit`` and refit.

        ``quiet`` silences optimizer bound warnings. Pass False when the
        caller already holds ``suppressed_bound_warnings``.
        """

    @abstractmethod
    def query(self, x: np.ndarray) -> Tuple[np.ndarray, float]:
        """Return the posterior (mean vector of length 1, variance) at ``x``."""

    @abstractmethod
    def h_params(self) -> np.ndarray:
        """Return the hyperparameter vector in log space."""

    def samples(self) -> List[np.ndarray]:
        """Return copies of the training inputs the model was fit on."""
        if not self.is_fitted:
            raise NotFittedError(f"{type(self).__name__} has not been fitted")
        return [row.copy() for row in self.X_train_]


class GaussianProcessBase(BaseScalarRegressor):
    """Exact GP regression on internally standardized targets.

    Targets are centered and scaled by their standard deviation before
    fitting (a zero deviation is replaced by 1) and predictions are mapped
    back to the original scale.

    Args:
        input_dim: Length of the input vectors.
        output_dim: Must be 1.
        kernel: Kernel name ("rbf", "matern", "rational_quadratic"), a
            scikit-learn Kernel, or None for "rbf". Named kernels use one
            length scale per input dimension.
        alpha: Diagonal jitter added to the covariance matrix.
        n_restarts_optimizer: Extra random restarts of the marginal
            likelihood optimizer.
        random_state: Seed for the optimizer restarts.
    """

    def __init__(
        self,
        input_dim: int,
        output_dim: int = 1,
        kernel: Optional[Union[str, Kernel]] = None,
        alpha: float = 1e-10,
        n_restarts_optimizer: int = 2,
        random_state: Optional[int] = None,
    ):
        super().__init__(input_dim, output_dim)
        self.kernel = kernel
        self.alpha = alpha
        self.n_restarts_optimizer = n_restarts_optimizer
        self.random_state = random_state

        self.y_train_ = None
        self.y_train_mean_ = None
        self.y_train_std_ = None
        self.kernel_ = None
        self.alpha_ = None
        self.gp_ = None

    def _get_kernel_object(
        self,
        kernel_spec: Optional[Union[str, Kernel]] = None,
        n_features: Optional[int] = None,
    ) -> Kernel:
        """Convert a kernel specification to a scikit-learn kernel object."""
        if n_features is not None and n_features > 1:
            length_scale = np.ones(n_features)
        else:
            length_scale = 1.0
        length_scale_bounds = (1e-2, 1e2)

        if kernel_spec is None:
            kernel_spec = "rbf"

        if isinstance(kernel_spec, str):
            kernel_map = {
                "rbf": lambda: C(1.0, (1e-3, 1e3))
                * RBF(
                    length_scale=length_scale, length_scale_bounds=length_scale_bounds
                ),
                "matern": lambda: C(1.0, (1e-3, 1e3))
                * Matern(
                    length_scale=length_scale,
                    length_scale_bounds=length_scale_bounds,
                    nu=2.5,
                ),
                "rational_quadratic": lambda: C(1.0, (1e-3, 1e3))
                * RationalQuadratic(
                    length_scale=1.0,
                    length_scale_bounds=length_scale_bounds,
                    alpha=1.0,
                    alpha_bounds=(1e-3, 1e3),
                ),
            }
            if kernel_spec not in kernel_map:
                raise ValueError(f"Unknown kernel name: {kernel_spec}")
            return kernel_map[kernel_spec]()

        elif isinstance(kernel_spec, Kernel):
            return copy.deepcopy(kernel_spec)

        else:
            raise ValueError(
                f"Kernel must be a string name, Kernel object, or None. Got: {type(kernel_spec)}"
            )

    def _build_kernel(self) -> Kernel:
        return self._get_kernel_object(self.kernel, self.input_dim)

    @abstractmethod
    def _noise_alpha(
        self, noise: Optional[Sequence[float]], n_samples: int
    ) -> Union[float, np.ndarray]:
        """Diagonal term, in standardized target units, added to the covariance."""

    def fit(
        self,
        samples: Sequence[np.ndarray],
        targets: Sequence[float],
        noise: Optional[Sequence[float]] = None,
    ) -> "GaussianProcessBase":
        X = np.atleast_2d(np.asarray(samples, dtype=float))
        y = np.asarray(targets, dtype=float).ravel()
        if X.shape[1] != self.input_dim:
            raise DimensionMismatchError(
                f"Expected inputs of length {self.input_dim}, got {X.shape[1]}"
            )
        if len(X) != len(y):
            raise DimensionMismatchError(
                f"Got {len(X)} samples but {len(y)} targets"
            )

        self.X_train_ = X.copy()
        self.y_train_mean_ = np.mean(y)
        self.y_train_std_ = np.std(y)
        if self.y_train_std_ < 1e-12:
            self.y_train_std_ = 1.0
        self.y_train_ = (y - self.y_train_mean_) / self.y_train_std_

        self.kernel_ = self._build_kernel()
        self.alpha_ = self._noise_alpha(noise, len(X))
        self._fit_gp(optimizer=None)
        return self

    def optimize_hyperparameters(self, quiet: bool = True) -> None:
        if not self.is_fitted:
            raise NotFittedError("fit must be called before optimize_hyperparameters")
        if quiet:
            with suppressed_bound_warnings():
                self._fit_gp(optimizer="fmin_l_bfgs_b")
        else:
            self._fit_gp(optimizer="fmin_l_bfgs_b")

    def _fit_gp(self, optimizer: Optional[str]) -> None:
        gp = GaussianProcessRegressor(
            kernel=self.kernel_,
            alpha=self.alpha_,
            optimizer=optimizer,
            n_restarts_optimizer=self.n_restarts_optimizer,
            random_state=self.random_state,
            normalize_y=False,
        )
        gp.fit(self.X_train_, self.y_train_)
        self.gp_ = gp
        self.kernel_ = gp.kernel_

    def query(self, x: np.ndarray) -> Tuple[np.ndarray, float]:
        if not self.is_fitted:
            raise NotFittedError(f"{type(self).__name__} has not been fitted")
        X = np.asarray(x, dtype=float).reshape(1, -1)
        if X.shape[1] != self.input_dim:
            raise DimensionMismatchError(
                f"Expected a query of length {self.input_dim}, got {X.shape[1]}"
            )
        y_mean, y_std = self.gp_.predict(X, return_std=True)
        mean = y_mean[0] * self.y_train_std_ + self.y_train_mean_
        variance = float(y_std[0] ** 2 * self.y_train_std_**2)
        return np.array([mean]), variance

    def h_params(self) -> np.ndarray:
        if self.kernel_ is None:
            return self._build_kernel().theta.copy()
        return self.kernel_.theta.copy()


class FixedNoiseGP(GaussianProcessBase):
    """GP whose observation noise variance is supplied by the caller.

    The noise handed to ``fit`` is expressed in target units, either as one
    value per sample or as a scalar, and is rescaled to the standardized
    targets before being added to the covariance diagonal.
    """

    def _noise_alpha(
        self, noise: Optional[Sequence[float]], n_samples: int
    ) -> Union[float, np.ndarray]:
        if noise is None:
            return self.alpha
        noise = np.asarray(noise, dtype=float)
        if noise.ndim > 0 and noise.shape != (n_samples,):
            raise DimensionMismatchError(
                f"Expected {n_samples} noise values, got {noise.shape[0]}"
            )
        return noise / self.y_train_std_**2 + self.alpha


class LearnedNoiseGP(GaussianProcessBase):
    """GP that learns its own noise level and ignores supplied noise.

    Args:
        noise_level: Initial white-noise variance in standardized units.
        noise_level_bounds: Optimization bounds of the noise variance.
        **kwargs: Forwarded to ``GaussianProcessBase``.
    """

    def __init__(
        self,
        input_dim: int,
        output_dim: int = 1,
        noise_level: float = 1e-2,
        noise_level_bounds: Tuple[float, float] = (1e-6, 1e1),
        **kwargs,
    ):
        super().__init__(input_dim, output_dim, **kwargs)
        self.noise_level = noise_level
        self.noise_level_bounds = noise_level_bounds

    def _build_kernel(self) -> Kernel:
        return super()._build_kernel() + WhiteKernel(
            noise_level=self.noise_level, noise_level_bounds=self.noise_level_bounds
        )

    def _noise_alpha(
        self, noise: Optional[Sequence[float]], n_samples: int
    ) -> Union[float, np.ndarray]:
        return self.alpha
