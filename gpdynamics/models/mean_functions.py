"""Parametric mean functions mapping an input sample to a target vector."""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np


class BaseMeanFunction(ABC):
    """Deterministic map from inputs of length ``input_dim`` to ``output_dim``.

    The function is fully described by a flat hyperparameter vector so that
    generic optimizers can fit it.
    """

    has_gradient = False

    def __init__(self, input_dim: int, output_dim: int):
        self.input_dim = input_dim
        self.output_dim = output_dim

    @abstractmethod
    def h_params(self) -> np.ndarray:
        """Return a copy of the flat hyperparameter vector."""

    @abstractmethod
    def set_h_params(self, params: np.ndarray) -> None:
        """Replace the hyperparameters with ``params``."""

    @abstractmethod
    def __call__(self, X: np.ndarray) -> np.ndarray:
        """Evaluate on one input (returns shape (output_dim,)) or a batch
        (shape (n, input_dim), returns shape (n, output_dim))."""

    def squared_error_gradient(
        self, X: np.ndarray, residuals: np.ndarray
    ) -> np.ndarray:
        """Gradient of the summed squared error w.r.t. the hyperparameters.

        ``residuals`` are predictions minus targets on the batch ``X``.
        Only called when ``has_gradient`` is True.
        """
        raise NotImplementedError(f"{type(self).__name__} has no analytic gradient")

    def _check_size(self, params: np.ndarray, expected: int) -> np.ndarray:
        params = np.asarray(params, dtype=float).ravel()
        if len(params) != expected:
            raise ValueError(
                f"{type(self).__name__} expects {expected} hyperparameters, got {len(params)}"
            )
        return params


class LinearMeanFunction(BaseMeanFunction):
    """Affine map ``W x + b``; parameters are W (row-major) followed by b."""

    has_gradient = True

    def __init__(self, input_dim: int, output_dim: int):
        super().__init__(input_dim, output_dim)
        self.weights = np.zeros((output_dim, input_dim))
        self.bias = np.zeros(output_dim)

    def h_params(self) -> np.ndarray:
        return np.concatenate([self.weights.ravel(), self.bias])

    def set_h_params(self, params: np.ndarray) -> None:
        n_weights = self.output_dim * self.input_dim
        params = self._check_size(params, n_weights + self.output_dim)
        self.weights = params[:n_weights].reshape(self.output_dim, self.input_dim)
        self.bias = params[n_weights:].copy()

    def __call__(self, X: np.ndarray) -> np.ndarray:
        X = np.asarray(X, dtype=float)
        return X @ self.weights.T + self.bias

    def squared_error_gradient(
        self, X: np.ndarray, residuals: np.ndarray
    ) -> np.ndarray:
        grad_weights = 2.0 * residuals.T @ X
        grad_bias = 2.0 * residuals.sum(axis=0)
        return np.concatenate([grad_weights.ravel(), grad_bias])


class MLPMeanFunction(BaseMeanFunction):
    """Single hidden layer perceptron with tanh activations.

    Parameters are laid out as W1, b1, W2, b2. Weights start from a scaled
    normal draw seeded by ``random_state``; biases start at zero.
    """

    has_gradient = True

    def __init__(
        self,
        input_dim: int,
        output_dim: int,
        hidden_units: int = 10,
        random_state: Optional[int] = None,
    ):
        super().__init__(input_dim, output_dim)
        self.hidden_units = hidden_units
        self.random_state = random_state

        rng = np.random.default_rng(random_state)
        self.W1 = rng.normal(0.0, 1.0 / np.sqrt(input_dim), (hidden_units, input_dim))
        self.b1 = np.zeros(hidden_units)
        self.W2 = rng.normal(
            0.0, 1.0 / np.sqrt(hidden_units), (output_dim, hidden_units)
        )
        self.b2 = np.zeros(output_dim)

    def _shapes(self):
        return [
            (self.hidden_units, self.input_dim),
            (self.hidden_units,),
            (self.output_dim, self.hidden_units),
            (self.output_dim,),
        ]

    def h_params(self) -> np.ndarray:
        return np.concatenate(
            [self.W1.ravel(), self.b1, self.W2.ravel(), self.b2]
        )

    def set_h_params(self, params: np.ndarray) -> None:
        shapes = self._shapes()
        params = self._check_size(params, sum(int(np.prod(s)) for s in shapes))
        blocks = []
        offset = 0
        for shape in shapes:
            size = int(np.prod(shape))
            blocks.append(params[offset : offset + size].reshape(shape))
            offset += size
        self.W1, self.b1, self.W2, self.b2 = blocks

    def _hidden(self, X: np.ndarray) -> np.ndarray:
        return np.tanh(X @ self.W1.T + self.b1)

    def __call__(self, X: np.ndarray) -> np.ndarray:
        X = np.asarray(X, dtype=float)
        return self._hidden(X) @ self.W2.T + self.b2

    def squared_error_gradient(
        self, X: np.ndarray, residuals: np.ndarray
    ) -> np.ndarray:
        H = self._hidden(X)
        grad_W2 = 2.0 * residuals.T @ H
        grad_b2 = 2.0 * residuals.sum(axis=0)
        delta = (2.0 * residuals @ self.W2) * (1.0 - H**2)
        grad_W1 = delta.T @ X
        grad_b1 = delta.sum(axis=0)
        return np.concatenate(
            [grad_W1.ravel(), grad_b1, grad_W2.ravel(), grad_b2]
        )


LINEAR_NAME: str = "linear"
MLP_NAME: str = "mlp"

MEAN_FUNCTION_REGISTRY = {
    LINEAR_NAME: LinearMeanFunction,
    MLP_NAME: MLPMeanFunction,
}
