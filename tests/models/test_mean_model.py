import numpy as np
import pytest
from scipy.optimize import check_grad

from conftest import DEFAULT_SEED, make_transitions
from gpdynamics.errors import (
    DimensionMismatchError,
    EmptyInputError,
    FitFailureError,
    NotFittedError,
)
from gpdynamics.models.mean_functions import (
    LINEAR_NAME,
    MLP_NAME,
    LinearMeanFunction,
    MLPMeanFunction,
)
from gpdynamics.models.mean_model import MeanFunctionModel
from gpdynamics.utils.persistence import read_snapshot


@pytest.fixture
def affine_transitions():
    rng = np.random.default_rng(DEFAULT_SEED)
    states = rng.uniform(-1.0, 1.0, size=(20, 2))
    actions = rng.uniform(-1.0, 1.0, size=(20, 1))
    inputs = np.hstack([states, actions])
    weights = np.array([[1.0, -2.0, 0.5], [0.0, 3.0, -1.0]])
    targets = inputs @ weights.T + np.array([0.25, -0.75])
    return make_transitions(states, actions, targets)


def test_linear_model_recovers_affine_dynamics(affine_transitions):
    model = MeanFunctionModel(mean_function=LINEAR_NAME)
    model.learn(affine_transitions)

    mean, variance = model.predict([0.1, 0.2, -0.3])

    expected = np.array(
        [0.1 - 0.4 - 0.15 + 0.25, 0.6 + 0.3 - 0.75]
    )
    np.testing.assert_allclose(mean, expected, atol=1e-2)
    np.testing.assert_array_equal(variance, np.zeros(2))


def test_predict_full_reports_zero_variance(affine_transitions):
    model = MeanFunctionModel()
    model.learn(affine_transitions)

    mean, variance = model.predict_full([0.0, 0.0, 0.0])

    assert mean.shape == (2,)
    np.testing.assert_array_equal(variance, [0.0, 0.0])


def test_mlp_model_reduces_squared_error(pendulum_transitions):
    model = MeanFunctionModel(
        mean_function=MLP_NAME,
        mean_function_params={"hidden_units": 8, "random_state": DEFAULT_SEED},
        max_iter=300,
    )
    model.learn(pendulum_transitions)

    samples, targets = model.samples, model.targets
    initial = MLPMeanFunction(3, 2, hidden_units=8, random_state=DEFAULT_SEED)
    initial_error = np.sum((initial(samples) - targets) ** 2)
    fitted_error = np.sum(
        (np.array([model.predict(s)[0] for s in samples]) - targets) ** 2
    )
    assert fitted_error < 0.1 * initial_error


def test_learn_warm_starts_from_previous_fit(affine_transitions):
    model = MeanFunctionModel(max_iter=1)
    model.learn(affine_transitions)
    after_one = model.h_params()

    model.learn(affine_transitions)

    assert not np.allclose(model.h_params(), after_one)


def test_learn_rebuilds_mean_function_when_dimensions_change(affine_transitions):
    model = MeanFunctionModel()
    model.learn(affine_transitions)

    model.learn([([0.0], [0.0], [1.0]), ([1.0], [0.0], [2.0])])

    assert len(model.h_params()) == 2 * 1 + 1


def test_only_limits_keeps_previous_fit(affine_transitions):
    model = MeanFunctionModel()
    model.learn(affine_transitions)
    params = model.h_params()

    model.learn(affine_transitions[:5], only_limits=True)

    np.testing.assert_array_equal(model.h_params(), params)
    assert model.samples.shape == (20, 3)
    np.testing.assert_allclose(
        model.diagnostics.mean, model.samples[:5].mean(axis=0)
    )


def test_non_finite_fit_keeps_previous_state(affine_transitions):
    model = MeanFunctionModel()
    model.learn(affine_transitions)
    params = model.h_params()

    with pytest.raises(FitFailureError) as excinfo:
        model.learn([([0.0, 0.0], [0.0], [np.inf, 0.0]), ([1.0, 0.0], [0.0], [1.0, 0.0])])

    assert excinfo.value.dimension is None
    np.testing.assert_array_equal(model.h_params(), params)


@pytest.mark.parametrize(
    "operation",
    [
        lambda model, tmp_path: model.predict([0.0]),
        lambda model, tmp_path: model.predict_full([0.0]),
        lambda model, tmp_path: model.save(str(tmp_path / "dump.txt")),
        lambda model, tmp_path: model.h_params(),
    ],
)
def test_operations_require_learn(tmp_path, operation):
    with pytest.raises(NotFittedError):
        operation(MeanFunctionModel(), tmp_path)


def test_learn_rejects_empty_input():
    with pytest.raises(EmptyInputError):
        MeanFunctionModel().learn([])


def test_predict_rejects_wrong_query_length(affine_transitions):
    model = MeanFunctionModel()
    model.learn(affine_transitions)

    with pytest.raises(DimensionMismatchError):
        model.predict([0.0, 0.0])


def test_save_and_snapshot(tmp_path):
    model = MeanFunctionModel(snapshot_path=str(tmp_path / "data.bin"))
    transitions = [([0.0], [0.5], [1.0]), ([2.0], [0.25], [3.0])]

    model.learn(transitions)
    model.save(str(tmp_path / "dump.txt"))

    assert (tmp_path / "dump.txt").read_text() == "0 0.5 1\n2 0.25 3"
    np.testing.assert_array_equal(
        read_snapshot(str(tmp_path / "data.bin")), [[0.0, 0.5, 1.0], [2.0, 0.25, 3.0]]
    )


def test_unknown_mean_function():
    with pytest.raises(ValueError):
        MeanFunctionModel(mean_function="quadratic")


@pytest.mark.parametrize(
    "mean_function",
    [
        LinearMeanFunction(3, 2),
        MLPMeanFunction(3, 2, hidden_units=4, random_state=DEFAULT_SEED),
    ],
)
def test_squared_error_gradient_matches_finite_differences(mean_function):
    rng = np.random.default_rng(DEFAULT_SEED)
    X = rng.normal(size=(6, 3))
    Y = rng.normal(size=(6, 2))
    params = rng.normal(size=len(mean_function.h_params()))

    def sse(p):
        mean_function.set_h_params(p)
        return np.sum((mean_function(X) - Y) ** 2)

    def gradient(p):
        mean_function.set_h_params(p)
        return mean_function.squared_error_gradient(X, mean_function(X) - Y)

    assert check_grad(sse, gradient, params) < 1e-4


def test_set_h_params_rejects_wrong_size():
    with pytest.raises(ValueError):
        LinearMeanFunction(3, 2).set_h_params(np.zeros(5))


def test_mean_function_handles_single_and_batched_inputs():
    mean_function = LinearMeanFunction(2, 1)
    mean_function.set_h_params([1.0, 2.0, 0.5])

    np.testing.assert_allclose(mean_function(np.array([1.0, 1.0])), [3.5])
    np.testing.assert_allclose(mean_function(np.array([[1.0, 1.0], [0.0, 0.0]])), [[3.5], [0.5]])
