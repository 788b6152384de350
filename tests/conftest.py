import numpy as np
import pytest

from gpdynamics.models.ensemble import RegressionEnsemble
from gpdynamics.wrapping import Transition

DEFAULT_SEED = 1234


def make_transitions(states, actions, targets):
    return [
        Transition(state=s, action=a, target=t)
        for s, a, t in zip(states, actions, targets)
    ]


@pytest.fixture
def line_transitions():
    # 1-D state on a line, constant action, target equal to the state
    return make_transitions(
        states=[[0.0], [1.0], [2.0]],
        actions=[[0.0], [0.0], [0.0]],
        targets=[[0.0], [1.0], [2.0]],
    )


@pytest.fixture
def dense_line_transitions():
    return make_transitions(
        states=[[0.0], [1.0], [1.4], [1.6], [2.0]],
        actions=[[0.0], [0.0], [0.0], [0.0], [0.0]],
        targets=[[0.0], [1.0], [1.4], [1.6], [2.0]],
    )


@pytest.fixture
def pendulum_transitions():
    """Noise-free transitions of a damped pendulum with a torque input."""
    rng = np.random.default_rng(DEFAULT_SEED)
    dt = 0.1
    states = rng.uniform(-np.pi / 2, np.pi / 2, size=(25, 2))
    actions = rng.uniform(-1.0, 1.0, size=(25, 1))
    theta, omega = states[:, 0], states[:, 1]
    d_omega = dt * (-9.81 * np.sin(theta) - 0.1 * omega + actions[:, 0])
    d_theta = dt * (omega + d_omega)
    targets = np.column_stack([d_theta, d_omega])
    return make_transitions(states, actions, targets)


@pytest.fixture
def constant_target_transitions():
    rng = np.random.default_rng(DEFAULT_SEED)
    states = rng.uniform(-1.0, 1.0, size=(8, 2))
    actions = rng.uniform(-1.0, 1.0, size=(8, 1))
    targets = np.tile([0.5, -2.0], (8, 1))
    return make_transitions(states, actions, targets)


@pytest.fixture
def toy_samples():
    return np.array(
        [
            [1.0, -2.0, 0.0],
            [3.0, 4.0, 0.0],
            [-5.0, 6.0, 0.0],
            [7.0, -8.0, 0.0],
        ]
    )


@pytest.fixture
def ensemble(tmp_path):
    return RegressionEnsemble(
        n_jobs=2,
        snapshot_path=str(tmp_path / "gpdynamics_data.bin"),
        random_state=DEFAULT_SEED,
    )
