import numpy as np
import pytest

from gpdynamics.errors import DimensionMismatchError, EmptyInputError
from gpdynamics.utils.preprocessing import assemble_transitions, compute_diagnostics
from gpdynamics.wrapping import Transition


def test_assemble_transitions_concatenates_state_and_action(pendulum_transitions):
    samples, targets = assemble_transitions(pendulum_transitions)

    assert samples.shape == (len(pendulum_transitions), 3)
    assert targets.shape == (len(pendulum_transitions), 2)
    for i, transition in enumerate(pendulum_transitions):
        np.testing.assert_array_equal(
            samples[i], np.concatenate([transition.state, transition.action])
        )
        np.testing.assert_array_equal(targets[i], transition.target)


def test_assemble_transitions_accepts_raw_tuples():
    samples, targets = assemble_transitions(
        [([0.0, 1.0], [2.0], [3.0]), ([4.0, 5.0], [6.0], [7.0])]
    )

    np.testing.assert_array_equal(samples, [[0.0, 1.0, 2.0], [4.0, 5.0, 6.0]])
    np.testing.assert_array_equal(targets, [[3.0], [7.0]])


def test_assemble_transitions_preserves_order():
    transitions = [([float(i)], [0.0], [float(-i)]) for i in range(10)]

    samples, targets = assemble_transitions(transitions)

    np.testing.assert_array_equal(samples[:, 0], np.arange(10))
    np.testing.assert_array_equal(targets[:, 0], -np.arange(10))


def test_assemble_transitions_rejects_empty_input():
    with pytest.raises(EmptyInputError):
        assemble_transitions([])


@pytest.mark.parametrize(
    "bad_transition",
    [
        ([0.0, 1.0, 2.0], [0.0], [0.0]),
        ([0.0, 1.0], [0.0, 0.0], [0.0]),
        ([0.0, 1.0], [0.0], [0.0, 0.0]),
    ],
)
def test_assemble_transitions_rejects_inconsistent_lengths(bad_transition):
    transitions = [([0.0, 1.0], [0.0], [0.0]), bad_transition]

    with pytest.raises(DimensionMismatchError):
        assemble_transitions(transitions)


def test_assemble_transitions_rejects_malformed_tuple():
    with pytest.raises(DimensionMismatchError):
        assemble_transitions([([0.0], [0.0])])


def test_compute_diagnostics_statistics(toy_samples):
    diagnostics = compute_diagnostics(toy_samples)

    np.testing.assert_allclose(diagnostics.mean, toy_samples.mean(axis=0))
    np.testing.assert_allclose(diagnostics.std, toy_samples.std(axis=0, ddof=0))
    # Constant columns keep a zero deviation
    assert diagnostics.std[2] == 0.0

    magnitudes = np.abs(toy_samples)
    expected_limit = np.maximum(
        np.percentile(magnitudes, 5, axis=0), np.percentile(magnitudes, 95, axis=0)
    )
    np.testing.assert_allclose(diagnostics.limit, expected_limit)


def test_compute_diagnostics_is_deterministic(toy_samples):
    first = compute_diagnostics(toy_samples)
    second = compute_diagnostics(toy_samples.copy())

    np.testing.assert_array_equal(first.mean, second.mean)
    np.testing.assert_array_equal(first.std, second.std)
    np.testing.assert_array_equal(first.limit, second.limit)


def test_transition_vectors_are_read_only():
    transition = Transition(state=[1.0, 2.0], action=[0.5], target=[0.1, 0.2])

    assert transition.state.dtype == float
    with pytest.raises(ValueError):
        transition.state[0] = 5.0


def test_transition_rejects_matrices():
    with pytest.raises(ValueError):
        Transition(state=[[1.0], [2.0]], action=[0.5], target=[0.1])
