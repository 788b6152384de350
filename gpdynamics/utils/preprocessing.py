import logging
from typing import Sequence, Tuple, Union

import numpy as np
from sklearn.preprocessing import StandardScaler

from gpdynamics.errors import DimensionMismatchError, EmptyInputError
from gpdynamics.wrapping import Diagnostics, Transition

logger = logging.getLogger(__name__)


def _coerce_transition(observation: Union[Transition, Sequence]) -> Transition:
    if isinstance(observation, Transition):
        return observation
    try:
        return Transition.from_tuple(observation)
    except ValueError as e:
        raise DimensionMismatchError(f"Malformed transition: {e}") from e


def assemble_transitions(
    transitions: Sequence[Union[Transition, Sequence]],
) -> Tuple[np.ndarray, np.ndarray]:
    """Convert transitions into an input sample matrix and a target matrix.

    Each sample row is the state followed by the action of the matching
    transition; each target row is that transition's target. Row order
    follows the order of ``transitions``.

    Args:
        transitions: Transition records or raw ``(state, action, target)``
            tuples.

    Returns:
        Tuple of (samples, targets) with shapes (n, D_s + D_a) and (n, D_t).

    Raises:
        EmptyInputError: If no transitions are given.
        DimensionMismatchError: If any state, action or target length differs
            from the first transition's.
    """
    if transitions is None or len(transitions) == 0:
        raise EmptyInputError("At least one transition is required")

    records = [_coerce_transition(observation) for observation in transitions]
    first = records[0]
    state_dim, action_dim, target_dim = (
        len(first.state),
        len(first.action),
        len(first.target),
    )

    samples = np.empty((len(records), state_dim + action_dim))
    targets = np.empty((len(records), target_dim))
    for i, record in enumerate(records):
        if (
            len(record.state) != state_dim
            or len(record.action) != action_dim
            or len(record.target) != target_dim
        ):
            raise DimensionMismatchError(
                f"Transition {i} has dimensions "
                f"({len(record.state)}, {len(record.action)}, {len(record.target)}), "
                f"expected ({state_dim}, {action_dim}, {target_dim})"
            )
        samples[i, :state_dim] = record.state
        samples[i, state_dim:] = record.action
        targets[i] = record.target

    return samples, targets


def compute_diagnostics(samples: np.ndarray) -> Diagnostics:
    """Compute column statistics of a sample matrix.

    The standard deviation is the population one (ddof=0), as reported by
    ``StandardScaler.var_``; constant columns keep a deviation of zero. The
    limit of a column is the larger of the 5th and 95th percentiles of its
    absolute values.

    The statistics are informational: samples handed to the regressors are
    never rescaled by them.
    """
    samples = np.asarray(samples, dtype=float)
    scaler = StandardScaler()
    scaler.fit(samples)

    magnitudes = np.abs(samples)
    low = np.percentile(magnitudes, 5, axis=0)
    high = np.percentile(magnitudes, 95, axis=0)

    diagnostics = Diagnostics(
        mean=scaler.mean_.copy(),
        std=np.sqrt(scaler.var_),
        limit=np.maximum(low, high),
    )
    logger.debug(f"Refreshed input limits: {diagnostics.limit}")
    return diagnostics
