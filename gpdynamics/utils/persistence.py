"""Persistence of training data.

Two formats are supported. The binary snapshot stores the training matrix
(sample columns followed by target columns) exactly and is meant to be read
back to resume training. The text dump is a whitespace separated listing for
inspection only.

Snapshot layout: two little-endian int64 values (rows, cols) followed by
``rows * cols`` little-endian float64 values in row-major order.
"""

import logging
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

_HEADER_DTYPE = np.dtype("<i8")
_VALUE_DTYPE = np.dtype("<f8")


def write_snapshot(path: str, matrix: np.ndarray) -> None:
    matrix = np.ascontiguousarray(matrix, dtype=_VALUE_DTYPE)
    if matrix.ndim != 2:
        raise ValueError(f"Snapshot matrix must be 2-D, got shape {matrix.shape}")
    with open(path, "wb") as f:
        f.write(np.array(matrix.shape, dtype=_HEADER_DTYPE).tobytes())
        f.write(matrix.tobytes(order="C"))
    logger.info(f"Wrote {matrix.shape[0]}x{matrix.shape[1]} snapshot to {path}")


def read_snapshot(path: str) -> np.ndarray:
    with open(path, "rb") as f:
        payload = f.read()

    header_size = 2 * _HEADER_DTYPE.itemsize
    if len(payload) < header_size:
        raise ValueError(f"Snapshot {path} is too short to contain a header")
    rows, cols = np.frombuffer(payload[:header_size], dtype=_HEADER_DTYPE)
    if rows < 0 or cols < 0:
        raise ValueError(f"Snapshot {path} has a negative shape ({rows}, {cols})")

    expected = int(rows) * int(cols) * _VALUE_DTYPE.itemsize
    body = payload[header_size:]
    if len(body) != expected:
        raise ValueError(
            f"Snapshot {path} holds {len(body)} data bytes, expected {expected}"
        )
    return np.frombuffer(body, dtype=_VALUE_DTYPE).reshape(int(rows), int(cols)).copy()


def split_snapshot(
    matrix: np.ndarray, input_dim: int, limit: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """Split a snapshot matrix into (samples, targets).

    Args:
        matrix: Matrix read with ``read_snapshot``.
        input_dim: Number of leading sample columns (state plus action).
        limit: Keep only the first ``limit`` rows. All rows when None.
    """
    if not 0 < input_dim < matrix.shape[1]:
        raise ValueError(
            f"input_dim must lie in (0, {matrix.shape[1]}), got {input_dim}"
        )
    if limit is not None:
        matrix = matrix[:limit]
    return matrix[:, :input_dim].copy(), matrix[:, input_dim:].copy()


def write_text_dump(path: str, samples: np.ndarray, targets: np.ndarray) -> None:
    lines = []
    for sample, target in zip(samples, targets):
        lines.append(" ".join(f"{value:g}" for value in [*sample, *target]))
    with open(path, "w") as f:
        f.write("\n".join(lines))
