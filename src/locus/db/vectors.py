"""Vector (de)serialisation for the embeddings table.

Vectors are stored as sqlite-vec float32 blobs so the vec_* SQL functions
(``vec_length``, ``vec_distance_cosine``) work directly on the column.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import sqlite_vec


def to_blob(vector: Sequence[float] | np.ndarray) -> bytes:
    """Serialise *vector* to a little-endian float32 blob.

    Raises:
        ValueError: If *vector* is empty or not one-dimensional.
    """
    arr = np.asarray(vector, dtype=np.float32)
    if arr.ndim != 1 or arr.size == 0:
        raise ValueError(f"vector must be a non-empty 1-D array, got shape {arr.shape}")
    return sqlite_vec.serialize_float32(arr.tolist())


def from_blob(blob: bytes) -> np.ndarray:
    """Inverse of to_blob(); returns a float32 ndarray (copy, writable)."""
    return np.frombuffer(blob, dtype=np.float32).copy()
