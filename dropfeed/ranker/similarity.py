"""Vector similarity between drop and user preference embeddings."""

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two embedding vectors.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        Cosine similarity in [-1, 1].

    Raises:
        ValueError: If the vectors are empty, differ in dimension,
            have zero norm or contain non-finite values.
    """
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    if vec_a.ndim != 1 or vec_a.size == 0:
        msg = f"Expected a non-empty 1-d vector, got shape {vec_a.shape}"
        raise ValueError(msg)
    if vec_a.shape != vec_b.shape:
        msg = f"Dimension mismatch: {vec_a.shape[0]} vs {vec_b.shape[0]}"
        raise ValueError(msg)

    norm = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if norm == 0.0 or not np.isfinite(norm):
        msg = "Cosine similarity is undefined for zero or non-finite vectors"
        raise ValueError(msg)

    similarity = float(np.dot(vec_a, vec_b) / norm)
    # Rounding can push identical vectors just past 1.0
    return float(np.clip(similarity, -1.0, 1.0))
