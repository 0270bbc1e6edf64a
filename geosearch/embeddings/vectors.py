"""
GeoSearch Embeddings — Vector math

Pooling, normalisation, validity checks and raw-buffer decoding for query
embeddings.  All vectors are float32 numpy arrays.

Rules:
    - normalize_vector never divides by zero and never propagates NaN/Inf:
      degenerate input yields the zero vector
    - A zero vector is not a valid embedding (is_valid_embedding)
    - quantize_embedding is the single rounding step shared by the SQL
      literal and any client-side similarity recomputation
"""

from typing import Optional, Sequence

import numpy as np

DTYPE = np.float32
EMBEDDING_DECIMALS = 6

# Element width in bytes for each on-disk dtype of the embedding table
ELEMENT_WIDTHS: dict[str, int] = {"F32": 4, "F16": 2}


def zero_vector(dimension: int) -> np.ndarray:
    return np.zeros(dimension, dtype=DTYPE)


def normalize_vector(vector: np.ndarray) -> np.ndarray:
    """
    L2-normalise to unit length.

    Returns the zero vector if any component is NaN/Infinite or if the
    magnitude is zero.
    """
    vector = np.asarray(vector, dtype=DTYPE)
    if not np.all(np.isfinite(vector)):
        return zero_vector(vector.shape[0])

    magnitude = float(np.linalg.norm(vector.astype(np.float64)))
    if magnitude == 0 or not np.isfinite(magnitude):
        return zero_vector(vector.shape[0])

    return (vector / magnitude).astype(DTYPE)


def mean_pool(vectors: Sequence[np.ndarray], dimension: int) -> np.ndarray:
    """Componentwise arithmetic mean; zero vector for no input."""
    if len(vectors) == 0:
        return zero_vector(dimension)
    stacked = np.vstack([np.asarray(v, dtype=DTYPE) for v in vectors])
    return stacked.mean(axis=0, dtype=np.float64).astype(DTYPE)


def is_valid_embedding(vector: Optional[np.ndarray]) -> bool:
    """Non-empty, every component finite, and not all zero."""
    if vector is None:
        return False
    vector = np.asarray(vector)
    if vector.size == 0:
        return False
    if not np.all(np.isfinite(vector)):
        return False
    return bool(np.any(vector != 0))


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine similarity of two unit vectors (plain dot product).

    Raises:
        ValueError: If the vectors have different dimensions.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError("Vectors must have the same dimension")
    return float(np.dot(a, b))


def quantize_embedding(vector: np.ndarray) -> np.ndarray:
    """Round every component to EMBEDDING_DECIMALS places."""
    return np.round(np.asarray(vector, dtype=np.float64), EMBEDDING_DECIMALS)


def decode_vector(buffer: bytes, element_width: int) -> np.ndarray:
    """
    Decode a little-endian buffer of float32 (width 4) or float16 (width 2)
    values into a float32 vector.

    Raises:
        ValueError: On an unsupported width or a buffer that is not a whole
            number of elements.
    """
    if element_width == 4:
        dtype = np.dtype("<f4")
    elif element_width == 2:
        dtype = np.dtype("<f2")
    else:
        raise ValueError(f"Unsupported element width: {element_width}")

    if len(buffer) % element_width:
        raise ValueError(
            f"Buffer length {len(buffer)} is not a multiple of element width {element_width}"
        )

    # Half precision is widened explicitly; float32 is a direct reinterpretation
    return np.frombuffer(buffer, dtype=dtype).astype(DTYPE)
