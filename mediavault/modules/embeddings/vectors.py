from typing import Sequence
import numpy as np

UNIT_TOLERANCE = 1e-6


def project(vec: Sequence[float], dim: int) -> np.ndarray:
    """Fit an encoder output to the engine's dimensionality (truncate or zero-pad)."""
    arr = np.asarray(vec, dtype=np.float64).ravel()
    if arr.shape[0] >= dim:
        return arr[:dim].copy()
    return np.pad(arr, (0, dim - arr.shape[0]))


def l2_normalize(vec: np.ndarray) -> np.ndarray:
    if not np.all(np.isfinite(vec)):
        raise ValueError("vector has non-finite components")
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        raise ValueError("cannot normalize a zero vector")
    return vec / norm


def to_unit_vector(vec: Sequence[float], dim: int) -> list[float]:
    return l2_normalize(project(vec, dim)).tolist()


def is_unit(vec: Sequence[float], tol: float = UNIT_TOLERANCE) -> bool:
    return abs(float(np.linalg.norm(np.asarray(vec, dtype=np.float64))) - 1.0) <= tol
