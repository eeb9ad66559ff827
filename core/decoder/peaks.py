"""
Non-maximum suppression peak detection over a single heatmap channel.
"""
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np


@dataclass(frozen=True)
class Peak:
    """A local maximum of one heatmap channel."""
    id: int
    position: Tuple[int, int]  # (x, y) in feature-map coordinates
    score: float


class PeakMap:
    """Finds separated local maxima in a 2D score field.

    A pixel is a candidate when its thresholded value is strictly greater than
    its four thresholded neighbours; pixels outside the field read as zero.
    Candidates are visited column by column (x outer, y inner) and each one
    suppresses later candidates closer than ``min_peaks_distance``.

    Instances hold no mutable state, so one object can serve several
    threads at once.
    """

    def __init__(self, min_peaks_distance: float, score_threshold: float = 0.1):
        self.min_peaks_distance = float(min_peaks_distance)
        self.score_threshold = float(score_threshold)

    def find(self, heatmap: np.ndarray) -> List[Peak]:
        heatmap = np.asarray(heatmap, dtype=np.float32)
        if heatmap.ndim != 2:
            raise ValueError(f"Expected a 2D score field, got shape {heatmap.shape}")
        if heatmap.size == 0:
            return []

        field = np.where(heatmap >= self.score_threshold, heatmap, 0.0)
        padded = np.pad(field, 1, mode='constant', constant_values=0.0)
        center = padded[1:-1, 1:-1]
        is_peak = ((center > padded[1:-1, :-2]) &
                   (center > padded[1:-1, 2:]) &
                   (center > padded[:-2, 1:-1]) &
                   (center > padded[2:, 1:-1]))

        xs, ys = np.nonzero(is_peak.T)
        kept: List[Tuple[int, int]] = []
        min_distance_sq = self.min_peaks_distance ** 2
        for x, y in zip(xs.tolist(), ys.tolist()):
            suppressed = any((x - kx) ** 2 + (y - ky) ** 2 < min_distance_sq for kx, ky in kept)
            if not suppressed:
                kept.append((x, y))

        return [Peak(id=i, position=(x, y), score=float(heatmap[y, x])) for i, (x, y) in enumerate(kept)]
