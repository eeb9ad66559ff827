from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .skeleton import COCO_EDGES, Edge, to_edges, validate_edges


@dataclass
class DecoderConfig:
    """Construction-time constants for OpenPose decoding."""

    keypoints_number: int = 18
    edges: List[Edge] = field(default_factory=lambda: list(COCO_EDGES))
    min_peaks_distance: float = 3.0
    peak_score_threshold: float = 0.1
    mid_points_score_threshold: float = 0.05
    found_mid_points_ratio_threshold: float = 0.8
    mid_points_number: int = 10
    min_joints_number: int = 3
    min_subset_score: float = 0.2
    stride: int = 8
    upsample_ratio: int = 4
    keypoint_offset: float = 0.5
    num_peak_workers: Optional[int] = None

    def __post_init__(self):
        if self.keypoints_number <= 0:
            raise ValueError("keypoints_number must be positive")
        if self.mid_points_number < 2:
            raise ValueError("mid_points_number must be at least 2")
        if self.stride <= 0 or self.upsample_ratio <= 0:
            raise ValueError("stride and upsample_ratio must be positive")
        validate_edges(self.edges, self.keypoints_number)

    @property
    def paf_channels(self) -> int:
        return 2 * len(self.edges)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "DecoderConfig":
        """Build a config from a mapping such as the ``openpose`` YAML section."""
        defaults = cls()
        raw_edges = config.get('edges')
        return cls(
            keypoints_number=config.get('keypoints_number', defaults.keypoints_number),
            edges=to_edges(raw_edges) if raw_edges is not None else defaults.edges,
            min_peaks_distance=config.get('min_peaks_distance', defaults.min_peaks_distance),
            peak_score_threshold=config.get('peak_score_threshold', defaults.peak_score_threshold),
            mid_points_score_threshold=config.get('mid_points_score_threshold',
                                                  defaults.mid_points_score_threshold),
            found_mid_points_ratio_threshold=config.get('found_mid_points_ratio_threshold',
                                                        defaults.found_mid_points_ratio_threshold),
            mid_points_number=config.get('mid_points_number', defaults.mid_points_number),
            min_joints_number=config.get('min_joints_number', defaults.min_joints_number),
            min_subset_score=config.get('min_subset_score', defaults.min_subset_score),
            stride=config.get('stride', defaults.stride),
            upsample_ratio=config.get('upsample_ratio', defaults.upsample_ratio),
            keypoint_offset=config.get('keypoint_offset', defaults.keypoint_offset),
            num_peak_workers=config.get('num_peak_workers', defaults.num_peak_workers),
        )
