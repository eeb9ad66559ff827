from .config import DecoderConfig
from .peaks import Peak, PeakMap
from .pose_decoder import ABSENT, HumanPose, PoseDecoder
from .scaling import compute_image_scale, rescale_poses, resize_feature_maps
from .skeleton import COCO_EDGES, COCO_KEYPOINT_NAMES, Edge

__all__ = [
    'DecoderConfig',
    'Peak', 'PeakMap',
    'ABSENT', 'HumanPose', 'PoseDecoder',
    'compute_image_scale', 'rescale_poses', 'resize_feature_maps',
    'COCO_EDGES', 'COCO_KEYPOINT_NAMES', 'Edge',
]
