"""
Feature-map upsampling and mapping of decoded keypoints back to image space.
"""
from typing import List, Sequence, Tuple

import cv2
import numpy as np

from .pose_decoder import ABSENT, HumanPose

Padding = Tuple[int, int, int, int]  # (top, left, bottom, right)


def resize_feature_maps(feature_maps: np.ndarray, upsample_ratio: float) -> np.ndarray:
    """Upsample every (H, W) channel of a (C, H, W) stack with bicubic interpolation."""
    feature_maps = np.asarray(feature_maps, dtype=np.float32)
    if upsample_ratio == 1:
        return feature_maps
    return np.stack([
        cv2.resize(channel, None, fx=upsample_ratio, fy=upsample_ratio, interpolation=cv2.INTER_CUBIC)
        for channel in feature_maps
    ])


def compute_image_scale(feature_map_size: Tuple[int, int],
                        image_size: Tuple[int, int],
                        stride: int,
                        upsample_ratio: float,
                        pad: Padding) -> Tuple[float, float]:
    """Scale factors from padded network-input space to the original image.

    ``feature_map_size`` and ``image_size`` are ``(width, height)`` and the
    feature map is the upsampled one the peaks were found in.
    """
    top, left, bottom, right = pad
    full_width = feature_map_size[0] * stride / upsample_ratio
    full_height = feature_map_size[1] * stride / upsample_ratio
    scale_x = image_size[0] / float(full_width - left - right)
    scale_y = image_size[1] / float(full_height - top - bottom)
    return scale_x, scale_y


def rescale_poses(poses: Sequence[HumanPose],
                  stride: int,
                  upsample_ratio: float,
                  pad: Padding,
                  scale: Tuple[float, float]) -> List[HumanPose]:
    """Map present keypoints from feature-map to image coordinates.

    Per axis: multiply by ``stride / upsample_ratio``, subtract the leading
    padding, then multiply by the image scale. The order is fixed because the
    padding is generally not the same on both axes.
    """
    top, left, _, _ = pad
    factor = stride / upsample_ratio
    offset = np.array([left, top], dtype=np.float32)
    image_scale = np.array(scale, dtype=np.float32)

    rescaled = []
    for pose in poses:
        keypoints = pose.keypoints.copy()
        present = ~np.all(keypoints == ABSENT, axis=1)
        coords = keypoints[present]
        coords *= factor
        coords -= offset
        coords *= image_scale
        keypoints[present] = coords
        rescaled.append(HumanPose(keypoints=keypoints, score=pose.score))
    return rescaled
