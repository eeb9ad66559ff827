import numpy as np
import pytest

from core.decoder import ABSENT, HumanPose, compute_image_scale, rescale_poses, resize_feature_maps


def test_rescale_multiplies_then_subtracts_padding_then_scales():
    keypoints = np.array([[10.0, 20.0], [ABSENT, ABSENT]], dtype=np.float32)
    pose = HumanPose(keypoints=keypoints, score=1.5)

    [rescaled] = rescale_poses([pose], stride=8, upsample_ratio=4, pad=(5, 3, 0, 0), scale=(0.5, 2.0))

    # x: (10 * 2 - 3) * 0.5, y: (20 * 2 - 5) * 2
    np.testing.assert_allclose(rescaled.keypoints[0], [8.5, 70.0])
    assert tuple(rescaled.keypoints[1]) == (ABSENT, ABSENT)
    assert rescaled.score == 1.5
    # input pose is untouched
    np.testing.assert_array_equal(pose.keypoints[0], [10.0, 20.0])


def test_compute_image_scale_removes_padding():
    scale = compute_image_scale(feature_map_size=(40, 30), image_size=(144, 112),
                                stride=8, upsample_ratio=4, pad=(2, 4, 2, 4))

    assert scale == pytest.approx((2.0, 2.0))


def test_resize_feature_maps_upsamples_each_channel():
    maps = np.random.default_rng(0).random((2, 4, 5)).astype(np.float32)

    resized = resize_feature_maps(maps, 2)

    assert resized.shape == (2, 8, 10)
    assert resized.dtype == np.float32


def test_resize_feature_maps_identity_ratio():
    maps = np.ones((3, 4, 4), dtype=np.float32)
    np.testing.assert_array_equal(resize_feature_maps(maps, 1), maps)
