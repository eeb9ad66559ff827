from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from core.decoder import ABSENT, DecoderConfig, Edge, PoseDecoder
from posepipe.errors import ShapeMismatchError


def single_edge_config(**overrides):
    params = dict(keypoints_number=2, edges=[Edge(0, 1, 0, 1)], min_joints_number=2)
    params.update(overrides)
    return DecoderConfig(**params)


@pytest.fixture
def decoder():
    with PoseDecoder(single_edge_config()) as d:
        yield d


def test_perfectly_aligned_limb_gives_one_pose(decoder, single_limb_maps):
    heatmaps, pafs = single_limb_maps

    poses = decoder.decode(heatmaps, pafs)

    assert len(poses) == 1
    pose = poses[0]
    assert pose.num_joints == 2
    np.testing.assert_allclose(pose.keypoints, [[2.5, 5.5], [7.5, 5.5]])
    # peak scores plus a full alignment score of 1 per sample
    assert pose.score == pytest.approx(0.9 + 0.8 + 1.0, rel=1e-5)


def test_keypoint_offset_is_configurable(single_limb_maps):
    heatmaps, pafs = single_limb_maps
    with PoseDecoder(single_edge_config(keypoint_offset=0.0)) as decoder:
        poses = decoder.decode(heatmaps, pafs)

    np.testing.assert_allclose(poses[0].keypoints, [[2.0, 5.0], [7.0, 5.0]])


def test_heatmaps_without_background_are_rejected(decoder, single_limb_maps):
    heatmaps, pafs = single_limb_maps

    with pytest.raises(ShapeMismatchError):
        decoder.decode(heatmaps[:2], pafs)
    with pytest.raises(ShapeMismatchError):
        decoder.decode(np.zeros((2, 10, 12), dtype=np.float32), np.zeros((2, 10, 12), dtype=np.float32))


def test_decode_keypoint_maps_matches_full_stack(decoder, single_limb_maps):
    heatmaps, pafs = single_limb_maps

    full = decoder.decode(heatmaps, pafs)
    keypoint_only = decoder.decode_keypoint_maps(heatmaps[:2], pafs)

    assert len(full) == len(keypoint_only) == 1
    np.testing.assert_array_equal(full[0].keypoints, keypoint_only[0].keypoints)

    with pytest.raises(ShapeMismatchError):
        decoder.decode_keypoint_maps(heatmaps, pafs)


def test_concurrent_decodes_share_one_executor(decoder, single_limb_maps):
    heatmaps, pafs = single_limb_maps

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: decoder.decode(heatmaps, pafs), range(16)))
        executors = list(pool.map(lambda _: decoder._get_executor(), range(16)))

    assert all(len(poses) == 1 for poses in results)
    assert all(executor is executors[0] for executor in executors)


def test_opposing_paf_rejects_connection(decoder, single_limb_maps):
    heatmaps, pafs = single_limb_maps
    pafs = -pafs

    assert decoder.decode(heatmaps, pafs) == []


def test_greedy_matching_pairs_people_by_best_score(decoder, two_person_maps):
    heatmaps, pafs = two_person_maps

    poses = decoder.decode(heatmaps, pafs)

    assert len(poses) == 2
    np.testing.assert_allclose(poses[0].keypoints, [[1.5, 2.5], [5.5, 2.5]])
    np.testing.assert_allclose(poses[1].keypoints, [[1.5, 7.5], [5.5, 7.5]])
    assert poses[0].score == pytest.approx(2.7, rel=1e-5)
    assert poses[1].score == pytest.approx(2.3, rel=1e-5)


def test_chains_are_merged_across_edges():
    config = DecoderConfig(
        keypoints_number=4,
        edges=[Edge(0, 1, 0, 1), Edge(2, 3, 2, 3), Edge(1, 2, 4, 5)],
        min_joints_number=4,
    )
    heatmaps = np.zeros((5, 10, 12), dtype=np.float32)
    for channel, x in enumerate((1, 4, 7, 10)):
        heatmaps[channel, 5, x] = 0.5
    pafs = np.zeros((6, 10, 12), dtype=np.float32)
    pafs[0::2] = 1.0

    with PoseDecoder(config) as decoder:
        poses = decoder.decode(heatmaps, pafs)

    assert len(poses) == 1
    assert poses[0].num_joints == 4
    assert poses[0].score == pytest.approx(4 * 0.5 + 3 * 1.0, rel=1e-5)
    np.testing.assert_allclose(poses[0].keypoints[:, 0], [1.5, 4.5, 7.5, 10.5])


def test_unreached_keypoints_are_absent():
    config = DecoderConfig(keypoints_number=3, edges=[Edge(0, 1, 0, 1)], min_joints_number=2)
    heatmaps = np.zeros((4, 10, 12), dtype=np.float32)
    heatmaps[0, 5, 2] = 0.9
    heatmaps[1, 5, 7] = 0.8
    pafs = np.zeros((2, 10, 12), dtype=np.float32)
    pafs[0] = 1.0

    with PoseDecoder(config) as decoder:
        poses = decoder.decode(heatmaps, pafs)

    assert len(poses) == 1
    assert list(poses[0].present_mask) == [True, True, False]
    assert tuple(poses[0].keypoints[2]) == (ABSENT, ABSENT)


def test_lonely_peaks_start_single_joint_candidates():
    config = DecoderConfig(keypoints_number=2, edges=[Edge(0, 1, 0, 1)], min_joints_number=1,
                           min_subset_score=0.0)
    heatmaps = np.zeros((3, 8, 8), dtype=np.float32)
    heatmaps[1, 4, 4] = 0.6
    pafs = np.zeros((2, 8, 8), dtype=np.float32)

    with PoseDecoder(config) as decoder:
        poses = decoder.decode(heatmaps, pafs)

    assert len(poses) == 1
    assert poses[0].num_joints == 1
    assert poses[0].score == pytest.approx(0.6)


def test_min_joints_filter(single_limb_maps):
    heatmaps, pafs = single_limb_maps
    with PoseDecoder(single_edge_config(min_joints_number=3)) as decoder:
        assert decoder.decode(heatmaps, pafs) == []


def test_min_subset_score_filter_uses_raw_score(single_limb_maps):
    heatmaps, pafs = single_limb_maps
    with PoseDecoder(single_edge_config(min_subset_score=2.69)) as decoder:
        assert len(decoder.decode(heatmaps, pafs)) == 1
    with PoseDecoder(single_edge_config(min_subset_score=2.71)) as decoder:
        assert decoder.decode(heatmaps, pafs) == []


def test_flat_field_below_threshold_gives_no_poses():
    config = DecoderConfig(keypoints_number=1, edges=[], min_joints_number=1)
    heatmaps = np.full((2, 1, 1), 0.05, dtype=np.float32)
    pafs = np.zeros((0, 1, 1), dtype=np.float32)

    with PoseDecoder(config) as decoder:
        assert decoder.decode(heatmaps, pafs) == []


def test_default_topology_on_empty_maps():
    with PoseDecoder() as decoder:
        heatmaps = np.full((19, 1, 1), 0.05, dtype=np.float32)
        pafs = np.zeros((38, 1, 1), dtype=np.float32)
        assert decoder.decode(heatmaps, pafs) == []


def test_random_maps_respect_filters_and_are_deterministic():
    rng = np.random.default_rng(7)
    heatmaps = (rng.random((19, 12, 12)) * 0.4).astype(np.float32)
    pafs = (rng.random((38, 12, 12)) * 2 - 1).astype(np.float32)
    config = DecoderConfig(min_joints_number=2, min_subset_score=0.5, min_peaks_distance=4.0)

    with PoseDecoder(config) as decoder:
        first = decoder.decode(heatmaps, pafs)
        second = decoder.decode(heatmaps, pafs)

    for pose in first:
        assert pose.num_joints >= config.min_joints_number
        assert pose.score >= config.min_subset_score
    assert len(first) == len(second)
    for a, b in zip(first, second):
        np.testing.assert_array_equal(a.keypoints, b.keypoints)
        assert a.score == b.score


@pytest.mark.parametrize("heatmap_shape, paf_shape", [
    ((5, 10, 12), (2, 10, 12)),   # wrong keypoint channel count
    ((3, 10, 12), (4, 10, 12)),   # wrong PAF channel count
    ((3, 10, 12), (2, 10, 11)),   # spatial mismatch
    ((10, 12), (2, 10, 12)),      # wrong rank
])
def test_shape_mismatch(decoder, heatmap_shape, paf_shape):
    with pytest.raises(ShapeMismatchError):
        decoder.decode(np.zeros(heatmap_shape, dtype=np.float32), np.zeros(paf_shape, dtype=np.float32))


def test_invalid_topology_is_rejected():
    with pytest.raises(ValueError):
        DecoderConfig(keypoints_number=2, edges=[Edge(0, 2, 0, 1)])
    with pytest.raises(ValueError):
        DecoderConfig(keypoints_number=2, edges=[Edge(0, 1, 0, 2)])


def test_config_from_dict():
    config = DecoderConfig.from_dict({
        'keypoints_number': 2,
        'edges': [[0, 1, 0, 1]],
        'min_joints_number': 2,
        'upsample_ratio': 1,
        'onnx_model': 'ignored.onnx',
    })

    assert config.edges == [Edge(0, 1, 0, 1)]
    assert config.min_joints_number == 2
    assert config.upsample_ratio == 1
    assert config.stride == 8
