import numpy as np
import pytest

from core.models.openpose_model import OpenPoseModel
from posepipe.errors import ShapeMismatchError
from posepipe.pipeline import AsyncPipeline, PipelineConfig, RequestResult, ThreadPoolBackend

MODEL_CONFIG = {
    'keypoints_number': 2,
    'edges': [[0, 1, 0, 1]],
    'min_joints_number': 2,
    'stride': 1,
    'upsample_ratio': 1,
}

INPUT_SHAPES = {'image': (1, 3, 10, 12)}
OUTPUT_SHAPES = {'pafs': (1, 2, 10, 12), 'heatmaps': (1, 3, 10, 12)}


@pytest.fixture
def model():
    m = OpenPoseModel(dict(MODEL_CONFIG))
    yield m
    m.close()


def test_validate_runtime_identifies_outputs_by_channels(model):
    model.validate_runtime(INPUT_SHAPES, {'heatmaps': (1, 3, 10, 12), 'pafs': (1, 2, 10, 12)})

    assert model.pafs_output == 'pafs'
    assert model.heatmaps_output == 'heatmaps'


def test_validate_runtime_accepts_dynamic_batch(model):
    model.validate_runtime({'image': ('batch', 3, 10, 12)}, OUTPUT_SHAPES)


@pytest.mark.parametrize("input_shapes, output_shapes", [
    ({'a': (1, 3, 8, 8), 'b': (1, 3, 8, 8)}, OUTPUT_SHAPES),
    ({'image': (1, 1, 10, 12)}, OUTPUT_SHAPES),
    ({'image': (2, 3, 10, 12)}, OUTPUT_SHAPES),
    (INPUT_SHAPES, {'pafs': (1, 2, 10, 12)}),
    (INPUT_SHAPES, {'pafs': (1, 2, 10, 12), 'heatmaps': (1, 5, 10, 12)}),
    (INPUT_SHAPES, {'pafs': (1, 2, 10, 12), 'heatmaps': (1, 3, 5, 6)}),
    (INPUT_SHAPES, {'pafs': (1, 2, 10), 'heatmaps': (1, 3, 10, 12)}),
])
def test_validate_runtime_rejects_mismatched_shapes(model, input_shapes, output_shapes):
    with pytest.raises(ShapeMismatchError):
        model.validate_runtime(input_shapes, output_shapes)


def test_postprocess_decodes_and_rescales(model, single_limb_maps):
    heatmaps, pafs = single_limb_maps
    model.validate_runtime(INPUT_SHAPES, OUTPUT_SHAPES)
    result = RequestResult(frame_id=1, outputs={'pafs': pafs[None], 'heatmaps': heatmaps[None]})

    [pose] = model.postprocess(result)
    np.testing.assert_allclose(pose.keypoints, [[2.5, 5.5], [7.5, 5.5]])

    result.meta = {'image_size': (24, 20), 'pad': (0, 0, 0, 0)}
    [pose] = model.postprocess(result)
    np.testing.assert_allclose(pose.keypoints, [[5.0, 11.0], [15.0, 11.0]])


def test_async_pipeline_validates_at_construction():
    runtime = ThreadPoolBackend(lambda inputs: {}, INPUT_SHAPES,
                                {'pafs': (1, 2, 10, 12), 'heatmaps': (1, 4, 10, 12)})
    try:
        with pytest.raises(ShapeMismatchError):
            AsyncPipeline(OpenPoseModel(dict(MODEL_CONFIG)), runtime)
    finally:
        runtime.close()


def test_async_pipeline_returns_poses_in_frame_order(single_limb_maps):
    heatmaps, pafs = single_limb_maps

    def infer(inputs):
        return {'pafs': pafs[None], 'heatmaps': heatmaps[None]}

    runtime = ThreadPoolBackend(infer, INPUT_SHAPES, OUTPUT_SHAPES, max_workers=3)
    model = OpenPoseModel(dict(MODEL_CONFIG))
    pipeline = AsyncPipeline(model, runtime, PipelineConfig(num_requests=3))
    try:
        for i in range(4):
            pipeline.submit_data({'image': np.zeros((1, 3, 10, 12), dtype=np.float32)}, meta={'i': i})
        assert pipeline.wait_for_total_completion(timeout=10)

        results = []
        while True:
            result = pipeline.get_pose_result()
            if result is None:
                break
            results.append(result)
    finally:
        runtime.close()
        model.close()

    assert [r.frame_id for r in results] == [1, 2, 3, 4]
    assert [r.meta['i'] for r in results] == [0, 1, 2, 3]
    assert all(len(r.poses) == 1 for r in results)


def test_postprocess_ignores_non_mapping_meta(model, single_limb_maps):
    heatmaps, pafs = single_limb_maps
    model.validate_runtime(INPUT_SHAPES, OUTPUT_SHAPES)
    result = RequestResult(frame_id=1, outputs={'pafs': pafs[None], 'heatmaps': heatmaps[None]}, meta=7)

    [pose] = model.postprocess(result)

    np.testing.assert_allclose(pose.keypoints, [[2.5, 5.5], [7.5, 5.5]])


def test_postprocess_rejects_heatmaps_without_background(model, single_limb_maps):
    heatmaps, pafs = single_limb_maps
    model.validate_runtime(INPUT_SHAPES, OUTPUT_SHAPES)
    result = RequestResult(frame_id=1, outputs={'pafs': pafs[None], 'heatmaps': heatmaps[None, :2]})

    with pytest.raises(ShapeMismatchError):
        model.postprocess(result)


def test_async_pipeline_accepts_scalar_meta(single_limb_maps):
    heatmaps, pafs = single_limb_maps
    runtime = ThreadPoolBackend(lambda inputs: {'pafs': pafs[None], 'heatmaps': heatmaps[None]},
                                INPUT_SHAPES, OUTPUT_SHAPES)
    model = OpenPoseModel(dict(MODEL_CONFIG))
    pipeline = AsyncPipeline(model, runtime)
    try:
        pipeline.submit_data({'image': np.zeros((1, 3, 10, 12), dtype=np.float32)}, meta=7)
        assert pipeline.wait_for_total_completion(timeout=10)
        result = pipeline.get_pose_result()
    finally:
        runtime.close()
        model.close()

    assert result.meta == 7
    assert len(result.poses) == 1
