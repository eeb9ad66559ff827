"""
OpenPose model implementation for multi-person pose estimation.
"""
import logging
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from core.decoder import DecoderConfig, HumanPose, PoseDecoder
from core.decoder.scaling import compute_image_scale, rescale_poses, resize_feature_maps
from posepipe.errors import ShapeMismatchError
from posepipe.pipeline.pipeline_base import RequestResult

from .base_model import AIModel, Shape

logger = logging.getLogger(__name__)


class OpenPoseModel(AIModel):
    """Decodes OpenPose PAF and heatmap outputs into image-space poses.

    The network is expected to take one ``1x3xHxW`` image and produce two
    outputs: PAFs with two channels per limb and heatmaps with one channel
    per keypoint plus background, both at the same resolution.

    Submission metadata may carry ``image_size`` as ``(width, height)`` of the
    original image and ``pad`` as ``(top, left, bottom, right)`` applied
    before inference. Without ``image_size`` keypoints stay in network-input
    coordinates.
    """

    def __init__(self, config: Dict):
        super().__init__(config)
        self.decoder_config = DecoderConfig.from_dict(config)
        self.decoder = PoseDecoder(self.decoder_config)
        self.pafs_output: Optional[str] = config.get('pafs_output')
        self.heatmaps_output: Optional[str] = config.get('heatmaps_output')

    def close(self) -> None:
        self.decoder.close()

    def validate_runtime(self, input_shapes: Dict[str, Shape], output_shapes: Dict[str, Shape]) -> None:
        if len(input_shapes) != 1:
            raise ShapeMismatchError("OpenPose supports topologies only with 1 input")
        input_shape = next(iter(input_shapes.values()))
        if len(input_shape) != 4 or (isinstance(input_shape[0], int) and input_shape[0] != 1) \
                or input_shape[1] != 3:
            raise ShapeMismatchError(f"3-channel 4-dimensional model input is expected, got {input_shape}")

        if len(output_shapes) != 2:
            raise ShapeMismatchError(f"OpenPose supports topologies only with 2 outputs, got {len(output_shapes)}")
        for name, shape in output_shapes.items():
            if len(shape) != 4:
                raise ShapeMismatchError(f"Output '{name}' must be 4-dimensional, got {shape}")

        self.pafs_output, self.heatmaps_output = self._identify_outputs(output_shapes)
        pafs_shape = output_shapes[self.pafs_output]
        heatmaps_shape = output_shapes[self.heatmaps_output]

        n = self.decoder_config.keypoints_number
        if pafs_shape[1] != self.decoder_config.paf_channels:
            raise ShapeMismatchError(
                f"1x{self.decoder_config.paf_channels}xHFMxWFM dimension of PAF output is expected, got {pafs_shape}")
        if heatmaps_shape[1] != n + 1:
            raise ShapeMismatchError(
                f"1x{n + 1}xHFMxWFM dimension of heatmap output is expected, got {heatmaps_shape}")
        for pafs_dim, heatmaps_dim in zip(pafs_shape[2:], heatmaps_shape[2:]):
            if isinstance(pafs_dim, int) and isinstance(heatmaps_dim, int) and pafs_dim != heatmaps_dim:
                raise ShapeMismatchError("PAF and heatmap outputs are expected to have matching last two dimensions")

        logger.info(f"OpenPose outputs: pafs='{self.pafs_output}' {pafs_shape}, "
                    f"heatmaps='{self.heatmaps_output}' {heatmaps_shape}")

    def _identify_outputs(self, output_shapes: Dict[str, Shape]) -> Tuple[str, str]:
        names = list(output_shapes.keys())
        if self.pafs_output and self.heatmaps_output:
            for name in (self.pafs_output, self.heatmaps_output):
                if name not in output_shapes:
                    raise ShapeMismatchError(f"Configured output '{name}' is not produced by the model")
            return self.pafs_output, self.heatmaps_output

        paf_channels = self.decoder_config.paf_channels
        heatmap_channels = self.decoder_config.keypoints_number + 1
        if paf_channels != heatmap_channels:
            pafs = [name for name in names if output_shapes[name][1] == paf_channels]
            heatmaps = [name for name in names if output_shapes[name][1] == heatmap_channels]
            if len(pafs) == 1 and len(heatmaps) == 1:
                return pafs[0], heatmaps[0]
        # Ambiguous channel counts: PAFs come first.
        return names[0], names[1]

    def postprocess(self, result: RequestResult) -> List[HumanPose]:
        if self.pafs_output is None or self.heatmaps_output is None:
            self.pafs_output, self.heatmaps_output = list(result.outputs.keys())[:2]

        pafs = np.asarray(result.outputs[self.pafs_output])[0]
        heatmaps = np.asarray(result.outputs[self.heatmaps_output])[0]
        n = self.decoder_config.keypoints_number
        if heatmaps.ndim != 3 or heatmaps.shape[0] != n + 1:
            raise ShapeMismatchError(f"Expected {n + 1} heatmap channels in output, got shape {heatmaps.shape}")
        # background is not needed for decoding, drop it before upsampling
        heatmaps = heatmaps[:n]

        ratio = self.decoder_config.upsample_ratio
        heatmaps = resize_feature_maps(heatmaps, ratio)
        pafs = resize_feature_maps(pafs, ratio)

        poses = self.decoder.decode_keypoint_maps(heatmaps, pafs)

        meta = result.meta if isinstance(result.meta, Mapping) else {}
        pad = tuple(meta.get('pad', (0, 0, 0, 0)))
        feature_map_size = (heatmaps.shape[2], heatmaps.shape[1])
        image_size = meta.get('image_size')
        if image_size is None:
            scale = (1.0, 1.0)
        else:
            scale = compute_image_scale(feature_map_size, tuple(image_size),
                                        self.decoder_config.stride, ratio, pad)

        poses = rescale_poses(poses, self.decoder_config.stride, ratio, pad, scale)
        logger.debug(f"Estimated {len(poses)} poses in frame {result.frame_id}")
        return poses
