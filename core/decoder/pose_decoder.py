"""
Multi-person pose decoding from OpenPose heatmaps and part-affinity fields.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from posepipe.errors import ShapeMismatchError

from .config import DecoderConfig
from .peaks import Peak, PeakMap
from .skeleton import Edge

logger = logging.getLogger(__name__)

ABSENT = -1.0


@dataclass
class HumanPose:
    """Keypoints of one person; absent keypoints hold ``(-1, -1)``."""
    keypoints: np.ndarray  # (keypoints_number, 2) float32
    score: float

    @property
    def present_mask(self) -> np.ndarray:
        return ~np.all(self.keypoints == ABSENT, axis=1)

    @property
    def num_joints(self) -> int:
        return int(self.present_mask.sum())


@dataclass
class _Chain:
    peak_ids: List[int]  # per keypoint slot, -1 when empty
    score: float = 0.0
    num_joints: int = 0


@dataclass
class _Connection:
    src_index: int
    dst_index: int
    score: float


@dataclass
class _ChainTable:
    """Arena of partial poses; each chained peak id maps to a chain index."""
    keypoints_number: int
    chains: List[Optional[_Chain]] = field(default_factory=list)
    peak_chain: Dict[int, int] = field(default_factory=dict)

    def new_chain(self, peaks: Sequence[Tuple[int, Peak]], score: float) -> None:
        chain = _Chain(peak_ids=[-1] * self.keypoints_number)
        index = len(self.chains)
        for slot, peak in peaks:
            chain.peak_ids[slot] = peak.id
            chain.score += peak.score
            chain.num_joints += 1
            self.peak_chain[peak.id] = index
        chain.score += score
        self.chains.append(chain)

    def extend(self, index: int, slot: int, peak: Peak, score: float) -> bool:
        chain = self.chains[index]
        if chain.peak_ids[slot] != -1:
            return False
        chain.peak_ids[slot] = peak.id
        chain.score += peak.score + score
        chain.num_joints += 1
        self.peak_chain[peak.id] = index
        return True

    def merge(self, target: int, source: int, score: float) -> bool:
        dst, src = self.chains[target], self.chains[source]
        if any(a != -1 and b != -1 for a, b in zip(dst.peak_ids, src.peak_ids)):
            return False
        for slot, peak_id in enumerate(src.peak_ids):
            if peak_id != -1:
                dst.peak_ids[slot] = peak_id
                self.peak_chain[peak_id] = target
        dst.score += src.score + score
        dst.num_joints += src.num_joints
        self.chains[source] = None
        return True

    def live_chains(self) -> List[_Chain]:
        return [chain for chain in self.chains if chain is not None]


class PoseDecoder:
    """Groups heatmap peaks into skeletons along the configured limb topology."""

    def __init__(self, config: Optional[DecoderConfig] = None):
        self.config = config or DecoderConfig()
        self.peak_map = PeakMap(self.config.min_peaks_distance, self.config.peak_score_threshold)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.config.num_peak_workers,
                                                    thread_name_prefix="peak_map")
            return self._executor

    def validate_inputs(self, heatmaps, pafs, with_background: bool = True) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(keypoint_heatmaps, pafs)`` as float32 arrays or raise ShapeMismatchError.

        With ``with_background`` the heatmap set must carry the trailing
        background channel, which is dropped here; otherwise it must hold
        exactly one channel per keypoint.
        """
        heatmaps = np.asarray(heatmaps, dtype=np.float32)
        pafs = np.asarray(pafs, dtype=np.float32)
        n = self.config.keypoints_number
        expected = n + 1 if with_background else n

        if heatmaps.ndim != 3:
            raise ShapeMismatchError(f"Heatmaps must be (C, H, W), got shape {heatmaps.shape}")
        if heatmaps.shape[0] != expected:
            raise ShapeMismatchError(f"Expected {expected} heatmap channels, got {heatmaps.shape[0]}")
        if pafs.ndim != 3 or pafs.shape[0] != self.config.paf_channels:
            raise ShapeMismatchError(
                f"Expected PAFs of shape ({self.config.paf_channels}, H, W), got {pafs.shape}")
        if pafs.shape[1:] != heatmaps.shape[1:]:
            raise ShapeMismatchError(
                f"Heatmaps {heatmaps.shape[1:]} and PAFs {pafs.shape[1:]} must share spatial dimensions")

        return heatmaps[:n], pafs

    def find_peaks(self, heatmaps: np.ndarray) -> List[List[Peak]]:
        """Detect peaks per channel in parallel and assign global ids."""
        per_channel = list(self._get_executor().map(self.peak_map.find, list(heatmaps)))

        peaks_before = 0
        all_peaks = []
        for channel_peaks in per_channel:
            all_peaks.append([replace(peak, id=peak.id + peaks_before) for peak in channel_peaks])
            peaks_before += len(channel_peaks)
        return all_peaks

    def decode(self, heatmaps, pafs) -> List[HumanPose]:
        """Decode a full ``N + 1`` channel heatmap set (background last)."""
        heatmaps, pafs = self.validate_inputs(heatmaps, pafs)
        return self._group(heatmaps, pafs)

    def decode_keypoint_maps(self, keypoint_heatmaps, pafs) -> List[HumanPose]:
        """Decode heatmaps that already had the background channel removed."""
        keypoint_heatmaps, pafs = self.validate_inputs(keypoint_heatmaps, pafs, with_background=False)
        return self._group(keypoint_heatmaps, pafs)

    def _group(self, heatmaps: np.ndarray, pafs: np.ndarray) -> List[HumanPose]:
        all_peaks = self.find_peaks(heatmaps)
        peaks_by_id = {peak.id: peak for channel in all_peaks for peak in channel}

        table = _ChainTable(self.config.keypoints_number)
        for edge in self.config.edges:
            self._process_edge(table, edge, all_peaks, pafs)

        poses = []
        for chain in table.live_chains():
            if chain.num_joints < self.config.min_joints_number or chain.score < self.config.min_subset_score:
                continue
            keypoints = np.full((self.config.keypoints_number, 2), ABSENT, dtype=np.float32)
            for slot, peak_id in enumerate(chain.peak_ids):
                if peak_id != -1:
                    x, y = peaks_by_id[peak_id].position
                    keypoints[slot] = (x + self.config.keypoint_offset, y + self.config.keypoint_offset)
            poses.append(HumanPose(keypoints=keypoints, score=float(chain.score)))

        logger.debug(f"Decoded {len(poses)} poses from {len(peaks_by_id)} peaks")
        return poses

    def _process_edge(self, table: _ChainTable, edge: Edge,
                      all_peaks: List[List[Peak]], pafs: np.ndarray) -> None:
        cand_a = all_peaks[edge.src]
        cand_b = all_peaks[edge.dst]

        if not cand_a and not cand_b:
            return
        if not cand_a or not cand_b:
            slot, peaks = (edge.dst, cand_b) if not cand_a else (edge.src, cand_a)
            for peak in peaks:
                if peak.id not in table.peak_chain:
                    table.new_chain([(slot, peak)], 0.0)
            return

        connections = self._score_connections(cand_a, cand_b, pafs[edge.paf_x], pafs[edge.paf_y])
        connections.sort(key=lambda c: c.score, reverse=True)

        max_connections = min(len(cand_a), len(cand_b))
        used_a, used_b = set(), set()
        for connection in connections:
            if len(used_a) == max_connections:
                break
            if connection.src_index in used_a or connection.dst_index in used_b:
                continue
            used_a.add(connection.src_index)
            used_b.add(connection.dst_index)
            self._link(table, edge, cand_a[connection.src_index], cand_b[connection.dst_index],
                       connection.score)

    @staticmethod
    def _link(table: _ChainTable, edge: Edge, peak_a: Peak, peak_b: Peak, score: float) -> None:
        chain_a = table.peak_chain.get(peak_a.id)
        chain_b = table.peak_chain.get(peak_b.id)

        if chain_a is None and chain_b is None:
            table.new_chain([(edge.src, peak_a), (edge.dst, peak_b)], score)
        elif chain_b is None:
            table.extend(chain_a, edge.dst, peak_b, score)
        elif chain_a is None:
            table.extend(chain_b, edge.src, peak_a, score)
        elif chain_a != chain_b:
            table.merge(chain_a, chain_b, score)

    def _score_connections(self, cand_a: List[Peak], cand_b: List[Peak],
                           paf_x: np.ndarray, paf_y: np.ndarray) -> List[_Connection]:
        height, width = paf_x.shape
        half_height = height / 2
        samples = self.config.mid_points_number
        steps = np.arange(samples, dtype=np.float32) / (samples - 1)

        connections = []
        for i, peak_a in enumerate(cand_a):
            start = np.asarray(peak_a.position, dtype=np.float32)
            for j, peak_b in enumerate(cand_b):
                delta = np.asarray(peak_b.position, dtype=np.float32) - start
                norm = float(np.hypot(delta[0], delta[1]))
                if norm == 0:
                    continue
                vec = delta / norm

                points = start + steps[:, None] * delta
                xs = np.clip(np.rint(points[:, 0]).astype(np.int64), 0, width - 1)
                ys = np.clip(np.rint(points[:, 1]).astype(np.int64), 0, height - 1)
                alignment = vec[0] * paf_x[ys, xs] + vec[1] * paf_y[ys, xs]

                valid = alignment > self.config.mid_points_score_threshold
                valid_count = int(valid.sum())
                if valid_count == 0:
                    continue
                found_ratio = valid_count / samples
                score = float(alignment[valid].mean()) + min(half_height / norm - 1.0, 0.0)
                if score > 0 and found_ratio >= self.config.found_mid_points_ratio_threshold:
                    connections.append(_Connection(i, j, score))
        return connections
