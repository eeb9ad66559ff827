"""
Skeleton topology for the 18-keypoint COCO OpenPose layout.
"""
from typing import List, NamedTuple, Sequence


class Edge(NamedTuple):
    """One limb: source/destination keypoint channels and its PAF x/y channels."""
    src: int
    dst: int
    paf_x: int
    paf_y: int


COCO_KEYPOINT_NAMES = [
    'nose', 'neck',
    'r_shoulder', 'r_elbow', 'r_wrist',
    'l_shoulder', 'l_elbow', 'l_wrist',
    'r_hip', 'r_knee', 'r_ankle',
    'l_hip', 'l_knee', 'l_ankle',
    'r_eye', 'l_eye',
    'r_ear', 'l_ear',
]

# Processing order matters: neck-rooted limbs first, head and ear links last.
COCO_EDGES = [
    Edge(1, 2, 12, 13),
    Edge(1, 5, 20, 21),
    Edge(2, 3, 14, 15),
    Edge(3, 4, 16, 17),
    Edge(5, 6, 22, 23),
    Edge(6, 7, 24, 25),
    Edge(1, 8, 0, 1),
    Edge(8, 9, 2, 3),
    Edge(9, 10, 4, 5),
    Edge(1, 11, 6, 7),
    Edge(11, 12, 8, 9),
    Edge(12, 13, 10, 11),
    Edge(1, 0, 28, 29),
    Edge(0, 14, 30, 31),
    Edge(14, 16, 34, 35),
    Edge(0, 15, 32, 33),
    Edge(15, 17, 36, 37),
    Edge(2, 16, 18, 19),
    Edge(5, 17, 26, 27),
]


def to_edges(raw: Sequence[Sequence[int]]) -> List[Edge]:
    """Build edges from ``[src, dst, paf_x, paf_y]`` rows, e.g. from YAML."""
    edges = []
    for row in raw:
        if len(row) != 4:
            raise ValueError(f"Edge definition must have 4 entries, got {list(row)}")
        edges.append(Edge(*(int(v) for v in row)))
    return edges


def validate_edges(edges: Sequence[Edge], keypoints_number: int) -> None:
    """Check that every edge references existing keypoint and PAF channels."""
    paf_channels = 2 * len(edges)
    for edge in edges:
        if not (0 <= edge.src < keypoints_number and 0 <= edge.dst < keypoints_number):
            raise ValueError(f"Edge {edge} references a keypoint outside 0..{keypoints_number - 1}")
        if edge.src == edge.dst:
            raise ValueError(f"Edge {edge} connects a keypoint to itself")
        if not (0 <= edge.paf_x < paf_channels and 0 <= edge.paf_y < paf_channels):
            raise ValueError(f"Edge {edge} references a PAF channel outside 0..{paf_channels - 1}")
