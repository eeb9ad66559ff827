from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class PoseMessage(BaseModel):
    """One decoded person; absent keypoints are ``None``."""
    keypoints: List[Optional[List[float]]]
    score: float
    num_joints: int


class FrameResultMessage(BaseModel):
    """Decoded poses for one frame, as written to output interfaces."""
    frame_id: int
    task_id: Optional[str] = None
    model: str
    poses: List[PoseMessage]
    latency_ms: float
    metadata: Optional[Dict[str, Any]] = None


class PerformanceSnapshot(BaseModel):
    """Serializable view of pipeline performance counters."""
    frames_count: int
    average_latency_ms: float
    fps: float
    num_requests_in_use: int
