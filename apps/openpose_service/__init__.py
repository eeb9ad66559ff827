from .openpose_worker import OpenPoseWorker

__all__ = ['OpenPoseWorker']
