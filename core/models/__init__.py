from .base_model import AIModel
from .openpose_model import OpenPoseModel

__all__ = ['AIModel', 'OpenPoseModel']
