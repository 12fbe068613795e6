"""Model loading utilities"""

from .model_loader import get_face_cascade, check_models

__all__ = ["get_face_cascade", "check_models"]
