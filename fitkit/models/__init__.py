"""Model architectures and the model type registry."""

from .base_model import BaseModel, build_model, register_model, is_registered, registered_class
from .mlp import MLP

__all__ = ["MLP", "BaseModel", "build_model", "register_model", "is_registered", "registered_class"]
