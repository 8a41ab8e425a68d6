"""
fitkit

A thin training facade over PyTorch computation graphs: load and save
models, fit them on minibatches of tabular frames, evaluate and predict,
with lifecycle callbacks around every epoch and batch.
"""

__version__ = "1.0.0"

from .compiled_model import CompiledModel
from .data.frame import XYFrame

__all__ = ["CompiledModel", "XYFrame"]
