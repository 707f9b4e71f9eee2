from .helpers.Backend import SCALAR, Device, default_device
from .helpers.preconditions import PreconditionFailure, DerivativeTypeMismatch
from .helpers.differentiation import value_with_pullback, pullback, value_with_gradient
from .AnyLayerTangentVector import AnyLayerTangentVector
from .AnyLayer import AnyLayer, AnyLayerBox, ConcreteLayerBox
from . import layers
from . import models
from .Trainer import Trainer

__all__ = [
    "SCALAR",
    "Device",
    "default_device",
    "PreconditionFailure",
    "DerivativeTypeMismatch",
    "value_with_pullback",
    "pullback",
    "value_with_gradient",
    "AnyLayerTangentVector",
    "AnyLayer",
    "AnyLayerBox",
    "ConcreteLayerBox",
    "layers",
    "models",
    "Trainer",
]
