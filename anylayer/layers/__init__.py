from .Layer import Layer
from .TangentVector import TangentVector, EmptyTangentVector
from .Conv2D import Conv2D
from .ReLU import ReLU
from .MaxPool2D import MaxPool2D
from .Flatten import Flatten
from .FullyConnectedLayer import FullyConnectedLayer
from .Sequential import Sequential
from .SequentialSkip import SequentialSkip
from .ResidualConnection import ResidualConnection

__all__ = [
    "Layer",
    "TangentVector",
    "EmptyTangentVector",
    "Conv2D",
    "ReLU",
    "MaxPool2D",
    "Flatten",
    "FullyConnectedLayer",
    "Sequential",
    "SequentialSkip",
    "ResidualConnection",
]
