"""
Small example models built from composable layers.

All of them take (batch, 3, 16, 16) images and return (batch, 10) logits:
a 5x5 convolution to 6 channels (12x12), 2x2 max pooling (6x6), flatten
(216 features) and a dense classifier.
"""
from .AnyLayer import AnyLayer
from .layers import (
    Conv2D,
    MaxPool2D,
    Flatten,
    FullyConnectedLayer,
    Sequential,
    SequentialSkip,
    ResidualConnection,
)

FEATURES = 6 * 6 * 6


def conv_pool_dense(device=None):
    return Sequential(
        Conv2D(3, 6, kernel_size=5, device=device),             # (batch, 6, 12, 12)
        MaxPool2D(kernel_size=2, stride=2, device=device),      # (batch, 6, 6, 6)
        Flatten(device=device),                                 # (batch, 216)
        FullyConnectedLayer(FEATURES, 10, device=device),
    )


def conv_pool_skipping_dense(device=None):
    # the 1 -> 2 dense layer is carried along but never applied
    return Sequential(
        Conv2D(3, 6, kernel_size=5, device=device),
        MaxPool2D(kernel_size=2, stride=2, device=device),
        Flatten(device=device),
        SequentialSkip(FullyConnectedLayer(1, 2, device=device)),
        FullyConnectedLayer(FEATURES, 10, device=device),
    )


def conv_pool_residual_dense(device=None):
    return Sequential(
        Conv2D(3, 6, kernel_size=5, device=device),
        MaxPool2D(kernel_size=2, stride=2, device=device),
        Flatten(device=device),
        ResidualConnection(FullyConnectedLayer(FEATURES, FEATURES, device=device)),
        FullyConnectedLayer(FEATURES, 10, device=device),
    )


def erased_conv_pool_dense(device=None):
    """The conv_pool_dense stages, each hidden behind an AnyLayer."""
    return Sequential([AnyLayer(layer) for layer in conv_pool_dense(device=device)])
