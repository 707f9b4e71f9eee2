import numpy as np
from .Layer import Layer
from .TangentVector import TangentVector
from ..helpers.Backend import SCALAR


class FullyConnectedLayerTangent(TangentVector):
    fields = ("weights", "bias")


class FullyConnectedLayer(Layer):
    TangentVector = FullyConnectedLayerTangent
    param_names = ("weights", "bias")

    def __init__(self, in_features, out_features, device=None):
        # initialize weights/bias
        # weights: (out_features, in_features)
        # bias: (out_features, 1)
        super().__init__(device)
        self.in_features = in_features
        self.out_features = out_features

        # He initialization, on CPU, then move to the layer's device
        weights_cpu = (
            np.random.randn(out_features, in_features) * np.sqrt(2.0 / in_features)
        ).astype(SCALAR)
        bias_cpu = np.zeros((out_features, 1), dtype=SCALAR)

        self.weights = self.device.ensure_array(weights_cpu)
        self.bias = self.device.ensure_array(bias_cpu)

    def forward(self, x):
        # x shape: (batch, in_features)
        # return: (batch, out_features)
        dev = self.device
        x = dev.ensure_array(x)
        return dev.matmul(x, dev.transpose(self.weights)) + dev.transpose(self.bias)

    def forward_with_pullback(self, x):
        dev = self.device
        x = dev.ensure_array(x)
        weights = self.weights
        out = dev.matmul(x, dev.transpose(weights)) + dev.transpose(self.bias)

        def pullback(grad_out):
            grad_out = dev.ensure_array(grad_out)
            dW = dev.matmul(dev.transpose(grad_out), x)  # (out, in)
            db = dev.transpose(dev.sum(grad_out, axis=0, keepdims=True))  # (out, 1)
            grad_in = dev.matmul(grad_out, weights)  # (B, in)
            return FullyConnectedLayerTangent(weights=dW, bias=db), grad_in

        return out, pullback

    def __repr__(self):
        return f"FullyConnectedLayer({self.in_features}, {self.out_features})"
