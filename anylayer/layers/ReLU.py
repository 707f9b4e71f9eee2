from .Layer import Layer
from .TangentVector import EmptyTangentVector


class ReLU(Layer):
    def forward(self, x):
        x = self.device.ensure_array(x)
        return self.device.maximum(0, x)

    def forward_with_pullback(self, x):
        x = self.device.ensure_array(x)
        mask = (x > 0).astype(x.dtype)

        def pullback(grad_out):
            grad_out = self.device.ensure_array(grad_out)
            return EmptyTangentVector(), grad_out * mask

        return self.device.maximum(0, x), pullback

    def __repr__(self):
        return "ReLU()"
