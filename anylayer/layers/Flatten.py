from .Layer import Layer
from .TangentVector import EmptyTangentVector


class Flatten(Layer):
    def forward(self, x):
        # x shape: (batch, channels, H, W)
        # return: (batch, channels*H*W)
        x = self.device.ensure_array(x)
        return self.device.reshape(x, (x.shape[0], -1))

    def forward_with_pullback(self, x):
        x = self.device.ensure_array(x)
        in_shape = x.shape

        def pullback(grad_out):
            grad_out = self.device.ensure_array(grad_out)
            return EmptyTangentVector(), self.device.reshape(grad_out, in_shape)

        return self.device.reshape(x, (in_shape[0], -1)), pullback

    def __repr__(self):
        return "Flatten()"
