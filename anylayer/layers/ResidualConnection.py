from .Layer import Layer, move_child
from .TangentVector import TangentVector
from ..helpers.differentiation import value_with_pullback
from ..helpers.preconditions import derivative_type_mismatch


class ResidualConnectionTangent(TangentVector):
    fields = ("layer",)


class ResidualConnection(Layer):
    """``y = x + layer(x)``; the wrapped layer must preserve the input shape."""

    TangentVector = ResidualConnectionTangent

    def __init__(self, layer):
        self.layer = layer

    @property
    def device(self):
        return self.layer.device

    def forward(self, x):
        return x + self.layer(x)

    def forward_with_pullback(self, x):
        y, inner = value_with_pullback(self.layer, x)

        def pullback(grad_out):
            d_layer, d_x = inner(grad_out)
            return ResidualConnectionTangent(layer=d_layer), grad_out + d_x

        return x + y, pullback

    def params(self):
        return self.layer.params()

    def zero_tangent(self):
        return ResidualConnectionTangent(layer=self.layer.zero_tangent())

    @property
    def differentiable_vector_view(self):
        return ResidualConnectionTangent(layer=self.layer.differentiable_vector_view)

    def move(self, direction):
        if type(direction) is not ResidualConnectionTangent:
            derivative_type_mismatch(got=type(direction), expected=ResidualConnectionTangent)
        move_child(self.layer, direction["layer"])

    def copy_to(self, device):
        return type(self)(self.layer.copy_to(device))

    def __repr__(self):
        return f"ResidualConnection({self.layer!r})"
