from .Layer import Layer, move_child
from .TangentVector import TangentVector
from ..helpers.preconditions import derivative_type_mismatch


class SequentialSkipTangent(TangentVector):
    fields = ("layer",)


class SequentialSkip(Layer):
    """
    Holds a layer but passes its input straight through.

    The skipped layer keeps its parameters (and its place in the tangent),
    it just never runs, so its gradient is always zero.
    """

    TangentVector = SequentialSkipTangent

    def __init__(self, layer):
        self.layer = layer

    @property
    def device(self):
        return self.layer.device

    def forward(self, x):
        return x

    def forward_with_pullback(self, x):
        def pullback(grad_out):
            return SequentialSkipTangent(layer=self.layer.zero_tangent()), grad_out

        return x, pullback

    def params(self):
        return self.layer.params()

    def zero_tangent(self):
        return SequentialSkipTangent(layer=self.layer.zero_tangent())

    @property
    def differentiable_vector_view(self):
        return SequentialSkipTangent(layer=self.layer.differentiable_vector_view)

    def move(self, direction):
        if type(direction) is not SequentialSkipTangent:
            derivative_type_mismatch(got=type(direction), expected=SequentialSkipTangent)
        move_child(self.layer, direction["layer"])

    def copy_to(self, device):
        return type(self)(self.layer.copy_to(device))

    def __repr__(self):
        return f"SequentialSkip({self.layer!r})"
