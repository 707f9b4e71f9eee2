from .Layer import Layer, move_child
from .TangentVector import TangentVector
from ..helpers.Backend import default_device
from ..helpers.differentiation import value_with_pullback
from ..helpers.preconditions import derivative_type_mismatch


class SequentialTangent(TangentVector):
    """Per-layer tangents keyed by position in the Sequential."""

    fields = None


class Sequential(Layer):
    """
    Applies its layers in order, feeding each output into the next layer.

    The layers may be any mix of concrete layers and ``AnyLayer`` wrappers;
    the tangent holds one entry per position.
    """

    TangentVector = SequentialTangent

    def __init__(self, *layers):
        if len(layers) == 1 and isinstance(layers[0], (list, tuple)):
            layers = tuple(layers[0])
        self.layers = list(layers)

    @property
    def device(self):
        return self.layers[0].device if self.layers else default_device

    def __len__(self):
        return len(self.layers)

    def __getitem__(self, i):
        return self.layers[i]

    def __iter__(self):
        return iter(self.layers)

    def forward(self, x):
        for layer in self.layers:
            x = layer(x)
        return x

    def forward_with_pullback(self, x):
        pullbacks = []
        for layer in self.layers:
            x, pb = value_with_pullback(layer, x)
            pullbacks.append(pb)

        def pullback(grad_out):
            grads = {}
            grad = grad_out
            for i in reversed(range(len(pullbacks))):
                grads[i], grad = pullbacks[i](grad)
            return SequentialTangent({i: grads[i] for i in range(len(pullbacks))}), grad

        return x, pullback

    def params(self):
        return [p for layer in self.layers for p in layer.params()]

    def zero_tangent(self):
        return SequentialTangent({i: layer.zero_tangent() for i, layer in enumerate(self.layers)})

    @property
    def differentiable_vector_view(self):
        return SequentialTangent(
            {i: layer.differentiable_vector_view for i, layer in enumerate(self.layers)}
        )

    def move(self, direction):
        if type(direction) is not SequentialTangent:
            derivative_type_mismatch(got=type(direction), expected=SequentialTangent)
        for i, layer in enumerate(self.layers):
            if i in direction:
                move_child(layer, direction[i])

    def copy_to(self, device):
        return type(self)([layer.copy_to(device) for layer in self.layers])

    def __repr__(self):
        inner = ",\n".join(f"  {layer!r}" for layer in self.layers)
        return f"Sequential(\n{inner}\n)"
