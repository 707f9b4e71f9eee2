import copy

from .TangentVector import EmptyTangentVector, _is_tangent
from ..helpers.Backend import default_device
from ..helpers.preconditions import derivative_type_mismatch


class Layer:
    # Tangent class of this layer; subclasses with parameters provide their own
    TangentVector = EmptyTangentVector
    # Attributes holding learnable arrays, named like the TangentVector fields
    param_names = ()

    def __init__(self, device=None):
        self.device = device if device is not None else default_device

    # Subclasses override as needed
    def forward(self, x):
        raise NotImplementedError

    def forward_with_pullback(self, x):
        # Return (output, pullback) where pullback(grad_out) -> (layer tangent, grad wrt input)
        raise NotImplementedError

    def __call__(self, x):
        return self.forward(x)

    def params(self):
        # Return list of parameter ndarrays (e.g., [W, b])
        return [getattr(self, name) for name in self.param_names]

    def zero_tangent(self):
        return self.TangentVector.zero()

    @property
    def differentiable_vector_view(self):
        return self.TangentVector({name: getattr(self, name) for name in self.param_names})

    def move(self, direction):
        if type(direction) is not self.TangentVector:
            derivative_type_mismatch(got=type(direction), expected=self.TangentVector)
        for name in self.param_names:
            p = getattr(self, name)
            # rebind: pullbacks and copies made earlier keep the old array
            setattr(self, name, (p + direction[name]).astype(p.dtype, copy=False))

    def copy_to(self, device):
        """A copy of this layer whose arrays all live on ``device``."""
        new = copy.copy(self)
        new.device = device
        for name in self.param_names:
            setattr(new, name, device.ensure_array(getattr(self, name), copy=True))
        return new


def move_child(child, component):
    """Move a sub-layer along one component of its container's tangent."""
    if _is_tangent(component):
        child.move(component)
    else:
        # a plain number: zero component or a broadcast scalar
        child.move(child.zero_tangent().adding(float(component)))
