import copy
import weakref

from .AnyLayerTangentVector import AnyLayerTangentVector
from .helpers.Backend import SCALAR
from .helpers.differentiation import value_with_pullback
from .helpers.preconditions import derivative_type_mismatch, must_override
from .layers.Layer import Layer


class AnyLayerBox:
    """
    The base type for a type-erased box that encapsulates a layer.
    Offers forwarders to implement the layer contract and device copies.

    A box also tracks the ``AnyLayer`` wrappers that currently own it, so a
    wrapper can tell whether a mutation would be visible through another
    wrapper.
    """

    def __init__(self):
        self._owners = weakref.WeakSet()

    # ----- ownership -----
    def retain(self, owner):
        self._owners.add(owner)

    def release(self, owner):
        self._owners.discard(owner)

    @property
    def owner_count(self):
        return len(self._owners)

    @property
    def type_erased_base(self):
        """The underlying layer, type-erased."""
        must_override("AnyLayerBox", "type_erased_base")

    def unboxed(self, to):
        """Returns the underlying layer unboxed to the given type, if possible."""
        must_override("AnyLayerBox", "unboxed")

    # Differentiable requirements
    def _move(self, direction):
        """Moves the underlying layer along the given AnyLayerTangentVector."""
        must_override("AnyLayerBox", "_move")

    @property
    def _differentiable_vector_view(self):
        must_override("AnyLayerBox", "_differentiable_vector_view")

    # Layer requirements
    def _call(self, x):
        """Returns the output obtained from applying the layer to the given input."""
        must_override("AnyLayerBox", "_call")

    def _vjp_call(self, x):
        must_override("AnyLayerBox", "_vjp_call")

    def _copy_to(self, device):
        """Creates a box holding a copy of the layer whose arrays all live on ``device``."""
        must_override("AnyLayerBox", "_copy_to")

    def duplicate(self):
        """Creates a new box storing a copy of the underlying layer, used to preserve value semantics."""
        must_override("AnyLayerBox", "duplicate")


class ConcreteLayerBox(AnyLayerBox):
    """A box that forwards every operation to one concrete layer it owns."""

    def __init__(self, underlying):
        super().__init__()
        self.underlying = underlying

    @property
    def type_erased_base(self):
        return self.underlying

    def unboxed(self, to):
        # nominal: the exact class, subclasses do not match
        if type(self.underlying) is to:
            return copy.deepcopy(self.underlying)
        return None

    def _move(self, direction):
        scalar = direction.get_opaque_scalar()
        if scalar is not None:
            self.underlying.move(self.underlying.zero_tangent().adding(scalar))
            return
        expected = type(self.underlying).TangentVector
        base = direction.unboxed(expected)
        if base is None:
            derivative_type_mismatch(got=direction.base_type, expected=expected)
        self.underlying.move(base)

    @property
    def _differentiable_vector_view(self):
        return AnyLayerTangentVector(self.underlying.differentiable_vector_view)

    def _call(self, x):
        return self.underlying.forward(x)

    def _vjp_call(self, x):
        value, base_pullback = value_with_pullback(self.underlying, x)

        def pullback(grad_out):
            d_layer, d_input = base_pullback(grad_out)
            return AnyLayerTangentVector(d_layer), d_input

        return value, pullback

    def _copy_to(self, device):
        return ConcreteLayerBox(self.underlying.copy_to(device))

    def duplicate(self):
        return ConcreteLayerBox(copy.deepcopy(self.underlying))


class AnyLayer(Layer):
    """
    A type-erased layer.

    ``AnyLayer`` forwards its operations to an arbitrary underlying layer,
    hiding the specifics of the underlying value, so layers of different
    classes can sit in one list and be trained through one interface.

    The tangent of every ``AnyLayer`` is an ``AnyLayerTangentVector``; all
    tangents other than the opaque zero/one/scalar variants wrap the tangent
    of the underlying layer.

    Wrapping copies the layer, so the caller keeps an independent one.
    Copies behave like values: ``copy.copy`` shares the underlying box until
    one of the copies is moved, at which point the moved copy gets a box of
    its own (copy-on-write). ``copy.deepcopy`` duplicates eagerly.
    """

    TangentVector = AnyLayerTangentVector

    def __init__(self, layer):
        tangent_type = getattr(layer, "TangentVector", None)
        if getattr(tangent_type, "scalar_type", None) != SCALAR:
            raise TypeError(
                f"Cannot erase {type(layer).__name__}: its tangent scalar type "
                f"must be {SCALAR.__name__}"
            )
        self._box = None
        # the box owns its own copy of the layer
        self._adopt(ConcreteLayerBox(copy.deepcopy(layer)))

    @classmethod
    def _with_box(cls, box):
        obj = cls.__new__(cls)
        obj._box = None
        obj._adopt(box)
        return obj

    @classmethod
    def copying(cls, other, device):
        """A copy of ``other`` whose arrays all live on ``device``."""
        return cls._with_box(other._box._copy_to(device))

    def _adopt(self, box):
        if self._box is not None:
            self._box.release(self)
        self._box = box
        box.retain(self)

    def _is_known_uniquely_referenced(self):
        return self._box.owner_count == 1

    def __copy__(self):
        return type(self)._with_box(self._box)

    def __deepcopy__(self, memo):
        result = type(self)._with_box(self._box.duplicate())
        memo[id(self)] = result
        return result

    @property
    def underlying(self):
        """The underlying layer, for introspection only."""
        return self._box.type_erased_base

    def unboxed(self, to):
        """A copy of the underlying layer if it is exactly of class ``to``, else None."""
        return self._box.unboxed(to)

    @property
    def device(self):
        return self.underlying.device

    # ----- differentiable -----
    def move(self, direction):
        if not self._is_known_uniquely_referenced():
            self._adopt(self._box.duplicate())
        self._box._move(direction)

    @property
    def differentiable_vector_view(self):
        return self._box._differentiable_vector_view

    def zero_tangent(self):
        return AnyLayerTangentVector.zero()

    # ----- layer -----
    def forward(self, x):
        return self._box._call(x)

    def forward_with_pullback(self, x):
        return self._box._vjp_call(x)

    def params(self):
        return self.underlying.params()

    def copy_to(self, device):
        return type(self).copying(self, device)

    def __repr__(self):
        return f"AnyLayer({self.underlying!r})"
