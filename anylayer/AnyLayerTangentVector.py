import numbers
import operator

from .helpers.Backend import SCALAR
from .helpers.preconditions import derivative_type_mismatch

ZERO = "zero"
ONE = "one"
OPAQUE_SCALAR = "scalar"
CONCRETE = "concrete"


def _is_number(v):
    return isinstance(v, numbers.Real) and not isinstance(v, bool)


class AnyLayerTangentVector:
    """
    A type-erased tangent vector, the tangent type of every ``AnyLayer``.

    Exactly one of four variants:

    * ``zero``: the additive identity of every tangent space,
    * ``one``: the multiplicative identity,
    * ``scalar``: one value broadcast over a space of unknown shape,
    * ``concrete``: a wrapped tangent of some concrete layer; the class of
      the wrapped value is its type tag.

    Binary operations (``+ - * /``) between two variants follow one table:

    ==================  ==============================================
    left / right        result
    ==================  ==============================================
    zero with anything  identity rules of the operation (see _with_zero)
    scalar, scalar      scalar(op(a, b))
    scalar, concrete    concrete(op(a, c)), broadcast into c's space
    concrete, scalar    concrete(op(c, b))
    concrete, concrete  concrete(op(c1, c2)) if same type, else fatal
    ==================  ==============================================

    Real numbers are treated as ``scalar`` operands, so ``t + 1.0`` adds
    1 to every element and ``t * 0.5`` scales. ``one`` behaves as
    ``scalar(1)``.
    """

    __slots__ = ("kind", "payload")

    scalar_type = SCALAR
    is_tangent_vector = True
    __array_ufunc__ = None

    def __init__(self, base):
        if getattr(type(base), "scalar_type", None) != SCALAR:
            raise TypeError(
                f"Cannot erase {type(base).__name__}: its scalar type must be "
                f"{SCALAR.__name__}"
            )
        self.kind = CONCRETE
        self.payload = base

    @classmethod
    def _make(cls, kind, payload=None):
        obj = cls.__new__(cls)
        obj.kind = kind
        obj.payload = payload
        return obj

    @classmethod
    def zero(cls):
        return cls._make(ZERO)

    @classmethod
    def one(cls):
        return cls._make(ONE)

    @classmethod
    def opaque_scalar(cls, value):
        return cls._make(OPAQUE_SCALAR, float(value))

    # ----- introspection -----
    @property
    def type_erased_base(self):
        if self.kind == CONCRETE:
            return self.payload
        return self.get_opaque_scalar()

    @property
    def base_type(self):
        return type(self.payload) if self.kind == CONCRETE else None

    def unboxed(self, as_type):
        """The wrapped tangent if it is exactly ``as_type``, else None."""
        if self.kind == CONCRETE and type(self.payload) is as_type:
            return self.payload
        return None

    def get_opaque_scalar(self):
        """
        The broadcast value of a non-concrete tangent, else None.

        Not only the ``scalar`` variant answers: ``zero`` gives 0.0 and
        ``one`` gives 1.0, so a layer moved along either of them takes a
        uniform step instead of failing with a type mismatch.
        """
        if self.kind == ZERO:
            return 0.0
        if self.kind == ONE:
            return 1.0
        if self.kind == OPAQUE_SCALAR:
            return self.payload
        return None

    @property
    def is_zero(self):
        if self.kind == CONCRETE:
            return self.payload.is_zero
        return self.get_opaque_scalar() == 0.0

    # ----- combination table -----
    @staticmethod
    def _coerce(other):
        if isinstance(other, AnyLayerTangentVector):
            return other
        if _is_number(other):
            return AnyLayerTangentVector.opaque_scalar(other)
        return NotImplemented

    def _wrap(self, base):
        return AnyLayerTangentVector(base)

    def _with_zero(self, other, op):
        if op is operator.add:
            return other if self.kind == ZERO else self
        if op is operator.sub:
            return self if other.kind == ZERO else -other
        if op is operator.mul:
            return AnyLayerTangentVector.zero()
        # truediv
        if other.kind == ZERO:
            raise ZeroDivisionError("division by the zero tangent")
        return self

    def _binary(self, other, op):
        if self.kind == ZERO or other.kind == ZERO:
            return self._with_zero(other, op)
        a, b = self.get_opaque_scalar(), other.get_opaque_scalar()
        if a is not None and b is not None:
            return AnyLayerTangentVector.opaque_scalar(op(a, b))
        if a is not None:
            return self._wrap(op(a, other.payload))
        if b is not None:
            return self._wrap(op(self.payload, b))
        if type(self.payload) is not type(other.payload):
            derivative_type_mismatch(got=type(other.payload), expected=type(self.payload))
        return self._wrap(op(self.payload, other.payload))

    def _operate(self, other, op):
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return self._binary(other, op)

    def _operate_reflected(self, other, op):
        other = self._coerce(other)
        if other is NotImplemented:
            return NotImplemented
        return other._binary(self, op)

    def __add__(self, other):
        return self._operate(other, operator.add)

    def __radd__(self, other):
        return self._operate_reflected(other, operator.add)

    def __sub__(self, other):
        return self._operate(other, operator.sub)

    def __rsub__(self, other):
        return self._operate_reflected(other, operator.sub)

    def __mul__(self, other):
        return self._operate(other, operator.mul)

    def __rmul__(self, other):
        return self._operate_reflected(other, operator.mul)

    def __truediv__(self, other):
        return self._operate(other, operator.truediv)

    def __rtruediv__(self, other):
        return self._operate_reflected(other, operator.truediv)

    def __pow__(self, exponent):
        if not _is_number(exponent):
            return NotImplemented
        if self.kind == ZERO:
            if exponent > 0:
                return self
            if exponent == 0:
                return AnyLayerTangentVector.one()
            raise ZeroDivisionError("negative power of the zero tangent")
        if self.kind == CONCRETE:
            return self._wrap(self.payload ** exponent)
        return AnyLayerTangentVector.opaque_scalar(self.get_opaque_scalar() ** exponent)

    def __neg__(self):
        if self.kind == ZERO:
            return self
        if self.kind == CONCRETE:
            return self._wrap(-self.payload)
        return AnyLayerTangentVector.opaque_scalar(-self.get_opaque_scalar())

    def adding(self, scalar):
        return self + scalar

    def subtracting(self, scalar):
        return self - scalar

    def scaled(self, scalar):
        return self * scalar

    # ----- reductions -----
    def sum(self):
        # an opaque scalar counts as a single element
        if self.kind == CONCRETE:
            return self.payload.sum()
        return self.get_opaque_scalar()

    def squared_norm(self):
        if self.kind == CONCRETE:
            return self.payload.squared_norm()
        return self.get_opaque_scalar() ** 2

    def __eq__(self, other):
        if not isinstance(other, AnyLayerTangentVector):
            return NotImplemented
        if self.kind == CONCRETE and other.kind == CONCRETE:
            return type(self.payload) is type(other.payload) and self.payload == other.payload
        if self.kind == CONCRETE or other.kind == CONCRETE:
            return False
        return self.get_opaque_scalar() == other.get_opaque_scalar()

    __hash__ = None

    # ----- checkpoint support -----
    def flatten(self, prefix=""):
        if self.kind == CONCRETE:
            return self.payload.flatten(prefix=prefix)
        if self.kind == ZERO:
            return {}
        return {f"{prefix}scalar": SCALAR(self.get_opaque_scalar())}

    def with_leaves(self, leaves, prefix=""):
        if self.kind == CONCRETE:
            return self._wrap(self.payload.with_leaves(leaves, prefix=prefix))
        if self.kind == ZERO:
            return self
        return AnyLayerTangentVector.opaque_scalar(float(leaves[f"{prefix}scalar"]))

    def __repr__(self):
        if self.kind == CONCRETE:
            return f"AnyLayerTangentVector({self.payload!r})"
        if self.kind == OPAQUE_SCALAR:
            return f"AnyLayerTangentVector.opaque_scalar({self.payload})"
        return f"AnyLayerTangentVector.{self.kind}()"
