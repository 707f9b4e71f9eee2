import numbers
import operator

import numpy as np

from ..helpers.Backend import SCALAR
from ..helpers.preconditions import derivative_type_mismatch

# Stand-in for a component that is identically zero; broadcasts against any shape
_ZERO = SCALAR(0)


def _is_number(v):
    return isinstance(v, numbers.Real) and not isinstance(v, bool)


def _is_tangent(v):
    return getattr(type(v), "is_tangent_vector", False)


def _sum(v):
    if _is_tangent(v):
        return v.sum()
    if hasattr(v, "sum"):
        return float(v.sum())
    return float(v)


def _all_zero(v):
    if _is_tangent(v):
        return v.is_zero
    return not bool(np.any(v))


def _equal(a, b):
    if _is_tangent(a) or _is_tangent(b):
        return a == b
    return bool(np.array_equal(a, b))


class TangentVector:
    """
    Additive tangent of a layer: a mapping from component name to array.

    Subclasses that list ``fields`` have a fixed layout and every missing
    field is the zero scalar, which is what ``zero()`` returns. With
    ``fields = None`` the layout is free-form (containers key their
    children by index) and absent keys read as zero.

    Components are NumPy/CuPy arrays or nested tangents. Arithmetic with a
    real number broadcasts it to every element; arithmetic between two
    tangents requires the same tangent class.
    """

    fields = None
    scalar_type = SCALAR
    is_tangent_vector = True
    # keep numpy from broadcasting over us; it defers to our reflected ops
    __array_ufunc__ = None

    def __init__(self, components=None, **kwargs):
        comps = dict(components or {})
        comps.update(kwargs)
        if self.fields is not None:
            unknown = [k for k in comps if k not in self.fields]
            if unknown:
                raise TypeError(f"{type(self).__name__} has no components {unknown}")
            for name in self.fields:
                comps.setdefault(name, _ZERO)
        self._components = comps

    @classmethod
    def zero(cls):
        return cls()

    # ----- mapping access -----
    def __getitem__(self, key):
        return self._components[key]

    def __contains__(self, key):
        return key in self._components

    def __iter__(self):
        return iter(self._components)

    def __len__(self):
        return len(self._components)

    def keys(self):
        return self._components.keys()

    def items(self):
        return self._components.items()

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._components[name]
        except KeyError:
            raise AttributeError(
                f"{type(self).__name__!r} has no component {name!r}"
            ) from None

    # ----- arithmetic -----
    def _map(self, fn):
        return type(self)({k: fn(v) for k, v in self._components.items()})

    def _zip(self, other, fn):
        if type(other) is not type(self):
            derivative_type_mismatch(got=type(other), expected=type(self))
        keys = list(self._components)
        keys += [k for k in other._components if k not in self._components]
        return type(self)({
            k: fn(self._components.get(k, _ZERO), other._components.get(k, _ZERO))
            for k in keys
        })

    def _binary(self, other, fn):
        if _is_number(other):
            s = self.scalar_type(other)
            return self._map(lambda v: fn(v, s))
        if isinstance(other, TangentVector):
            return self._zip(other, fn)
        return NotImplemented

    def _reflected(self, other, fn):
        if _is_number(other):
            s = self.scalar_type(other)
            return self._map(lambda v: fn(s, v))
        return NotImplemented

    def __add__(self, other):
        return self._binary(other, operator.add)

    def __radd__(self, other):
        return self._reflected(other, operator.add)

    def __sub__(self, other):
        return self._binary(other, operator.sub)

    def __rsub__(self, other):
        return self._reflected(other, operator.sub)

    def __mul__(self, other):
        return self._binary(other, operator.mul)

    def __rmul__(self, other):
        return self._reflected(other, operator.mul)

    def __truediv__(self, other):
        return self._binary(other, operator.truediv)

    def __rtruediv__(self, other):
        return self._reflected(other, operator.truediv)

    def __pow__(self, exponent):
        if not _is_number(exponent):
            return NotImplemented
        return self._map(lambda v: v ** exponent)

    def __neg__(self):
        return self._map(operator.neg)

    def adding(self, scalar):
        return self + scalar

    def subtracting(self, scalar):
        return self - scalar

    def scaled(self, scalar):
        return self * scalar

    # ----- reductions -----
    def sum(self):
        return float(sum(_sum(v) for v in self._components.values()))

    def squared_norm(self):
        return (self * self).sum()

    @property
    def is_zero(self):
        return all(_all_zero(v) for v in self._components.values())

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        if set(self._components) != set(other._components):
            return False
        return all(_equal(v, other._components[k]) for k, v in self._components.items())

    __hash__ = None

    # ----- checkpoint support -----
    def flatten(self, prefix=""):
        """Leaf arrays keyed by dotted path, e.g. ``{"0.weights": W}``."""
        leaves = {}
        for k, v in self._components.items():
            path = f"{prefix}{k}"
            if _is_tangent(v):
                leaves.update(v.flatten(prefix=path + "."))
            else:
                leaves[path] = v
        return leaves

    def with_leaves(self, leaves, prefix=""):
        """Same layout as ``self`` with every leaf replaced from ``leaves``."""
        comps = {}
        for k, v in self._components.items():
            path = f"{prefix}{k}"
            if _is_tangent(v):
                comps[k] = v.with_leaves(leaves, prefix=path + ".")
            else:
                comps[k] = leaves[path]
        return type(self)(comps)

    def __repr__(self):
        inner = ", ".join(
            f"{k}={v!r}" if _is_tangent(v) else f"{k}=<{getattr(v, 'shape', ())}>"
            for k, v in self._components.items()
        )
        return f"{type(self).__name__}({inner})"


class EmptyTangentVector(TangentVector):
    """Tangent of a layer without learnable parameters."""

    fields = ()
