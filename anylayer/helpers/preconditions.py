"""
Fatal precondition failures for the type-erasure layer.

A mismatch between an erased value and the concrete type it is applied to
can only come from a caller mixing up layers (e.g. a gradient computed for
one architecture applied to another). These failures derive from
BaseException, next to SystemExit and KeyboardInterrupt, so an ordinary
``except Exception`` in a training loop never turns them into a retry.
"""


class PreconditionFailure(BaseException):
    """A broken programmer contract. Aborts the current computation."""


class DerivativeTypeMismatch(PreconditionFailure):
    def __init__(self, got, expected):
        self.got = got
        self.expected = expected
        super().__init__(
            f"Derivative type mismatch: got {_type_name(got)} "
            f"but expected {_type_name(expected)}"
        )


def _type_name(t):
    if t is None:
        return "None"
    return f"{t.__module__}.{t.__qualname__}"


def derivative_type_mismatch(got, expected):
    """Stop with an error when an erased derivative does not match its true underlying type."""
    raise DerivativeTypeMismatch(got, expected)


def must_override(owner, function):
    raise NotImplementedError(f"Function {owner}.{function} must be overridden.")
