"""
Reverse-mode entry points.

Every layer supplies its own pullback through ``forward_with_pullback``;
these helpers are the single place the rest of the package asks for one.
"""


def value_with_pullback(layer, x):
    """
    Evaluate ``layer`` at ``x`` and return ``(y, pullback)``.

    ``pullback(dy)`` returns ``(layer_tangent, dx)``: the gradient with
    respect to the layer's parameters and the gradient with respect to the
    input.
    """
    return layer.forward_with_pullback(x)


def pullback(layer, x):
    """Only the pullback of ``layer`` at ``x``."""
    return value_with_pullback(layer, x)[1]


def value_with_gradient(model, x, target, loss_fn):
    """
    Evaluate ``loss_fn(model(x), target)`` and differentiate it w.r.t. the model.

    ``loss_fn`` follows the CrossEntropyLoss protocol: ``forward(logits, target)``
    returns ``(loss, probs)`` and ``backward()`` returns ``d loss / d logits``.

    Returns ``(loss, probs, model_tangent)``.
    """
    logits, pb = value_with_pullback(model, x)
    loss, probs = loss_fn.forward(logits, target)
    model_grad, _ = pb(loss_fn.backward())
    return loss, probs, model_grad
