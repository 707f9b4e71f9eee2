from ..helpers.Backend import array_module


class CrossEntropyLoss:
    """
    Softmax cross-entropy over (batch, num_classes) logits.

    Targets are one-hot rows or integer class indices. ``forward`` keeps
    the probabilities it computed so ``backward`` can return the fused
    softmax + CE gradient w.r.t. the logits.
    """

    def __init__(self):
        # cache from forward
        self.probs = None
        self.m = None
        self.Y = None

    @staticmethod
    def _one_hot(xp, target, num_classes, dtype):
        target = xp.asarray(target)
        if target.ndim == 2:
            return target.astype(dtype, copy=False)
        eye = xp.eye(num_classes, dtype=dtype)
        return eye[target.astype(int).ravel()]

    def forward(self, logits, target):
        """
        logits: (batch, num_classes)  -- pre-softmax
        target: (batch, num_classes) one-hot or (batch,) class indices
        returns: (loss_scalar, probs)
        """
        xp = array_module(logits)
        Y = self._one_hot(xp, target, logits.shape[1], logits.dtype)
        self.m = Y.shape[0]
        self.Y = Y

        # Stable log-softmax
        z = logits - xp.max(logits, axis=1, keepdims=True)  # (B, C)
        log_probs = z - xp.log(xp.sum(xp.exp(z), axis=1, keepdims=True))

        # Cross-entropy: -sum(Y * log_probs) / B
        loss = -xp.sum(Y * log_probs) / self.m
        self.probs = xp.exp(log_probs)
        return float(loss), self.probs

    def backward(self):
        """
        dL/dlogits = (probs - Y)/m
        This is the fused softmax+CE gradient.
        """
        if self.probs is None or self.Y is None or self.m is None:
            raise ValueError("Must call forward() before backward()")
        return (self.probs - self.Y) / self.m
