class AdamWOptimizer:
    """
    Adam with decoupled weight decay, computed on tangent vectors.

    The moments start as the model's zero tangent and take the gradient's
    shape on the first step, so the same optimizer works for concrete
    layers and for AnyLayer (whose zero tangent is the opaque zero).
    """

    def __init__(self, lr=1e-3, weight_decay=0.0, beta1=0.9, beta2=0.999, eps=1e-8):
        self.lr = lr
        self.weight_decay = weight_decay
        self.beta1 = beta1
        self.beta2 = beta2
        self.eps = eps
        self.t = 0
        self._m = None
        self._v = None

    def update(self, model, direction):
        if self._m is None:
            self._m = model.zero_tangent()
            self._v = model.zero_tangent()
        self.t += 1
        b1t = 1.0 - self.beta1**self.t
        b2t = 1.0 - self.beta2**self.t

        # Adam moments
        self._m = self._m * self.beta1 + direction * (1.0 - self.beta1)
        self._v = self._v * self.beta2 + (direction * direction) * (1.0 - self.beta2)
        m_hat = self._m / b1t
        v_hat = self._v / b2t

        step = (m_hat / (v_hat ** 0.5).adding(self.eps)) * -self.lr
        # decoupled weight decay
        if self.weight_decay != 0.0:
            step = step + model.differentiable_vector_view * (-self.lr * self.weight_decay)
        model.move(step)

    def reset(self):
        self.t = 0
        self._m = None
        self._v = None
