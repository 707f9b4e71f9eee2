class SGDOptimizer:
    def __init__(self, lr=1e-2, weight_decay=0.0):
        self.lr = lr
        self.wd = weight_decay

    def update(self, model, direction):
        # direction: gradient tangent of the model (e.g. from a pullback)
        if self.wd != 0.0:
            direction = direction + model.differentiable_vector_view * self.wd  # L2 weight decay
        model.move(direction * -self.lr)
