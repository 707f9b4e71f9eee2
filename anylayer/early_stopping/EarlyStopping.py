import copy

from ..AnyLayer import AnyLayer


class EarlyStopping:
    def __init__(
        self,
        patience=5,
        min_delta=0.0,
        monitor="val_loss",
        mode="min",
        restore_best_weights=True,
    ):
        self.monitor = monitor
        self.mode = mode
        self.patience = patience
        self.min_delta = float(min_delta)
        self.restore_best_weights = restore_best_weights

        self.best = None
        self.best_epoch = -1
        self.wait = 0
        self.stopped = False
        self.best_model = None

    def _is_better(self, current, best):
        if self.mode == "min":
            return current < (best - self.min_delta)
        else:  # 'max'
            return current > (best + self.min_delta)

    @staticmethod
    def _snapshot(model):
        # an AnyLayer copy shares storage until the live model moves;
        # any other layer shares its children with a shallow copy
        if isinstance(model, AnyLayer):
            return copy.copy(model)
        return copy.deepcopy(model)

    def update(self, epoch, metrics, model):
        """
        Record ``metrics`` for ``epoch``; returns True when training should stop.

        On improvement the model is snapshotted into ``best_model``.
        """
        value = metrics[self.monitor]
        if self.best is None or self._is_better(value, self.best):
            self.best = value
            self.best_epoch = epoch
            self.wait = 0
            self.best_model = self._snapshot(model)
        else:
            self.wait += 1
            if self.wait >= self.patience:
                self.stopped = True
                return True
        return False

    def restored(self, model):
        """The model training should continue with once stopped."""
        if self.restore_best_weights and self.best_model is not None:
            return self.best_model
        return model
