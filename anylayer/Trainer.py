import time
import numpy as np

from .AnyLayer import AnyLayer
from .loss.CrossEntropyLoss import CrossEntropyLoss
from .optimizer.AdamWOptimizer import AdamWOptimizer
from .early_stopping.EarlyStopping import EarlyStopping
from .helpers.differentiation import value_with_gradient
from .helpers.logger import RunLogger


class Trainer:
    """
    Mini-batch classifier training for any differentiable layer.

    The model is kept behind an ``AnyLayer`` (a concrete layer is wrapped on
    the way in), so snapshots for early stopping are cheap copies and the
    optimizer only ever sees ``AnyLayerTangentVector`` gradients.
    """

    def __init__(
        self,
        model,
        epochs=10,
        lr=0.01,
        weight_decay=0.0,
        batch_size=128,
        shuffle=True,
        seed=None,
        clip_grad=None,
        verbose=1,
        optimizer=None,
    ):
        self.model = model if isinstance(model, AnyLayer) else AnyLayer(model)
        self.epochs = epochs
        self.lr = lr
        self.weight_decay = weight_decay
        self.batch_size = batch_size
        self.shuffle = shuffle
        self.seed = seed
        self.verbose = verbose
        self.clip_grad = clip_grad
        self.optimizer = optimizer

    def predict_proba(self, x, batch_size=256):
        probs_cpu = []
        for xb in self._batchify(x, batch_size):
            logits = self.model(xb)
            logits_cpu = self.model.device.to_cpu(logits)
            z = logits_cpu - np.max(logits_cpu, axis=1, keepdims=True)
            exp_z = np.exp(z)
            probs_cpu.append(exp_z / np.sum(exp_z, axis=1, keepdims=True))
        return np.vstack(probs_cpu)

    def predict(self, x, batch_size=256):
        probs = self.predict_proba(x, batch_size=batch_size)
        return np.argmax(probs, axis=1)

    def evaluate(self, x, y_onehot, loss_fn=None, batch_size=256):
        if loss_fn is None:
            loss_fn = CrossEntropyLoss()

        N = x.shape[0]
        total_loss = 0.0
        correct = 0
        for xb, yb in self._batchify(x, batch_size, labels=y_onehot):
            logits = self.model(xb)
            loss, probs = loss_fn.forward(logits, yb)
            total_loss += loss * xb.shape[0]
            pred = np.argmax(self.model.device.to_cpu(probs), axis=1)
            true = np.argmax(self.model.device.to_cpu(yb), axis=1)
            correct += int(np.sum(pred == true))
        return total_loss / N, correct / N

    def train_step(self, xb, yb, loss_fn, optimizer):
        """One optimizer step on a mini-batch; returns the batch loss."""
        loss, _, grad = value_with_gradient(self.model, xb, yb, loss_fn)
        if self.clip_grad is not None:
            grad = self._clip_grad_norm(grad, self.clip_grad)
        optimizer.update(self.model, grad)
        return loss

    def fit(
        self,
        x,
        y_onehot,
        x_val=None,
        y_val=None,
        early_stopping=None,
        patience=5,
        tag="run",
        runs_root="runs",
    ):
        if self.seed is not None:
            self._set_seed(self.seed)

        loss_fn = CrossEntropyLoss()
        optimizer = self.optimizer
        if optimizer is None:
            optimizer = AdamWOptimizer(lr=self.lr, weight_decay=self.weight_decay)
        has_val = x_val is not None and y_val is not None

        history = {"loss": [], "acc": []}
        if has_val:
            history["val_loss"] = []
            history["val_acc"] = []

        logger = RunLogger(root=runs_root, tag=tag)
        # normalize early_stopping
        if isinstance(early_stopping, dict):
            stopper = EarlyStopping(**early_stopping)
        else:
            stopper = early_stopping
        # default stopper if none provided but patience given and val set
        if stopper is None and has_val and patience is not None:
            stopper = EarlyStopping(patience=patience, monitor="val_loss", mode="min")

        if self.verbose > 0:
            print(f"Starting training for {self.epochs} epochs...")
        for ep in range(1, self.epochs + 1):
            t0 = time.time()
            idx = np.arange(x.shape[0])
            if self.shuffle:
                np.random.shuffle(idx)
            Xs = x[idx]
            Ys = y_onehot[idx]

            for xb, yb in self._batchify(Xs, self.batch_size, labels=Ys):
                self.train_step(xb, yb, loss_fn, optimizer)

            # end of epoch: evaluate on train
            train_loss, train_acc = self.evaluate(Xs, Ys, batch_size=self.batch_size)
            history["loss"].append(train_loss)
            history["acc"].append(train_acc)
            metrics = {"loss": train_loss, "acc": train_acc}

            if has_val:
                val_loss, val_acc = self.evaluate(x_val, y_val, batch_size=self.batch_size)
                history["val_loss"].append(val_loss)
                history["val_acc"].append(val_acc)
                metrics.update({"val_loss": val_loss, "val_acc": val_acc})

            # logging (console)
            if self.verbose > 0:
                log_interval = max(1, self.epochs // 10)
                if ep % log_interval == 0 or ep == 1 or ep == self.epochs:
                    line = f"Epoch {ep}/{self.epochs} - loss: {train_loss:.4f} - acc: {train_acc:.4f}"
                    if has_val:
                        line += f" - val_loss: {val_loss:.4f} - val_acc: {val_acc:.4f}"
                    print(line)

            # logging (files + checkpoints)
            logger.log_epoch(ep, time_s=time.time() - t0, **metrics)
            logger.save_checkpoint(self.model.differentiable_vector_view, best=False)
            if has_val and (ep == 1 or val_loss <= np.min(history["val_loss"])):
                logger.save_checkpoint(self.model.differentiable_vector_view, best=True)

            # early stopping
            if stopper is not None and stopper.update(ep, metrics, self.model):
                self.model = stopper.restored(self.model)
                if self.verbose > 0:
                    print(
                        f"Early stopping at epoch {ep:02d}. "
                        f"Best {stopper.monitor}={stopper.best:.4f} at epoch {stopper.best_epoch:02d}."
                    )
                # after restore, also save a "best" checkpoint reflecting restored params
                logger.save_checkpoint(self.model.differentiable_vector_view, best=True)
                break

        # finalize history file
        logger.save_json()
        self.run_dir = logger.dir
        return history

    # ================== helpers ==================
    def _batchify(self, X, batch_size, labels=None):
        N = X.shape[0]
        start = 0
        while start < N:
            end = min(start + batch_size, N)
            if labels is None:
                yield X[start:end]
            else:
                yield X[start:end], labels[start:end]
            start = end

    def _clip_grad_norm(self, grad, max_norm):
        """
        Rescales ``grad`` to have global L2 norm <= max_norm.
        """
        total_norm = np.sqrt(grad.squared_norm()) + 1e-12
        if total_norm > max_norm:
            return grad.scaled(max_norm / total_norm)
        return grad

    # model I/O
    def save(self, path):
        view = self.model.differentiable_vector_view
        arrays = {k: self.model.device.to_cpu(v) for k, v in view.flatten().items()}
        np.savez(path, **arrays)

    def load(self, path):
        """Move the model onto the parameters stored at ``path``."""
        view = self.model.differentiable_vector_view
        with np.load(path) as data:
            stored = view.with_leaves({k: self.model.device.ensure_array(data[k]) for k in data.files})
        self.model.move(stored - view)

    def _set_seed(self, seed=42):
        np.random.seed(seed)
