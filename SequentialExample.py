# SequentialExample.py
import numpy as np

from anylayer import Trainer, default_device
from anylayer.helpers.logger import RunLogger
from anylayer.models import (
    conv_pool_dense,
    conv_pool_skipping_dense,
    conv_pool_residual_dense,
    erased_conv_pool_dense,
)

print(f"[anylayer] Using {default_device}")


# ------------------ Helpers ------------------
def one_hot(y, num_classes=10):
    y = y.astype(int).ravel()
    oh = np.zeros((num_classes, y.size), dtype=np.float32)
    oh[y, np.arange(y.size)] = 1.0
    return oh.T   # (N, 10)


def synthetic_images(n, num_classes=10, seed=0):
    """
    Noisy (3, 16, 16) images around one random prototype per class.
    Returns (x, labels).
    """
    rng = np.random.default_rng(seed)
    prototypes = rng.normal(size=(num_classes, 3, 16, 16)).astype(np.float32)
    labels = rng.integers(0, num_classes, size=n)
    x = prototypes[labels] + 0.8 * rng.normal(size=(n, 3, 16, 16)).astype(np.float32)
    return x.astype(np.float32), labels


# ------------------ Main ------------------
if __name__ == "__main__":
    X, y = synthetic_images(1200)
    Y = one_hot(y, 10)

    # split off validation set
    val_frac = 0.2
    n_val = int(val_frac * X.shape[0])
    X_val, Y_val = X[:n_val], Y[:n_val]
    X_tr, Y_tr = X[n_val:], Y[n_val:]

    # Hyperparameters
    epochs = 8
    lr = 1e-3
    weight_decay = 1e-4
    bs = 64

    builders = {
        "conv_pool_dense": conv_pool_dense,
        "conv_pool_skipping_dense": conv_pool_skipping_dense,
        "conv_pool_residual_dense": conv_pool_residual_dense,
        "erased_conv_pool_dense": erased_conv_pool_dense,
    }

    results = {}
    for name, build in builders.items():
        tag = f"{name}_epochs_{epochs}_lr_{lr}_bs_{bs}"
        print(f"\nTraining {name}")
        trainer = Trainer(build(), epochs=epochs, lr=lr, weight_decay=weight_decay,
                          batch_size=bs, seed=42, verbose=1)
        history = trainer.fit(
            X_tr, Y_tr,
            x_val=X_val, y_val=Y_val,
            early_stopping={'monitor': 'val_loss', 'mode': 'min', 'patience': 3},
            tag=tag, runs_root="runs",
        )
        val_loss, val_acc = trainer.evaluate(X_val, Y_val, batch_size=bs)
        results[name] = val_acc

        logger = RunLogger(root=trainer.run_dir, tag="plots")
        logger.plot_all(history, tag=tag)
        trainer.save(trainer.run_dir / "final_weights.npz")

    print("\n===== Results =====")
    for name, acc in results.items():
        print(f"{name:28s} val acc: {acc:.4f}")
