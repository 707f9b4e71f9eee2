# helpers/logger.py
import csv
import datetime
import json
import pathlib

import numpy as np
import matplotlib.pyplot as plt

from .Backend import array_module


def _to_cpu(a):
    xp = array_module(a)
    return xp.asnumpy(a) if xp is not np else np.asarray(a)


class RunLogger:
    """Per-run directory with epoch history, checkpoints and plots."""

    def __init__(self, root="runs", tag="run"):
        ts = datetime.datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        self.root = pathlib.Path(root)
        self.dir = self.root / f"{tag}_{ts}"
        self.dir.mkdir(parents=True, exist_ok=True)
        self.csv_path = self.dir / "history.csv"
        self.json_path = self.dir / "history.json"
        self.best_ckpt = self.dir / "checkpoint_best.npz"
        self.last_ckpt = self.dir / "checkpoint_last.npz"
        self.metrics = []  # list of dicts per epoch
        self._csv_header_written = False

    # ---------- logging ----------
    def log_epoch(self, epoch, **kwargs):
        row = {"epoch": int(epoch), **{k: float(v) for k, v in kwargs.items()}}
        self.metrics.append(row)
        with open(self.csv_path, "a", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=list(row.keys()))
            if not self._csv_header_written:
                writer.writeheader()
                self._csv_header_written = True
            writer.writerow(row)

    def save_json(self):
        with open(self.json_path, "w") as f:
            json.dump(self.metrics, f, indent=2)

    def save_checkpoint(self, tangent, best=False):
        """Write the leaves of a tangent (usually a model's vector view) to .npz."""
        path = self.best_ckpt if best else self.last_ckpt
        np.savez(path, **{k: _to_cpu(v) for k, v in tangent.flatten().items()})
        return str(path)

    # ---------- plotting ----------
    def _plots_dir(self, subdir):
        out = self.dir / subdir
        out.mkdir(parents=True, exist_ok=True)
        return out

    def plot_loss(self, history, tag="run", subdir="plots", total_epochs=None):
        """
        Saves loss curve as loss_curve_<tag>_epochs_<n>.png.
        Accepts history with either keys:
          - {'loss': [...], 'val_loss': [...]}
          - or {'train_loss': [...], 'val_loss': [...]}
        """
        train_key = "loss" if "loss" in history else "train_loss"
        train = history.get(train_key, [])
        val = history.get("val_loss", [])

        outdir = self._plots_dir(subdir)
        plt.figure()
        if len(train) > 0:
            plt.plot(train, label="train loss")
        if len(val) > 0:
            plt.plot(val, label="val loss")
        plt.xlabel("Epoch")
        plt.ylabel("Cross-Entropy Loss")
        if total_epochs is None:
            total_epochs = max(len(train), len(val))
        plt.title(f"Loss vs Epochs ({tag})")
        if len(train) > 0 or len(val) > 0:
            plt.legend()
        plt.tight_layout()
        path = outdir / f"loss_curve_{tag}_epochs_{total_epochs}.png"
        plt.savefig(path, dpi=160)
        plt.close()
        return path

    def plot_val_metrics(self, history, tag="run", subdir="plots", total_epochs=None):
        """Saves the validation accuracy curve if 'val_acc' is present."""
        val_acc = history.get("val_acc", [])
        if len(val_acc) == 0:
            return None
        outdir = self._plots_dir(subdir)
        plt.figure()
        plt.plot(val_acc, label="val accuracy")
        plt.xlabel("Epoch")
        plt.ylabel("Accuracy")
        if total_epochs is None:
            total_epochs = len(val_acc)
        plt.title(f"Validation Accuracy vs Epochs ({tag})")
        plt.legend()
        plt.tight_layout()
        path = outdir / f"val_metrics_{tag}_epochs_{total_epochs}.png"
        plt.savefig(path, dpi=160)
        plt.close()
        return path

    def plot_all(self, history, tag="run", subdir="plots"):
        """
        Convenience: generate all standard plots we know how to draw.
        """
        total_epochs = max(
            len(history.get("loss", [])),
            len(history.get("train_loss", [])),
            len(history.get("val_loss", [])),
        )
        self.plot_loss(history, tag=tag, subdir=subdir, total_epochs=total_epochs)
        self.plot_val_metrics(history, tag=tag, subdir=subdir, total_epochs=total_epochs)
