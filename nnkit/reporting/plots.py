"""Headless-safe loss curve plotting."""

from __future__ import annotations

from pathlib import Path
from typing import List, Mapping, Tuple


class PlotAdapter:
    """Collect step and epoch losses and render ``loss.png`` on close."""

    def __init__(self, run_dir: str | Path, enable_plots: bool = False):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self.steps: List[Tuple[int, float]] = []
        self.epochs: List[Tuple[int, float]] = []
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self.run_dir / "loss.png"

    def on_step(self, step: int, metrics: Mapping[str, float]) -> None:
        if self.enable_plots:
            self.steps.append((int(step), float(metrics.get("loss", 0.0))))

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        if self.enable_plots:
            iteration = int(metrics.get("iteration", epoch))
            self.epochs.append((iteration, float(metrics.get("loss", 0.0))))

    def close(self) -> Path | None:
        if not self.enable_plots or not self.steps:
            return None
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # imported lazily for headless safety

        fig, ax = plt.subplots()
        steps, losses = zip(*self.steps)
        ax.plot(steps, losses, linewidth=0.8, label="step")
        if self.epochs:
            ends, epoch_losses = zip(*self.epochs)
            ax.plot(ends, epoch_losses, marker="o", linestyle="--", label="epoch mean")
        ax.set_xlabel("Iteration")
        ax.set_ylabel("Loss")
        ax.set_title("Training loss")
        ax.legend()
        fig.savefig(self.path)
        plt.close(fig)
        return self.path


__all__ = ["PlotAdapter"]
