"""Training loop, optimizers, metrics and config-driven runs."""

from . import metrics, optimizers, pipelines, trainer

__all__ = ["metrics", "optimizers", "pipelines", "trainer"]
