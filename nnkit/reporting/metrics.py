"""Metric sinks receiving trainer step and epoch events."""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Collection, Mapping

from .artifacts import git_sha

EVENTS = ("step", "epoch")


class JsonlSink:
    """Append-only JSONL writer; one record per step and/or epoch event."""

    def __init__(
        self,
        path: str | Path,
        *,
        split: str = "train",
        seed: int | None = None,
        sha: str | None = None,
        events: Collection[str] = EVENTS,
    ) -> None:
        unknown = set(events) - set(EVENTS)
        if unknown:
            raise ValueError(f"Unknown sink events: {sorted(unknown)}")
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.split = split
        self.seed = seed
        self.sha = sha or git_sha()
        self.events = frozenset(events)

    def _write(self, event: str, index: int, metrics: Mapping[str, float]) -> None:
        if event not in self.events:
            return
        record = {
            "event": event,
            "index": int(index),
            "split": self.split,
            "seed": self.seed,
            "sha": self.sha,
        }
        record.update({k: float(v) for k, v in metrics.items() if isinstance(v, (int, float))})
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    def on_step(self, step: int, metrics: Mapping[str, float]) -> None:
        self._write("step", step, metrics)

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        self._write("epoch", epoch, metrics)


class CsvSink:
    """CSV writer with the column set fixed by the first record."""

    def __init__(
        self,
        path: str | Path,
        *,
        split: str = "train",
        events: Collection[str] = EVENTS,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.split = split
        self.events = frozenset(events)
        self._fieldnames: list[str] | None = None

    def _write(self, event: str, index: int, metrics: Mapping[str, float]) -> None:
        if event not in self.events:
            return
        row = {"event": event, "index": int(index), "split": self.split}
        row.update({k: float(v) for k, v in metrics.items() if isinstance(v, (int, float))})
        if self._fieldnames is None:
            self._fieldnames = sorted(row.keys())
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=self._fieldnames, extrasaction="ignore")
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

    def on_step(self, step: int, metrics: Mapping[str, float]) -> None:
        self._write("step", step, metrics)

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        self._write("epoch", epoch, metrics)


__all__ = ["CsvSink", "EVENTS", "JsonlSink"]
