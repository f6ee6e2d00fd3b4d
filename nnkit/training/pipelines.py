"""Config-driven training runs: presets, network assembly and artifacts."""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, List, Mapping, Tuple

import numpy as np

from ..core.inits import constant_bias, get_initialiser
from ..core.layers import ActivationLayer, DenseLayer
from ..core.network import Network
from ..core.types import RunResult, Sample
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from ..reporting.summary import write_summary
from .metrics import evaluate
from .trainer import Trainer

logger = logging.getLogger(__name__)

_XOR_DATA = {
    "inputs": [[0, 0], [0, 1], [1, 0], [1, 1]],
    "targets": [[0], [1], [1], [0]],
}

_AND_ONE_HOT_DATA = {
    "inputs": [[0, 0], [0, 1], [1, 0], [1, 1]],
    "targets": [[1, 0], [1, 0], [1, 0], [0, 1]],
}

_PRESETS: Dict[str, Mapping[str, object]] = {
    "xor-gd": {
        "data": _XOR_DATA,
        "model": {
            "sizes": [2, 2, 2, 1],
            "hidden": "sigmoid",
            "output": "sigmoid",
            "loss": "mse",
            "init": "xavier_uniform",
            "bias": 0.0,
            "seed": 0,
        },
        "train": {
            "optimizer": "gradient_descent",
            "epochs": 1000,
            "lr": 10.0,
            "shuffle": False,
            "seed": 0,
            "run_dir": "runs/xor-gd",
            "enable_plots": False,
        },
    },
    "xor-momentum": {
        "data": _XOR_DATA,
        "model": {
            "sizes": [2, 4, 1],
            "hidden": "tanh",
            "output": "sigmoid",
            "loss": "mse",
            "init": "xavier_normal",
            "bias": 0.0,
            "seed": 1,
        },
        "train": {
            "optimizer": "momentum",
            "epochs": 1000,
            "lr": 2.0,
            "beta": 0.9,
            "shuffle": False,
            "seed": 1,
            "run_dir": "runs/xor-momentum",
            "enable_plots": False,
        },
    },
    "xor-adam": {
        "data": _XOR_DATA,
        "model": {
            "sizes": [2, 4, 1],
            "hidden": "tanh",
            "output": "sigmoid",
            "loss": "mse",
            "init": "xavier_uniform",
            "bias": 0.0,
            "seed": 2,
        },
        "train": {
            "optimizer": "adam",
            "epochs": 500,
            "lr": 0.05,
            "beta1": 0.9,
            "beta2": 0.999,
            "epsilon": 1e-8,
            "sample_size": 2,
            "shuffle": True,
            "seed": 2,
            "run_dir": "runs/xor-adam",
            "include_training_state": True,
            "enable_plots": False,
        },
    },
    "and-softmax": {
        "data": _AND_ONE_HOT_DATA,
        "model": {
            "sizes": [2, 4, 2],
            "hidden": "relu",
            "output": "softmax",
            "loss": "cce",
            "init": "he_uniform",
            "bias": 0.01,
            "seed": 3,
        },
        "train": {
            "optimizer": "adam",
            "epochs": 300,
            "lr": 0.05,
            "shuffle": True,
            "seed": 3,
            "run_dir": "runs/and-softmax",
            "enable_plots": False,
        },
    },
}

_PRESET_DIR = Path(__file__).resolve().parents[2] / "configs" / "presets"
_FILE_PRESETS_CACHE: Dict[str, Mapping[str, object]] | None = None


def read_config_file(path: str | Path) -> Mapping[str, object]:
    """Decode a JSON or YAML config file into a mapping."""

    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load YAML configs") from exc
        data = yaml.safe_load(path.read_text()) or {}
    elif suffix == ".json":
        data = json.loads(path.read_text() or "{}")
    else:
        raise ValueError(f"Unsupported config file type: {path.suffix}")

    if not isinstance(data, Mapping):
        raise TypeError(f"Config {path.name} must decode to a mapping")
    return data


def _file_presets() -> Dict[str, Mapping[str, object]]:
    global _FILE_PRESETS_CACHE
    if _FILE_PRESETS_CACHE is None:
        found: Dict[str, Mapping[str, object]] = {}
        if _PRESET_DIR.exists():
            for file in sorted(_PRESET_DIR.iterdir()):
                if file.suffix.lower() not in {".yaml", ".yml", ".json"}:
                    continue
                data = read_config_file(file)
                missing = {"data", "model", "train"} - set(data)
                if missing:
                    raise KeyError(
                        f"Preset {file.name} is missing required sections: "
                        f"{', '.join(sorted(missing))}"
                    )
                found[file.stem] = json.loads(json.dumps(data))
        _FILE_PRESETS_CACHE = found
    return {name: deepcopy(cfg) for name, cfg in _FILE_PRESETS_CACHE.items()}


def presets() -> Mapping[str, Mapping[str, object]]:
    combined: Dict[str, Mapping[str, object]] = {}
    combined.update({name: deepcopy(cfg) for name, cfg in _PRESETS.items()})
    combined.update(_file_presets())
    return combined


def load_preset(name: str) -> Mapping[str, object]:
    file_overrides = _file_presets()
    if name in file_overrides:
        return file_overrides[name]
    try:
        return deepcopy(_PRESETS[name])
    except KeyError as exc:
        raise KeyError(f"Unknown preset: {name}") from exc


def merge_config(base: Mapping[str, object], override: Mapping[str, object]) -> dict:
    """Deep-merge ``override`` into a copy of ``base``."""

    merged = deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


# ----------------------------------------------------------------------
# Data


def load_samples(data_cfg: Mapping[str, object]) -> Tuple[List[Sample], Mapping[str, object]]:
    """Return training samples plus a provenance record for the manifest."""

    if "path" in data_cfg:
        path = Path(str(data_cfg["path"]))
        with np.load(path) as archive:
            inputs = np.asarray(archive["inputs"], dtype=np.float64)
            targets = np.asarray(archive["targets"], dtype=np.float64)
        provenance: Dict[str, object] = {
            "source": str(path),
            "sha256": hashlib.sha256(path.read_bytes()).hexdigest(),
        }
    elif "inputs" in data_cfg and "targets" in data_cfg:
        inputs = np.asarray(data_cfg["inputs"], dtype=np.float64)
        targets = np.asarray(data_cfg["targets"], dtype=np.float64)
        provenance = {"source": "inline"}
    else:
        raise KeyError("data config needs either 'path' or both 'inputs' and 'targets'")

    if inputs.ndim == 0 or targets.ndim == 0:
        raise ValueError("inputs and targets must hold one entry per sample")
    if len(inputs) != len(targets):
        raise ValueError(
            f"inputs and targets disagree on sample count: {len(inputs)} != {len(targets)}"
        )
    if len(inputs) == 0:
        raise ValueError("data config holds no samples")

    samples = [
        Sample.of(x.reshape(-1), y.reshape(-1)) for x, y in zip(inputs, targets)
    ]
    provenance["samples"] = len(samples)
    provenance["input_size"] = samples[0].inputs.rows
    provenance["target_size"] = samples[0].targets.rows
    return samples, provenance


# ----------------------------------------------------------------------
# Model


def _build_layers(model_cfg: Mapping[str, object]) -> Network:
    network = Network(loss=str(model_cfg.get("loss", "mse")))
    for idx, spec in enumerate(model_cfg["layers"]):  # type: ignore[union-attr]
        kind = str(spec.get("type", "")).lower()
        if kind == "dense":
            network.add(DenseLayer(int(spec["in"]), int(spec["out"])))
        elif kind == "activation":
            network.add(ActivationLayer(int(spec["count"]), str(spec["fn"])))
        else:
            raise ValueError(f"Layer {idx} has unknown type {spec.get('type')!r}")
    return network


def build_network(model_cfg: Mapping[str, object]) -> Network:
    """Construct (or resume) the network described by ``model_cfg``."""

    if model_cfg.get("resume"):
        path = Path(str(model_cfg["resume"]))
        with path.open("rb") as handle:
            network = Network.load(handle)
        logger.info(
            "Resumed network from %s (%d iterations, %d epochs trained)",
            path,
            network.iterations_trained,
            network.epochs_trained,
        )
        return network

    if "layers" in model_cfg:
        network = _build_layers(model_cfg)
    elif "sizes" in model_cfg:
        network = Network.from_sizes(
            [int(size) for size in model_cfg["sizes"]],  # type: ignore[union-attr]
            hidden=str(model_cfg.get("hidden", "sigmoid")),
            output=str(model_cfg.get("output", "sigmoid")),
            loss=str(model_cfg.get("loss", "mse")),
        )
    else:
        raise KeyError("model config needs either 'sizes' or 'layers'")

    seed = model_cfg.get("seed")
    init = get_initialiser(str(model_cfg.get("init", "xavier_uniform")))
    init(network, seed=None if seed is None else int(seed))
    constant_bias(network, float(model_cfg.get("bias", 0.0)))
    return network


def _check_data_fits(network: Network, samples: List[Sample]) -> None:
    first = samples[0]
    if first.inputs.rows != network.input_count:
        raise ValueError(
            f"Samples have {first.inputs.rows} inputs, network expects {network.input_count}"
        )
    if first.targets.rows != network.output_count:
        raise ValueError(
            f"Samples have {first.targets.rows} targets, network produces {network.output_count}"
        )


# ----------------------------------------------------------------------
# Run


class _MetricsCapture:
    def __init__(self) -> None:
        self.history: list[tuple[int, Mapping[str, float]]] = []
        self.last: Mapping[str, float] = {}

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        payload = {k: float(v) for k, v in metrics.items()}
        self.history.append((int(epoch), payload))
        self.last = payload


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    """Build, train, evaluate and persist a network described by ``config``."""

    data_cfg = dict(config["data"])  # type: ignore[arg-type]
    model_cfg = dict(config["model"])  # type: ignore[arg-type]
    train_cfg = dict(config["train"])  # type: ignore[arg-type]

    seed = int(train_cfg.get("seed", 0))
    model_cfg.setdefault("seed", seed)

    samples, provenance = load_samples(data_cfg)
    network = build_network(model_cfg)
    network.validate()
    _check_data_fits(network, samples)

    run_dir = _resolve_run_dir(train_cfg)
    run_dir.mkdir(parents=True, exist_ok=True)

    optimizer = str(train_cfg.get("optimizer", "gradient_descent"))
    epochs = int(train_cfg.get("epochs", 1))
    sample_size = train_cfg.get("sample_size")
    _print_startup_summary(
        network=network,
        samples=len(samples),
        optimizer=optimizer,
        epochs=epochs,
        sample_size=int(sample_size) if sample_size is not None else None,
    )
    logger.info("Starting run in %s", run_dir)

    train_jsonl = JsonlSink(run_dir / "metrics_train.jsonl", split="train", seed=seed)
    train_csv = CsvSink(run_dir / "metrics_train.csv", split="train")
    capture = _MetricsCapture()
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))

    trainer = Trainer(
        network,
        samples,
        learning_rate=float(train_cfg.get("lr", 0.001)),
        beta=float(train_cfg.get("beta", 0.9)),
        beta1=float(train_cfg.get("beta1", 0.9)),
        beta2=float(train_cfg.get("beta2", 0.999)),
        epsilon=float(train_cfg.get("epsilon", 1e-8)),
        sample_size=int(sample_size) if sample_size is not None else None,
        shuffle=bool(train_cfg.get("shuffle", True)),
        seed=seed,
        callbacks=[train_jsonl, train_csv, capture, plots],
    )
    result = trainer.train(optimizer, epochs)
    plots.close()

    final_metrics = dict(evaluate(network, samples))
    final_metrics["iterations_trained"] = network.iterations_trained
    final_metrics["epochs_trained"] = network.epochs_trained
    (run_dir / "metrics_final.json").write_text(json.dumps(final_metrics, indent=2))

    network_path = run_dir / "network.bin"
    include_state = bool(train_cfg.get("include_training_state", False))
    with network_path.open("wb") as handle:
        network.save(handle, include_training_state=include_state)
    logger.info("Saved network to %s (training state: %s)", network_path, include_state)

    safe_config = json.loads(json.dumps(config))
    manifest = write_manifest(
        run_dir / "manifest.json",
        config=safe_config,
        dataset_provenance=provenance,
        model=network.describe().to_dict(),
    )
    summary_tail = int(train_cfg.get("summary_tail", 32))
    summary_path = write_summary(
        train_jsonl.path, run_dir / "summary.json", tail=summary_tail, event="epoch"
    )
    (run_dir / "config.json").write_text(json.dumps(safe_config, indent=2))

    metrics_alias = run_dir / "metrics.jsonl"
    metrics_alias.write_text(train_jsonl.path.read_text())

    logger.info("Finished run: %d steps, final loss %.6f", result.steps, result.final_loss)
    return dataclasses.replace(
        result,
        metrics_path=str(train_jsonl.path),
        manifest_path=manifest,
        summary_path=str(summary_path),
        network_path=str(network_path),
    )


def _resolve_run_dir(train_cfg: Mapping[str, object]) -> Path:
    if "run_dir" in train_cfg:
        return Path(str(train_cfg["run_dir"]))
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp


def _print_startup_summary(
    *,
    network: Network,
    samples: int,
    optimizer: str,
    epochs: int,
    sample_size: int | None,
) -> None:
    print("=== nnkit run ===")
    print(f"Network       : {network!r}")
    print(f"Loss          : {network.loss.name}")
    print(f"Parameters    : {network.parameter_count()}")
    print(f"Samples       : {samples}")
    print(f"Optimizer     : {optimizer}")
    print(f"Epochs        : {epochs}")
    print(f"Chunk size    : {sample_size or samples}")
    if network.iterations_trained:
        print(f"Resumed at    : {network.iterations_trained} iterations")
    print("=================")


__all__ = [
    "build_network",
    "load_preset",
    "load_samples",
    "merge_config",
    "presets",
    "read_config_file",
    "run_pipeline",
]
