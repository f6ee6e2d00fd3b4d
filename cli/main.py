"""Command line entry point for nnkit training runs."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Iterable

from nnkit.core.network import Network
from nnkit.training import pipelines
from nnkit.training.optimizers import OptimizerKind


def _format_result(result) -> str:
    payload = {
        "steps": result.steps,
        "epochs": result.epochs,
        "final_loss": result.final_loss,
        "metrics": result.metrics_path,
        "manifest": result.manifest_path,
        "network": result.network_path,
    }
    if result.summary_path:
        payload["summary"] = result.summary_path
    return json.dumps(payload, sort_keys=True)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(pipelines.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=preset_names,
        default="xor-gd",
        help="Preset configuration to execute",
    )
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument(
        "--list-presets", action="store_true", help="List available presets and exit"
    )
    parser.add_argument(
        "--dump-config", type=Path, help="Dump the resolved config to a JSON file"
    )
    parser.add_argument("--seed", type=int, help="Seed for initialisation and shuffling")
    parser.add_argument("--epochs", type=int, help="Override the number of epochs")
    parser.add_argument(
        "--optimizer",
        choices=[kind.value for kind in OptimizerKind],
        help="Override the optimizer",
    )
    parser.add_argument("--lr", type=float, help="Override the learning rate")
    parser.add_argument("--run-dir", type=Path, help="Directory for run artifacts")
    parser.add_argument(
        "--enable-plots", action="store_true", help="Write loss.png into the run directory"
    )
    parser.add_argument(
        "--inspect",
        type=Path,
        metavar="PATH",
        help="Print the description of a saved network and exit",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def _inspect(path: Path) -> None:
    with path.open("rb") as handle:
        network = Network.load(handle)
    print(json.dumps(network.describe().to_dict(), sort_keys=True))


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    if args.inspect:
        _inspect(args.inspect)
        raise SystemExit(0)

    config = json.loads(json.dumps(pipelines.load_preset(args.preset)))

    if args.config:
        override = pipelines.read_config_file(args.config)
        if {"data", "model", "train"} <= set(override.keys()):
            config = json.loads(json.dumps(override))
        else:
            config = pipelines.merge_config(config, override)

    train_cfg = config.setdefault("train", {})
    if args.seed is not None:
        train_cfg["seed"] = int(args.seed)
        config.setdefault("model", {})["seed"] = int(args.seed)
    if args.epochs is not None:
        train_cfg["epochs"] = int(args.epochs)
    if args.optimizer:
        train_cfg["optimizer"] = args.optimizer
    if args.lr is not None:
        train_cfg["lr"] = float(args.lr)
    if args.run_dir:
        train_cfg["run_dir"] = str(args.run_dir)
    if args.enable_plots:
        train_cfg["enable_plots"] = True

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    result = pipelines.run_pipeline(config)
    print(_format_result(result))


if __name__ == "__main__":
    main()
