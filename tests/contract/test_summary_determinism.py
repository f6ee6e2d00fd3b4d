import json
from pathlib import Path

from nnkit.reporting.summary import compute_auc, summarise, write_summary
from nnkit.training import pipelines


def _config(run_dir):
    config = pipelines.load_preset("xor-adam")
    config["train"]["epochs"] = 20
    config["train"]["run_dir"] = str(run_dir)
    return config


def test_summary_outputs_are_deterministic(tmp_path):
    first = pipelines.run_pipeline(_config(tmp_path / "run_a"))
    second = pipelines.run_pipeline(_config(tmp_path / "run_b"))

    assert Path(first.metrics_path).read_bytes() == Path(second.metrics_path).read_bytes()
    assert Path(first.summary_path).read_bytes() == Path(second.summary_path).read_bytes()
    assert Path(first.network_path).read_bytes() == Path(second.network_path).read_bytes()


def test_summary_covers_epoch_records(tmp_path):
    result = pipelines.run_pipeline(_config(tmp_path / "run"))
    summary = json.loads(Path(result.summary_path).read_text())
    assert summary["event"] == "epoch"
    assert summary["records"] == 20
    assert set(summary["metrics"]) == {"loss"}
    loss = summary["metrics"]["loss"]
    assert loss["last"] == result.final_loss
    assert loss["min"] <= loss["mean"] <= loss["max"]


def test_summary_helpers(tmp_path):
    assert compute_auc([]) == 0.0
    assert compute_auc([1.0, 1.0, 1.0]) == 2.0
    records = [{"event": "step", "index": i, "loss": float(i), "seed": 0} for i in range(5)]
    summary = summarise(records, tail=2)
    assert summary["tail_window"] == 2
    assert summary["metrics"]["loss"]["tail_auc"] == 3.5
    assert "index" not in summary["metrics"]

    path = tmp_path / "metrics.jsonl"
    path.write_text("\n".join(json.dumps(r) for r in records) + "\n")
    out = write_summary(path, tmp_path / "summary.json", tail=4, event="epoch")
    assert json.loads(Path(out).read_text())["records"] == 0
