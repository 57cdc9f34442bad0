import os

import pytest

from tabular_eda.config import PipelineConfig
from tabular_eda.datasets.common import Stage
from tabular_eda.errors import DataQualityError, PipelineError
from tabular_eda.pipeline import apply_overrides, main, run, run_stages


def test_run_stages_passes_values_along():
    stages = [Stage("double", lambda x: x * 2), Stage("inc", lambda x: x + 1)]
    assert run_stages(stages, 5) == 11


def test_run_stages_names_the_failing_stage():
    def boom(_):
        raise DataQualityError("bad rows")

    stages = [Stage("load", lambda x: x), Stage("clean", boom), Stage("never", lambda x: pytest.fail("ran"))]
    with pytest.raises(PipelineError) as excinfo:
        run_stages(stages, None)
    assert excinfo.value.stage == "clean"
    assert isinstance(excinfo.value.cause, DataQualityError)
    assert str(excinfo.value) == "Stage 'clean' failed: bad rows"


def test_apply_overrides():
    config = apply_overrides(PipelineConfig("wine", "x.csv"), k_max=4, seed=7, train_fraction=0.6)
    assert config.sweep.k_max == 4
    assert config.sweep.random_state == 7
    assert config.split.random_state == 7
    assert config.split.train_fraction == 0.6
    assert apply_overrides(config) == config


def test_run_wine(wine_csv, tmp_path):
    config = apply_overrides(PipelineConfig("wine", wine_csv, output_dir=str(tmp_path)), k_max=3)
    report = run(config)
    assert "sweep_summary" in report.tables
    assert os.path.exists(report.figures["elbow"])
    assert (tmp_path / "missing_values.png").exists()


def test_main_succeeds(sleep_csv, tmp_path):
    out = tmp_path / "figures"
    assert main(["sleep-health", "--data", sleep_csv, "--output-dir", str(out), "--seed", "1"]) == 0
    assert (out / "confusion.png").exists()


def test_main_with_config_file(oasis_csv, tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text('{"dataset": "alzheimer", "data_path": "ignored.csv", "fold_converted": true,'
                           ' "classifier": {"kind": "random_forest", "params": {"n_estimators": 10}}}')
    args = ["alzheimer", "--data", oasis_csv, "--config", str(config_path), "--output-dir", str(tmp_path)]
    assert main(args) == 0
    assert (tmp_path / "missing_values.png").exists()
    assert (tmp_path / "variables.png").exists()


def test_main_reports_a_failed_stage(tmp_path):
    assert main(["wine", "--data", str(tmp_path / "missing.csv")]) == 1


def test_main_rejects_bad_configuration(wine_csv):
    assert main(["wine", "--data", wine_csv, "--train-fraction", "1.5"]) == 2
    assert main(["wine", "--data", wine_csv, "--log-level", "chatty"]) == 2


def test_main_rejects_unknown_dataset(wine_csv):
    with pytest.raises(SystemExit):
        main(["iris", "--data", wine_csv])
