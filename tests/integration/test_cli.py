"""Integration tests driving the command line interface."""

import pandas as pd
import pytest
from typer.testing import CliRunner

from vdma import __version__
from vdma.cli.main import app

runner = CliRunner()


@pytest.mark.integration
def test_run_writes_results(trials_csv, temp_workspace):
    out_dir = temp_workspace / "results"
    result = runner.invoke(app, ["run", str(trials_csv), "--output", str(out_dir), "--workers", "2"])
    assert result.exit_code == 0, result.output
    assert "Meta-analysis complete" in result.output
    pooled = pd.read_csv(out_dir / "pooled_results.csv")
    gdm = pooled[(pooled["outcome"] == "gdm") & (pooled["variant"] == "primary")]
    assert int(gdm["k"].iloc[0]) == 4
    notes = pd.read_csv(out_dir / "analysis_notes.csv")
    assert "missing_dataset" in set(notes["kind"])
    assert (out_dir / "pooled_results.json").exists()


@pytest.mark.integration
def test_run_rejects_bad_sheet(temp_workspace):
    path = temp_workspace / "bad.csv"
    pd.DataFrame({"study_id2": [1], "title": ["x"]}).to_csv(path, index=False)
    result = runner.invoke(app, ["run", str(path), "--output", str(temp_workspace / "out")])
    assert result.exit_code == 1
    assert "missing required columns" in result.output


@pytest.mark.integration
def test_forest_command(trials_csv, temp_workspace):
    path = temp_workspace / "forest.png"
    result = runner.invoke(
        app, ["forest", str(trials_csv), "--outcome", "gdm", "--variant", "subgroup:pop_type", "-o", str(path)]
    )
    assert result.exit_code == 0, result.output
    assert path.exists()


@pytest.mark.integration
def test_forest_unknown_outcome(trials_csv):
    result = runner.invoke(app, ["forest", str(trials_csv), "--outcome", "nope"])
    assert result.exit_code == 1


@pytest.mark.integration
def test_forest_variant_not_applicable(trials_csv):
    result = runner.invoke(app, ["forest", str(trials_csv), "--outcome", "bw", "--variant", "sensitivity"])
    assert result.exit_code == 1


@pytest.mark.integration
def test_funnel_command(trials_csv, temp_workspace):
    path = temp_workspace / "funnel.png"
    result = runner.invoke(app, ["funnel", str(trials_csv), "--outcome", "gdm", "-o", str(path)])
    assert result.exit_code == 0, result.output
    assert path.exists()
    assert "Egger's test not run" in result.output


@pytest.mark.integration
def test_figure_commands(trials_csv, temp_workspace):
    for command, name in (("rob", "rob.png"), ("heatmap", "heatmap.png")):
        path = temp_workspace / name
        result = runner.invoke(app, [command, str(trials_csv), "-o", str(path)])
        assert result.exit_code == 0, result.output
        assert path.exists()


@pytest.mark.integration
def test_describe(trials_csv):
    result = runner.invoke(app, ["describe", str(trials_csv), "--by", "pop_type,supp_form"])
    assert result.exit_code == 0, result.output
    assert "pop_type" in result.output
    assert "randomised" in result.output


def test_outcomes_lists_catalog():
    result = runner.invoke(app, ["outcomes"])
    assert result.exit_code == 0
    assert "gdm" in result.output


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output
