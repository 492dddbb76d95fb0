"""Unit tests for reading extraction sheets into study records."""

import math

import pandas as pd
import pytest

from vdma.core.exceptions import DatasetError
from vdma.core.models import Eligibility, StudyDataset
from vdma.io.loader import frame_to_records, load_studies, records_to_frame
from vdma.meta.catalog import outcome_by_key, subgroup_by_key

OUTCOMES = [outcome_by_key("gdm"), outcome_by_key("bw")]
SUBGROUPS = [subgroup_by_key("pop_type")]


@pytest.fixture
def sheet():
    return pd.DataFrame({
        "study_id2": [1, 2, 3],
        "study": ["Hollis", "Roth", "Sablok"],
        "year": [2011, 2018, 2015],
        "control_type": [1, 1, 2],
        "n_randomized": [494, 1300, 180],
        "gdm_mcri": [1, 0, math.nan],
        "gdm_vitd_event": [10, 4, math.nan],
        "gdm_vitd_total": [50, 40, math.nan],
        "gdm_control_event": [5, 6, math.nan],
        "gdm_control_total": [50, 40, math.nan],
        "pop_type": [1, 2, math.nan],
        "rob_seq_gen": [2, 1, math.nan],
    })


class TestFrameToRecords:
    """Tests for frame_to_records."""

    def test_records(self, sheet) -> None:
        records = frame_to_records(sheet, OUTCOMES, SUBGROUPS)
        assert list(records) == ["1", "2", "3"]
        first = records["1"]
        assert first.label == "Hollis 2011"
        assert first.n_randomized == 494
        assert first.binary["gdm"].event_t == 10
        assert first.risk_of_bias == {"rob_seq_gen": 2}

    def test_eligibility_codes(self, sheet) -> None:
        records = frame_to_records(sheet, OUTCOMES, SUBGROUPS)
        assert records["1"].eligibility_for("gdm") is Eligibility.MEETS_DEFINITION
        assert records["2"].eligibility_for("gdm") is Eligibility.REPORTED_NOT_MEETING
        assert records["3"].eligibility_for("gdm") is Eligibility.NOT_REPORTED
        assert "gdm" not in records["3"].binary

    def test_covariates_are_relabelled(self, sheet) -> None:
        records = frame_to_records(sheet, OUTCOMES, SUBGROUPS)
        assert records["1"].covariates == {"pop_type": "General population"}
        assert records["2"].covariates == {"pop_type": "Population with morbidities"}
        assert records["3"].covariates == {}

    def test_invalid_counts_keep_reason(self, sheet) -> None:
        sheet.loc[0, "gdm_vitd_event"] = 80
        records = frame_to_records(sheet, OUTCOMES, SUBGROUPS)
        assert "gdm" not in records["1"].binary
        assert records["1"].invalid["gdm"] == "vitamin D arm has more events (80.0) than participants (50.0)"
        assert records["2"].invalid == {}

    def test_invalid_continuous_field_named(self, sheet) -> None:
        sheet["bw_vitd_n"] = [0, 40, math.nan]
        sheet["bw_vitd_mean"] = [3300, 3250, math.nan]
        records = frame_to_records(sheet, OUTCOMES, SUBGROUPS)
        assert records["1"].invalid["bw"].startswith("n_t:")
        assert "bw" in records["2"].continuous

    def test_pair_ids(self, sheet) -> None:
        sheet["pair_id"] = [1, 2, 1]
        sheet["study_id2"] = [1, 1, 2]
        records = frame_to_records(sheet, OUTCOMES, SUBGROUPS, dataset=StudyDataset.PAIRS)
        assert list(records) == ["1.1", "1.2", "2.1"]

    def test_duplicate_ids(self, sheet) -> None:
        sheet["study_id2"] = [1, 1, 2]
        with pytest.raises(DatasetError, match="Duplicate"):
            frame_to_records(sheet, OUTCOMES, SUBGROUPS)

    def test_missing_required_column(self, sheet) -> None:
        with pytest.raises(DatasetError):
            frame_to_records(sheet.drop(columns=["study"]), OUTCOMES, SUBGROUPS)


def test_load_studies_missing_file(tmp_path) -> None:
    with pytest.raises(DatasetError):
        load_studies(tmp_path / "missing.csv")


def test_load_studies_from_csv(sheet, tmp_path) -> None:
    path = tmp_path / "vitd.csv"
    sheet.to_csv(path, index=False)
    records = load_studies(path, OUTCOMES, SUBGROUPS)
    assert len(records) == 3
    assert records["2"].binary["gdm"].total_c == 40


def test_records_to_frame_restores_flags(sheet) -> None:
    frame = records_to_frame(frame_to_records(sheet, OUTCOMES, SUBGROUPS), OUTCOMES)
    assert list(frame["label"]) == ["Hollis 2011", "Roth 2018", "Sablok 2015"]
    assert frame.loc[0, "gdm_mcri"] == 1
    assert frame.loc[1, "gdm_mcri"] == 0
    assert pd.isna(frame.loc[2, "gdm_mcri"])
    assert frame.loc[0, "pop_type"] == "General population"
