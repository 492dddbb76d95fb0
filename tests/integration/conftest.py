"""Fixtures writing small extraction sheets to a temporary workspace."""

import shutil
import tempfile
from pathlib import Path

import pandas as pd
import pytest


@pytest.fixture
def temp_workspace():
    """Create a temporary workspace for file-producing tests."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def trials_csv(temp_workspace):
    """Five trials reporting GDM and birthweight, with covariates and RoB."""
    sheet = pd.DataFrame({
        "study_id2": [1, 2, 3, 4, 5],
        "study": ["Hollis", "Roth", "Sablok", "Corcoy", "Zhao"],
        "year": [2011, 2018, 2015, 2020, 2019],
        "control_type": [1, 1, 2, 1, 2],
        "n_randomized": [494, 1300, 180, 154, 96],
        "pop_type": [1, 1, 2, 2, 1],
        "supp_form": [3, 3, 2, 3, 3],
        "gdm_mcri": [1, 1, 1, 0, 1],
        "gdm_vitd_event": [10, 8, 12, 6, 0],
        "gdm_vitd_total": [50, 40, 60, 30, 45],
        "gdm_control_event": [5, 4, 15, 7, 3],
        "gdm_control_total": [50, 40, 60, 30, 45],
        "bw_mcri": [1, 1, 1, None, None],
        "bw_vitd_n": [200, 600, 80, None, None],
        "bw_vitd_mean": [3350, 3200, 3010, None, None],
        "bw_vitd_sd": [450, 480, 500, None, None],
        "bw_control_n": [200, 600, 80, None, None],
        "bw_control_mean": [3300, 3190, 2950, None, None],
        "bw_control_sd": [460, 470, 520, None, None],
        "rob_seq_gen": [2, 2, 3, 1, 2],
        "rob_alloc_conc": [2, 3, 3, 1, 2],
        "rob_other_bias": [2, 2, 2, 3, None],
    })
    path = temp_workspace / "vitd_trials.csv"
    sheet.to_csv(path, index=False)
    return path
