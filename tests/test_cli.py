import pytest
from click.testing import CliRunner

import harmoprep.cli.run as run_cmd
from harmoprep.cli import main
from harmoprep.models import Modality, Session
from harmoprep.pipelines.artifacts import ArtifactStore
from harmoprep.pipelines.router import build_pipeline

from .utils import FakeEngine, make_dti_session


@pytest.fixture
def study(tmp_path):
    """Study root with two sessions of one subject."""
    store = ArtifactStore(tmp_path / "bids", tmp_path / "derivatives")
    for ses in ("ses-01N", "ses-01A"):
        (store.bids_dir / "sub-0001" / ses).mkdir(parents=True)
    return tmp_path, store


def _invoke(root, *args):
    return CliRunner().invoke(main, ["--root", str(root), *args])


def test_commands_listed():
    result = CliRunner().invoke(main, ["--help"])
    assert result.exit_code == 0
    for name in ("run", "tsnr", "tbss", "roi"):
        assert name in result.output


def test_dry_run_lists_stages_and_skips_unrouted(study):
    root, _ = study
    result = _invoke(root, "run", "asl", "--dry-run")
    assert result.exit_code == 0, result.output
    assert "sub-0001/ses-01A [asl] skipped" in result.output
    assert "sub-0001/ses-01N [asl-philips]" in result.output
    assert "perfusion-fit" in result.output


def test_dry_run_session_filter(study):
    root, _ = study
    result = _invoke(root, "run", "dti", "--dry-run", "--filter-ses", "01A")
    assert result.exit_code == 0, result.output
    assert "[dti-siemens-a]" in result.output
    assert "ses-01N" not in result.output


def test_missing_raw_folder(tmp_path):
    result = _invoke(tmp_path, "run", "t1")
    assert result.exit_code != 0
    assert "raw data folder not found" in result.output


def test_failed_session_sets_exit_code(study, monkeypatch):
    root, store = study
    good = Session(sub="0001", ses="01N")
    bad = Session(sub="0001", ses="01A")
    make_dti_session(store, good, fmap_dirs=("AP",))
    make_dti_session(store, bad, fmap_dirs=("AP",))

    engine = FakeEngine()
    for session in (good, bad):
        engine.attach(build_pipeline(session, Modality.DTI, store))
    monkeypatch.setattr(run_cmd, "make_engine", lambda cfg, root: engine)

    result = _invoke(root, "run", "dti", "-j", "2")
    assert result.exit_code == 1
    assert "sub-0001/ses-01N [dti] ok" in result.output
    assert "sub-0001/ses-01A [dti] FAILED" in result.output
    assert "1 of 2 pipeline(s) failed" in result.output
    assert store.aggregate_path("FA", good).is_file()


def test_tbss_without_fa_maps(study):
    root, _ = study
    result = _invoke(root, "tbss", "--dry-run")
    assert result.exit_code == 1
    assert "missing input artifact" in result.output


def test_invalid_config(tmp_path):
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("engine: local\n")
    result = CliRunner().invoke(main, ["--root", str(tmp_path), "--config", str(cfg), "run", "t1"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_tsnr_missing_masks(study):
    root, _ = study
    result = _invoke(root, "tsnr", "--filter-ses", "01N")
    assert result.exit_code == 1
    assert "sub-0001/ses-01N" in result.output
    assert "gm_mask_epi.nii.gz" in result.output


def test_roi_missing_skeleton(study):
    root, _ = study
    atlas = root / "atlas.nii.gz"
    atlas.write_bytes(b"placeholder")
    result = _invoke(root, "roi", "--atlas", str(atlas), "--metric", "FA")
    assert result.exit_code == 1
    assert "mean_FA_skeleton_mask" in result.output


def test_scanner_filter(study):
    root, _ = study
    result = _invoke(root, "run", "t1", "--dry-run", "--scanner", "a")
    assert result.exit_code == 0, result.output
    assert "ses-01A [t1]" in result.output
    assert "ses-01N" not in result.output
