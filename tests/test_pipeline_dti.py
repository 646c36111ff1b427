"""Diffusion pipeline: scanner-specific reference handling and TBSS hand-off."""

import pytest

from harmoprep.models import Modality, PipelineVariant, Session
from harmoprep.pipelines.router import build_pipeline
from harmoprep.utils.errors import MissingInputArtifact

from .utils import FakeEngine, make_dti_session


def _run(store, session):
    pipe = build_pipeline(session, Modality.DTI, store)
    engine = FakeEngine().attach(pipe)
    return pipe, engine, pipe.run(engine)


def test_ses_01n_end_to_end(store):
    session = Session(sub="sub-0001", ses="ses-01N")
    make_dti_session(store, session, fmap_dirs=("AP",))
    pipe, engine, result = _run(store, session)

    assert pipe.variant is PipelineVariant.DTI_PHILIPS
    assert result.completed == pipe.stage_ids

    out = store.session_dir("dti_preproc", session)
    assert (out / "acqparams.txt").read_text() == "0 1 0 0.0742\n0 -1 0 0.0742\n"

    reverse = engine.call("mrconvert")
    assert reverse.args[1].endswith("sub-0001_ses-01N_acq-dwi_dir-AP_epi.nii.gz")
    assert reverse.args[2].endswith("sub-0001_ses-01N_b0_AP.nii.gz")

    merge = engine.call("fslmerge")
    assert merge.args[2].endswith("b0_PAAP.nii.gz")
    assert merge.args[3].endswith("b0_PA.nii.gz")
    assert merge.args[4].endswith("b0_AP.nii.gz")

    # one index row per DWI volume
    assert (out / "index.txt").read_text() == "1\n1\n1\n1\n"

    eddy = engine.call("eddy")
    assert "--data_is_shelled" in eddy.args
    assert any(a.endswith("topup_b0") and a.startswith("--topup=") for a in eddy.args)

    for metric in ("FA", "MD"):
        assert store.aggregate_path(metric, session).is_file()
        assert store.aggregate_path(metric, session).name == f"sub-0001_ses-01N_{metric}.nii.gz"


@pytest.mark.parametrize(
    "ses, variant, readout",
    [
        ("ses-01A", PipelineVariant.DTI_SIEMENS_A, "0.0690115"),
        ("ses-02B", PipelineVariant.DTI_SIEMENS_B, "0.0732608"),
    ],
)
def test_siemens_codes_read_pa_fieldmap(store, ses, variant, readout):
    """Both Siemens codes take the reverse reference from dir-PA."""
    session = Session(sub="sub-0001", ses=ses)
    make_dti_session(store, session, fmap_dirs=("PA",))
    pipe, engine, _ = _run(store, session)

    assert pipe.variant is variant
    out = store.session_dir("dti_preproc", session)
    assert (out / "acqparams.txt").read_text() == f"0 -1 0 {readout}\n0 1 0 {readout}\n"

    assert "dir-PA" in engine.call("mrconvert").args[1]
    merge = engine.call("fslmerge")
    assert merge.args[2].endswith("b0_APPA.nii.gz")
    assert merge.args[3].endswith("b0_AP.nii.gz")
    assert merge.args[4].endswith("b0_PA.nii.gz")


def test_missing_fieldmap_stops_at_reverse_b0(store):
    session = Session(sub="sub-0001", ses="ses-01A")
    make_dti_session(store, session, fmap_dirs=("AP",))
    pipe = build_pipeline(session, Modality.DTI, store)
    engine = FakeEngine().attach(pipe)

    with pytest.raises(MissingInputArtifact) as exc:
        pipe.run(engine)

    assert exc.value.stage_id == "reverse-b0"
    assert "dir-PA" in exc.value.artifact.name
    assert engine.stage_calls == ["extract-b0", "mean-b0"]
    assert not store.aggregate_path("FA", session).exists()


def test_tensor_fit_uses_raw_gradients(store):
    session = Session(sub="sub-0001", ses="ses-01N")
    pipe = build_pipeline(session, Modality.DTI, store)
    dtifit = pipe.stage("tensor-fit").tool.build_spec()
    assert dtifit.args[dtifit.args.index("-r") + 1].endswith("sub-0001_ses-01N_dwi.bvec")
    assert dtifit.args[dtifit.args.index("-b") + 1].endswith("sub-0001_ses-01N_dwi.bval")
    assert dtifit.args[dtifit.args.index("-k") + 1].endswith("dwi_eddy.nii.gz")


def test_rerun_replaces_eddy_qc_folder(store):
    """eddy_quad will not write into an existing QC folder."""
    session = Session(sub="sub-0001", ses="ses-01N")
    make_dti_session(store, session, fmap_dirs=("AP",))
    pipe, _, first = _run(store, session)
    qc_dir = pipe.stage("eddy-qc").outputs[0].parent
    assert first.completed == pipe.stage_ids
    assert qc_dir.name == "sub-0001_ses-01N_dwi_eddy.qc"
    (qc_dir / "old_report.pdf").write_text("stale")

    pipe, engine, second = _run(store, session)

    assert second.completed == pipe.stage_ids
    assert engine.stage_calls.count("eddy-qc") == 1
    assert not (qc_dir / "old_report.pdf").exists()
    assert (qc_dir / "qc.json").is_file()
    assert store.aggregate_path("FA", session).is_file()
