"""End-to-end ASL stage lists with a recording engine."""

import pytest

from harmoprep.models import Modality, PipelineVariant, Session
from harmoprep.pipelines.router import build_pipeline
from harmoprep.tools.oxasl import N_LABEL_CONTROL, REPEATS, inflow_times
from harmoprep.utils.errors import MissingInputArtifact

from .utils import FakeEngine, make_asl_philips, make_asl_siemens


def _run(store, session):
    pipe = build_pipeline(session, Modality.ASL, store)
    engine = FakeEngine().attach(pipe)
    result = pipe.run(engine)
    return pipe, engine, result


def _opt(spec, name):
    """Return the value of ``--name=value`` in *spec*."""
    prefix = f"--{name}="
    matches = [a[len(prefix):] for a in spec.args if a.startswith(prefix)]
    assert matches, f"{name} not passed to {spec.program}"
    return matches[0]


def test_repeat_schedule_sums_to_label_control_frames():
    assert REPEATS == (12, 12, 12, 20, 30)
    assert N_LABEL_CONTROL == 86


def test_inflow_times():
    tis = inflow_times()
    assert len(tis) == 43
    assert tis[:6] == [1.6] * 6
    assert tis[-15:] == [3.6] * 15
    assert tis.count(3.1) == 10


def test_philips_ses_02n(store):
    session = Session(sub="sub-0001", ses="ses-02N")
    make_asl_philips(store, session)
    pipe, engine, result = _run(store, session)

    assert pipe.variant is PipelineVariant.ASL_PHILIPS
    assert result.completed == pipe.stage_ids

    out = store.session_dir("asl_analysis", session)
    assert (out / "acqparams.txt").read_text() == "0 1 0 0.0379386\n0 -1 0 0.0379386\n"

    merge = engine.call("fslmerge")
    delays = merge.args[3:]
    assert [d.split("acq-")[1].split("msPLD")[0] for d in delays] == ["200", "700", "1200", "1700", "2200"]
    assert merge.args[2].endswith("pcASL_PA_main.nii.gz")

    calib_merge = [c for c in engine.calls if c.program == "fslmerge"][1]
    assert calib_merge.args[3].endswith("pcASL_PA.nii.gz")
    assert calib_merge.args[4].endswith("pcASL_AP.nii.gz")

    asl_file = engine.call("asl_file")
    assert _opt(asl_file, "rpts") == "12,12,12,20,30"
    assert _opt(asl_file, "iaf") == "ct"
    assert _opt(asl_file, "ntis") == "5"
    assert _opt(asl_file, "data").endswith("aslct_corr.nii.gz")

    fit = engine.call("oxford_asl")
    assert _opt(fit, "tr") == "10"
    assert _opt(fit, "te") == "14"
    assert _opt(fit, "fslanat") == str(store.fsl_anat_dir(session))
    assert _opt(fit, "tis").split(",") == [str(t) for t in inflow_times()]
    assert fit.args[-1] == "--pvcorr"
    assert (out / "output" / "native_space" / "perfusion.nii.gz").is_file()


def test_siemens_split_and_timing(store):
    session = Session(sub="sub-0001", ses="ses-01B")
    make_asl_siemens(store, session)
    pipe, engine, _ = _run(store, session)

    assert pipe.variant is PipelineVariant.ASL_SIEMENS
    rois = [c for c in engine.calls if c.program == "fslroi"]
    assert rois[0].args[2].endswith("pcASL.nii.gz")
    assert rois[0].args[3:] == ("0", "86")
    assert rois[1].args[2].endswith("M0.nii.gz")
    assert rois[1].args[3:] == ("86", "2")

    merge = engine.call("fslmerge")
    assert "dir-AP" in merge.args[3] and "dir-PA" in merge.args[4]

    asl_file = engine.call("asl_file")
    assert not any(a.startswith("--iaf=") for a in asl_file.args)
    assert _opt(asl_file, "data").endswith("asltc_corr.nii.gz")

    fit = engine.call("oxford_asl")
    assert _opt(fit, "tr") == "3.58"
    assert _opt(fit, "te") == "19"


def test_missing_anatomy_fails_first_stage(store):
    session = Session(sub="sub-0001", ses="ses-02N")
    make_asl_philips(store, session)
    (store.fsl_anat_dir(session) / "T1_fast_pve_1.nii.gz").unlink()
    pipe = build_pipeline(session, Modality.ASL, store)
    engine = FakeEngine().attach(pipe)
    with pytest.raises(MissingInputArtifact) as exc:
        pipe.run(engine)
    assert exc.value.stage_id == "gm-mask"
    assert engine.calls == []


def test_rerun_clears_previous_oxford_asl_output(store):
    session = Session(sub="sub-0001", ses="ses-01N")
    make_asl_philips(store, session)
    pipe, _, _ = _run(store, session)
    out_dir = pipe.stage("perfusion-fit").stale[0]
    (out_dir / "logfile").write_text("previous run\n")

    pipe, _, result = _run(store, session)

    assert result.completed == pipe.stage_ids
    assert not (out_dir / "logfile").exists()
    assert (out_dir / "native_space" / "perfusion.nii.gz").is_file()
