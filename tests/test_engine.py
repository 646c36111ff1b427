"""Fail-fast behaviour of the stage runner."""

from pathlib import Path

import pytest

from harmoprep.pipelines.engine import Pipeline, Stage
from harmoprep.tools.fsl import temporal_mean
from harmoprep.utils.errors import MissingInputArtifact, StageFailed

from .utils import FakeEngine, write_nifti


def _chain(store, tmp_path: Path) -> Pipeline:
    a = tmp_path / "in.nii.gz"
    b = store.derivatives_dir / "b.nii.gz"
    c = store.derivatives_dir / "c.nii.gz"
    d = store.derivatives_dir / "sub" / "d.nii.gz"
    return Pipeline(
        "chain",
        [
            Stage("first", inputs=[a], outputs=[b], tool=temporal_mean(a, b)),
            Stage("second", inputs=[b], outputs=[c], tool=temporal_mean(b, c)),
            Stage("third", inputs=[c], outputs=[d], tool=temporal_mean(c, d)),
        ],
        store,
    )


def test_runs_in_order(store, tmp_path):
    write_nifti(tmp_path / "in.nii.gz")
    pipe = _chain(store, tmp_path)
    engine = FakeEngine().attach(pipe)
    result = pipe.run(engine)
    assert result.completed == ["first", "second", "third"]
    assert engine.stage_calls == ["first", "second", "third"]
    assert set(result.elapsed) == {"first", "second", "third"}


def test_missing_input_stops_before_invocation(store, tmp_path):
    pipe = _chain(store, tmp_path)
    engine = FakeEngine().attach(pipe)
    with pytest.raises(MissingInputArtifact) as exc:
        pipe.run(engine)
    assert exc.value.stage_id == "first"
    assert exc.value.artifact == tmp_path / "in.nii.gz"
    assert engine.calls == []
    assert not (store.derivatives_dir / "c.nii.gz").exists()


def test_empty_input_counts_as_missing(store, tmp_path):
    (tmp_path / "in.nii.gz").touch()
    pipe = _chain(store, tmp_path)
    with pytest.raises(MissingInputArtifact):
        pipe.run(FakeEngine().attach(pipe))


def test_nonzero_exit_is_stage_failed(store, tmp_path):
    write_nifti(tmp_path / "in.nii.gz")
    pipe = _chain(store, tmp_path)
    engine = FakeEngine(fail={"second"}).attach(pipe)
    with pytest.raises(StageFailed) as exc:
        pipe.run(engine)
    assert exc.value.stage_id == "second"
    assert "exit status 1" in exc.value.reason
    assert engine.stage_calls == ["first", "second"]
    assert not (store.derivatives_dir / "sub" / "d.nii.gz").exists()


def test_timeout_maps_to_stage_failed(store, tmp_path):
    write_nifti(tmp_path / "in.nii.gz")
    pipe = _chain(store, tmp_path)
    engine = FakeEngine(timeout={"first"}).attach(pipe)
    with pytest.raises(StageFailed) as exc:
        pipe.run(engine, timeout=5)
    assert exc.value.stage_id == "first"
    assert exc.value.reason == "timeout"


def test_missing_output_fails_predicate(store, tmp_path):
    """Exit status 0 without the declared output is still a failure."""
    write_nifti(tmp_path / "in.nii.gz")
    pipe = _chain(store, tmp_path)
    engine = FakeEngine(silent={"first"}).attach(pipe)
    with pytest.raises(StageFailed) as exc:
        pipe.run(engine)
    assert exc.value.stage_id == "first"
    assert "b.nii.gz" in exc.value.reason
    assert engine.stage_calls == ["first"]


def test_internal_action_and_custom_predicate(store, tmp_path):
    out = store.derivatives_dir / "table.txt"
    pipe = Pipeline(
        "internal",
        [
            Stage("write", outputs=[out], action=lambda: store.write(out, "1 2\n")),
            Stage("check", inputs=[out], action=lambda: None, success=lambda: False),
        ],
        store,
    )
    with pytest.raises(StageFailed) as exc:
        pipe.run(FakeEngine())
    assert exc.value.stage_id == "check"
    assert out.read_text() == "1 2\n"


def test_output_directories_created_lazily(store, tmp_path):
    write_nifti(tmp_path / "in.nii.gz")
    pipe = _chain(store, tmp_path)
    assert not store.derivatives_dir.exists()
    pipe.run(FakeEngine().attach(pipe))
    assert (store.derivatives_dir / "sub").is_dir()


def test_stage_needs_one_operation(tmp_path):
    with pytest.raises(ValueError):
        Stage("nothing")


def test_rejects_duplicate_ids(store, tmp_path):
    noop = lambda: None  # noqa: E731
    with pytest.raises(ValueError):
        Pipeline("dup", [Stage("x", action=noop), Stage("x", action=noop)], store)


def test_rejects_consumption_before_production(store, tmp_path):
    p = tmp_path / "late.txt"
    with pytest.raises(ValueError, match="before"):
        Pipeline(
            "order",
            [
                Stage("reader", inputs=[p], action=lambda: None),
                Stage("writer", outputs=[p], action=lambda: None),
            ],
            store,
        )


def test_describe_lists_commands(store, tmp_path):
    pipe = _chain(store, tmp_path)
    described = dict(pipe.describe())
    assert described["first"].startswith("fslmaths ")
    assert "-Tmean" in described["first"]


def test_action_exception_becomes_stage_failed(store):
    def explode():
        raise EOFError("Compressed file ended before the end-of-stream marker was reached")

    pipe = Pipeline("internal", [Stage("read-header", action=explode)], store)
    with pytest.raises(StageFailed) as exc:
        pipe.run(FakeEngine())
    assert exc.value.stage_id == "read-header"
    assert exc.value.reason.startswith("EOFError: Compressed file ended")
    assert isinstance(exc.value.__cause__, EOFError)


def test_stale_folder_removed_before_operation(store, tmp_path):
    write_nifti(tmp_path / "in.nii.gz")
    report = store.derivatives_dir / "report"
    store.write(report / "leftover.txt", "old")
    seen = []

    def build():
        seen.append((report / "leftover.txt").exists())
        store.write(report / "qc.json", "{}")

    pipe = Pipeline(
        "stale",
        [Stage("qc", inputs=[tmp_path / "in.nii.gz"], outputs=[report / "qc.json"], stale=[report], action=build)],
        store,
    )
    pipe.run(FakeEngine())
    assert seen == [False]
    assert not (report / "leftover.txt").exists()
    assert (report / "qc.json").is_file()
