"""
Group tract-based spatial statistics on the aggregated FA and MD maps.

Runs inside ``<derivatives>/TBSS_analysis/FA`` (passed explicitly as the
tools' working directory). ``tbss_1_preproc`` moves the FA maps into
``origdata/``; MD maps are staged under ``MD/`` with the FA file names so
``tbss_non_FA`` can reuse the FA registration.

A rerun first moves the maps back out of ``origdata/`` and clears the
previous run's working folders, so the group is always rebuilt from every
aggregated session.
"""

from __future__ import annotations

from pathlib import Path
from typing import List

import structlog

from harmoprep.tools import fsl
from harmoprep.utils.errors import MissingInputArtifact

from .artifacts import ArtifactStore
from .engine import Pipeline, Stage

log = structlog.get_logger()

PRESTATS_THRESHOLD = 0.25
FA_SUFFIX = "_FA.nii.gz"
MD_SUFFIX = "_MD.nii.gz"
WORK_FOLDERS = ("origdata", "FA", "stats", "MD")


def skeleton_outputs(store: ArtifactStore) -> dict[str, Path]:
    """Return the group outputs consumed by the ROI extraction."""
    stats = store.tbss_dir("FA") / "stats"
    return {
        "FA": stats / "all_FA_skeletonised.nii.gz",
        "MD": stats / "all_MD_skeletonised.nii.gz",
        "mask": stats / "mean_FA_skeleton_mask.nii.gz",
    }


def discover_fa_maps(store: ArtifactStore) -> List[Path]:
    """Aggregated FA maps, sorted by name.

    Maps a previous run moved into ``origdata/`` are reported at their
    aggregate location, where the reset stage puts them back.
    """
    fa_dir = store.tbss_dir("FA")
    names = {p.name for p in fa_dir.glob(f"*{FA_SUFFIX}") if p.is_file()}
    names.update(p.name for p in (fa_dir / "origdata").glob(f"*{FA_SUFFIX}") if p.is_file())
    return [fa_dir / name for name in sorted(names)]


def reset_workdir(store: ArtifactStore) -> None:
    """Restore moved FA maps and drop the previous run's working folders."""
    fa_dir = store.tbss_dir("FA")
    origdata = fa_dir / "origdata"
    for moved in sorted(origdata.glob(f"*{FA_SUFFIX}")):
        target = fa_dir / moved.name
        if not target.exists():
            store.move(moved, target)
    for folder in WORK_FOLDERS:
        store.clear(fa_dir / folder)


def build_tbss_pipeline(store: ArtifactStore) -> Pipeline:
    """Return the FA → MD TBSS pipeline for every aggregated session.

    Raises:
        MissingInputArtifact: No FA map has been aggregated yet.
    """
    cwd = store.tbss_dir("FA")
    fa_maps = discover_fa_maps(store)
    if not fa_maps:
        raise MissingInputArtifact("tbss-preproc", cwd / f"*{FA_SUFFIX}")

    stats = cwd / "stats"
    outs = skeleton_outputs(store)
    md_sources = [
        store.tbss_dir("MD") / (fa.name[: -len(FA_SUFFIX)] + MD_SUFFIX) for fa in fa_maps
    ]
    md_staged = [cwd / "MD" / fa.name for fa in fa_maps]
    log.info("tbss.sessions", count=len(fa_maps), maps=[p.name for p in fa_maps])

    def _stage_md() -> None:
        for src, dst in zip(md_sources, md_staged):
            store.copy(src, dst)

    stages = [
        Stage("tbss-reset", outputs=fa_maps, action=lambda: reset_workdir(store)),
        Stage(
            "tbss-preproc",
            inputs=fa_maps,
            outputs=[cwd / "FA"],
            tool=fsl.tbss_1_preproc([p.name for p in fa_maps], cwd),
        ),
        Stage("tbss-reg", inputs=[cwd / "FA"], outputs=[cwd / "FA" / "target.nii.gz"], tool=fsl.tbss_2_reg(cwd)),
        Stage(
            "tbss-postreg",
            inputs=[cwd / "FA" / "target.nii.gz"],
            outputs=[stats / "all_FA.nii.gz", stats / "mean_FA_skeleton.nii.gz"],
            tool=fsl.tbss_3_postreg(cwd),
        ),
        Stage(
            "tbss-prestats",
            inputs=[stats / "all_FA.nii.gz", stats / "mean_FA_skeleton.nii.gz"],
            outputs=[outs["FA"], outs["mask"]],
            tool=fsl.tbss_4_prestats(PRESTATS_THRESHOLD, cwd),
        ),
        Stage("stage-md", inputs=md_sources, outputs=md_staged, action=_stage_md),
        Stage(
            "tbss-non-fa",
            inputs=[*md_staged, outs["FA"]],
            outputs=[outs["MD"]],
            tool=fsl.tbss_non_fa("MD", cwd),
        ),
    ]
    return Pipeline("tbss", stages, store)
