"""Select the scanner-specific pipeline variant for a session.

The scanner type is encoded as the last character of the session label
(``ses-01N`` → ``N``). Each modality recognises its own set of codes; the
decision is taken once, before the stage list is built.
"""

from __future__ import annotations

from typing import Callable, Dict, Mapping

import structlog

from harmoprep.models import Modality, PipelineVariant, Session
from harmoprep.utils.errors import UnrecognizedScannerCode

from .artifacts import ArtifactStore
from .asl import build_asl_philips, build_asl_siemens
from .dti import build_dti_pipeline
from .engine import Pipeline
from .t1 import build_t1_pipeline

log = structlog.get_logger()

Builder = Callable[[Session, ArtifactStore, PipelineVariant], Pipeline]

_ROUTES: Dict[Modality, Mapping[str, PipelineVariant]] = {
    Modality.T1: {
        "N": PipelineVariant.T1,
        "A": PipelineVariant.T1,
        "B": PipelineVariant.T1,
    },
    Modality.ASL: {
        "N": PipelineVariant.ASL_PHILIPS,
        "B": PipelineVariant.ASL_SIEMENS,
    },
    Modality.DTI: {
        "N": PipelineVariant.DTI_PHILIPS,
        "A": PipelineVariant.DTI_SIEMENS_A,
        "B": PipelineVariant.DTI_SIEMENS_B,
    },
}

BUILDERS: Dict[PipelineVariant, Builder] = {
    PipelineVariant.T1: build_t1_pipeline,
    PipelineVariant.ASL_PHILIPS: build_asl_philips,
    PipelineVariant.ASL_SIEMENS: build_asl_siemens,
    PipelineVariant.DTI_PHILIPS: build_dti_pipeline,
    PipelineVariant.DTI_SIEMENS_A: build_dti_pipeline,
    PipelineVariant.DTI_SIEMENS_B: build_dti_pipeline,
}


def recognised_codes(modality: Modality | str) -> frozenset[str]:
    return frozenset(_ROUTES[Modality(modality)])


def route(session_id: str, modality: Modality | str) -> PipelineVariant:
    """Return the pipeline variant for *session_id* and *modality*.

    Raises:
        UnrecognizedScannerCode: The trailing code is outside the modality's
            recognised set.
    """
    modality = Modality(modality)
    code = session_id[-1:] if session_id else ""
    table = _ROUTES[modality]
    try:
        return table[code]
    except KeyError:
        raise UnrecognizedScannerCode(code, modality.value, frozenset(table)) from None


def build_pipeline(session: Session, modality: Modality | str, store: ArtifactStore) -> Pipeline:
    """Route *session* and build the matching static stage list."""
    variant = route(session.ses, modality)
    log.debug("router.variant", session=str(session), modality=Modality(modality).value, variant=variant.value)
    return BUILDERS[variant](session, store, variant)
