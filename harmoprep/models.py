"""
Domain-level data models shared across the pipeline, statistics and CLI layers.

The module provides:

* **`Modality`** and **`PipelineVariant`** – closed enumerations of the
  per-session pipelines and their scanner-specific stage sequences.
* **`Session`** – immutable subject/session identifier carrying the
  scanner-type code.
* **`discover_sessions`** – enumerate sessions present in the raw tree.

The module depends only on the standard library and *pydantic* so it can be
imported early, before the scientific stack is loaded.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Iterable, List

from pydantic import BaseModel, field_validator


class Modality(str, Enum):
    """Imaging modality handled by a per-session pipeline."""

    T1 = "t1"
    ASL = "asl"
    DTI = "dti"


class PipelineVariant(str, Enum):
    """Closed set of statically known stage sequences.

    The router picks exactly one member per (session, modality); the member
    never changes once the stage list is built.
    """

    T1 = "t1"
    ASL_PHILIPS = "asl-philips"
    ASL_SIEMENS = "asl-siemens"
    DTI_PHILIPS = "dti-philips"
    DTI_SIEMENS_A = "dti-siemens-a"
    DTI_SIEMENS_B = "dti-siemens-b"

    @property
    def modality(self) -> Modality:
        """Modality the variant belongs to."""
        return Modality(self.value.split("-", 1)[0])


def _norm(value: str, prefix: str) -> str:
    """Return *value* with the BIDS *prefix* added when missing."""
    value = value.strip()
    if not value:
        raise ValueError(f"empty identifier for {prefix}")
    return value if value.startswith(prefix) else f"{prefix}{value}"


class Session(BaseModel, frozen=True):
    """Subject/session identifier of one pipeline invocation.

    Attributes
    ----------
    sub
        Subject identifier, e.g. ``"sub-0001"``.
    ses
        Session identifier, e.g. ``"ses-01N"``. The trailing character is
        the scanner-type code.
    """

    sub: str
    ses: str

    @field_validator("sub")
    @classmethod
    def _sub_prefix(cls, v: str) -> str:
        return _norm(v, "sub-")

    @field_validator("ses")
    @classmethod
    def _ses_prefix(cls, v: str) -> str:
        v = _norm(v, "ses-")
        if len(v) <= len("ses-"):
            raise ValueError("session label is empty")
        return v

    @property
    def scanner_code(self) -> str:
        """Scanner-type code: the last character of the session label."""
        return self.ses[-1]

    @property
    def prefix(self) -> str:
        """Filename prefix ``<sub>_<ses>`` used by every derivative."""
        return f"{self.sub}_{self.ses}"

    def __str__(self) -> str:
        return f"{self.sub}/{self.ses}"


def discover_sessions(
    bids_dir: Path,
    *,
    filter_sub: Iterable[str] | None = None,
    filter_ses: Iterable[str] | None = None,
) -> List[Session]:
    """Discover subject/session pairs inside the raw BIDS tree.

    * If *filter_sub* is omitted, every ``sub-*`` folder is used.
    * If *filter_ses* is omitted, every ``ses-*`` folder of a subject is used;
      otherwise the given sessions are paired with each selected subject.

    Identifiers are accepted with or without the ``sub-`` / ``ses-`` prefix.

    Returns:
        Sorted, de-duplicated list of :class:`Session` objects.
    """
    if filter_sub:
        subs = [_norm(s, "sub-") for s in filter_sub]
    else:
        subs = sorted(p.name for p in bids_dir.glob("sub-*") if p.is_dir())

    sessions: set[Session] = set()
    for sub in subs:
        sub_dir = bids_dir / sub
        if filter_ses:
            sessions.update(Session(sub=sub, ses=ses) for ses in filter_ses)
            continue
        if not sub_dir.is_dir():
            continue
        sessions.update(
            Session(sub=sub, ses=p.name) for p in sub_dir.glob("ses-*") if p.is_dir()
        )

    return sorted(sessions, key=lambda s: (s.sub, s.ses))
