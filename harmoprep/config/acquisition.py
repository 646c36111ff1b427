"""Scanner calibration tables for distortion-field estimation.

Each entry holds the phase-encoding direction pair and effective readout time
written to ``acqparams.txt`` for ``topup``/``applytopup``/``eddy``. The values
come from scanner calibration and are not tunable; row order fixes the sign
convention of the estimated field and must match the order in which the
reference pair is merged.
"""

from __future__ import annotations

from typing import Dict, Tuple

from pydantic import BaseModel

from ..models import Modality
from ..utils.errors import UnknownScannerType

Direction = Tuple[int, int, int]

PA: Direction = (0, 1, 0)
AP: Direction = (0, -1, 0)


class AcquisitionRow(BaseModel, frozen=True):
    """One ``<x> <y> <z> <readout>`` line of ``acqparams.txt``."""

    direction: Direction
    readout_time: float

    def as_line(self) -> str:
        x, y, z = self.direction
        return f"{x} {y} {z} {self.readout_time!r}"


class AcquisitionParameterSet(BaseModel, frozen=True):
    """Forward/reverse phase-encoding rows for one scanner and modality."""

    code: str
    modality: Modality
    rows: Tuple[AcquisitionRow, AcquisitionRow]

    @property
    def readout_time(self) -> float:
        return self.rows[0].readout_time

    @property
    def directions(self) -> Tuple[Direction, Direction]:
        return self.rows[0].direction, self.rows[1].direction

    def as_text(self) -> str:
        """Return the file body expected by FSL (one row per line)."""
        return "".join(f"{row.as_line()}\n" for row in self.rows)


def _pair(first: Direction, second: Direction, readout: float) -> tuple[AcquisitionRow, AcquisitionRow]:
    return (
        AcquisitionRow(direction=first, readout_time=readout),
        AcquisitionRow(direction=second, readout_time=readout),
    )


# modality -> scanner code -> rows
_CALIBRATION: Dict[Modality, Dict[str, tuple[AcquisitionRow, AcquisitionRow]]] = {
    Modality.DTI: {
        "N": _pair(PA, AP, 0.0742),
        "B": _pair(AP, PA, 0.0732608),
        "A": _pair(AP, PA, 0.0690115),
    },
    Modality.ASL: {
        "N": _pair(PA, AP, 0.0379386),
        "B": _pair(AP, PA, 0.0541496),
    },
}


def resolve(code: str, modality: Modality | str) -> AcquisitionParameterSet:
    """Return the calibrated parameter set for *code* and *modality*.

    Raises:
        UnknownScannerType: If the modality has no entry for *code* (T1 has no
            table at all).
    """
    modality = Modality(modality)
    rows = _CALIBRATION.get(modality, {}).get(code)
    if rows is None:
        raise UnknownScannerType(code, modality.value)
    return AcquisitionParameterSet(code=code, modality=modality, rows=rows)


__all__ = [
    "AcquisitionRow",
    "AcquisitionParameterSet",
    "resolve",
    "AP",
    "PA",
]
