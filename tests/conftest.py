"""Pytest configuration for harmoprep tests."""

import pytest

# Skip the entire suite when the scientific stack is unavailable.
pytest.importorskip("pandas")
pytest.importorskip("nibabel")

from harmoprep.pipelines.artifacts import ArtifactStore  # noqa: E402


@pytest.fixture
def store(tmp_path) -> ArtifactStore:
    """Empty raw/derivatives tree under *tmp_path*."""
    return ArtifactStore(tmp_path / "bids", tmp_path / "derivatives")


@pytest.fixture(autouse=True)
def _isolated_logs(tmp_path, monkeypatch):
    """Keep JSON log files out of the source tree."""
    monkeypatch.setenv("HARMOPREP_LOG_DIR", str(tmp_path / "logs"))
