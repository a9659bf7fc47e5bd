"""Shared fixtures for the Termhost test suite."""

from __future__ import annotations

import os
import tempfile

# Keep the app data directory (settings, logs, config) out of the real home.
os.environ.setdefault("TERMHOST_DATA_DIR", tempfile.mkdtemp(prefix="termhost-tests-"))

import pytest  # noqa: E402

from termhost.services import power_service  # noqa: E402
from termhost.services.power_service import PowerSaveBlocker  # noqa: E402


class RecordingBlocker(PowerSaveBlocker):
    """Blocker that only records what was started and stopped."""

    def __init__(self) -> None:
        super().__init__()
        self.started: list[int] = []
        self.stopped: list[int] = []

    def _engage(self, blocker_id: int, kind: str) -> None:
        self.started.append(blocker_id)

    def _release(self, blocker_id: int) -> None:
        self.stopped.append(blocker_id)


@pytest.fixture()
def blocker() -> RecordingBlocker:
    return RecordingBlocker()


@pytest.fixture(autouse=True)
def no_host_inhibitor(monkeypatch: pytest.MonkeyPatch) -> None:
    """Never inhibit suspend on the machine running the tests."""
    monkeypatch.setattr(power_service, "get_power_save_blocker", lambda: PowerSaveBlocker())


@pytest.fixture()
def sample_tree(tmp_path):
    """Return a folder containing a.txt, sub/b.txt and an ignorable .DS_Store."""
    root = tmp_path / "root"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_text("alpha", encoding="utf-8")
    (root / "sub" / "b.txt").write_text("bravo", encoding="utf-8")
    (root / ".DS_Store").write_bytes(b"\x00\x01")
    return root
