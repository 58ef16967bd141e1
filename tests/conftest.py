"""Shared fixtures for mediaplan tests."""

import importlib
from pathlib import Path
from typing import Callable, List

import pytest

from mediaplan.models.catalog import CatalogEpisode, CatalogSeason, EpisodeCatalog
from mediaplan.models.core import RenameTask
from mediaplan.utils import config as cfg
from mediaplan.utils.plan_store import PlanStore


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG config and the plans dir at a temporary home.

    Reloads utils.config so CONFIG_DIR/FILE are recalculated and no test reads
    or writes the real user config.
    """
    fake_home = tmp_path / "home"
    fake_home.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(fake_home / ".config"))
    monkeypatch.setenv("MEDIAPLAN_PLANS_DIR", str(tmp_path / "plans"))
    for name in (
        "MEDIAPLAN_CONFIRMATION_TIMEOUT_MS",
        "MEDIAPLAN_RECOVERY_POLICY",
        "MEDIAPLAN_MATCHER_TITLE_FALLBACK",
    ):
        monkeypatch.delenv(name, raising=False)
    importlib.reload(cfg)
    return fake_home


@pytest.fixture
def store(tmp_path: Path) -> PlanStore:
    """A PlanStore in a fresh temporary directory."""
    return PlanStore(tmp_path / "plans")


@pytest.fixture
def media_folder(tmp_path: Path) -> Path:
    """A media folder with three episode files."""
    folder = tmp_path / "media" / "Show"
    folder.mkdir(parents=True)
    for name in ("ep1.avi", "ep2.avi", "ep3.avi"):
        (folder / name).write_text(name)
    return folder


@pytest.fixture
def catalog() -> EpisodeCatalog:
    """Two seasons: three episodes in season 1, two in season 2."""
    return EpisodeCatalog(
        title="Show",
        seasons=[
            CatalogSeason(
                season_number=1,
                episodes=[
                    CatalogEpisode(episode_number=1, name="The Pilot"),
                    CatalogEpisode(episode_number=2, name="Second Wind"),
                    CatalogEpisode(episode_number=3, name="Third Time Lucky"),
                ],
            ),
            CatalogSeason(
                season_number=2,
                episodes=[
                    CatalogEpisode(episode_number=1, name="Return"),
                    CatalogEpisode(episode_number=2, name="Finale"),
                ],
            ),
        ],
    )


@pytest.fixture
def make_tasks() -> Callable[[Path, List[str]], List[RenameTask]]:
    """Build tasks moving ``<folder>/<name>`` to ``<folder>/Season 01/<stem> renamed.mkv``."""

    def _make(folder: Path, names: List[str]) -> List[RenameTask]:
        return [
            RenameTask(
                source=str(folder / name),
                destination=str(folder / "Season 01" / f"{Path(name).stem} renamed.mkv"),
            )
            for name in names
        ]

    return _make
