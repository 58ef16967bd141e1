"""Episode catalog models.

The catalog is the known season/episode listing of one TV show, normally
produced by a metadata scraper. The episode matcher walks it in order, so
seasons and episodes keep the order they were given in.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CatalogEpisode(BaseModel):
    """One episode known to the catalog."""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    episode_number: int = Field(ge=1)
    name: Optional[str] = None


class CatalogSeason(BaseModel):
    """One season known to the catalog."""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    season_number: int = Field(ge=0)
    episodes: List[CatalogEpisode] = Field(default_factory=list)


class EpisodeCatalog(BaseModel):
    """Ordered seasons of a TV show."""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    title: Optional[str] = None
    seasons: List[CatalogSeason] = Field(default_factory=list)

    @property
    def episode_count(self) -> int:
        """Total number of episodes across all seasons."""
        return sum(len(season.episodes) for season in self.seasons)
