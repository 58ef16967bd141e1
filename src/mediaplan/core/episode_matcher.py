"""Episode matcher for mediaplan.

Maps a show's episode catalog onto a flat list of candidate files. Matching is
done on the file name (no extension, lower-cased, ``.``/``_`` read as spaces)
against numbering conventions, tried in a fixed order for every episode:

1. ``S01E05`` family
2. ``1x05`` family
3. CJK season + episode (``第1季第5集``, ``シーズン1 第5話``)
4. Episode-only (``E05``, ``Episode 05``, ``第5話``), season 1 only
5. Bare number (``Show - 05``, ``#05``), season 1 only
6. Episode title via rapidfuzz, only when enabled

Tiers 4 and 5 never consider a file that carries its own season token, so
``S02E05`` is not taken for season 1 episode 5. A file is claimed by at most one
episode and candidates are visited in sorted path order, so the same input
always gives the same result.
"""

import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Set, Tuple

from rapidfuzz import fuzz

from mediaplan.core.path_safety import to_posix_path
from mediaplan.models.catalog import EpisodeCatalog
from mediaplan.models.core import RecognizedFile

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset(
    {
        ".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v",
        ".mpg", ".mpeg", ".m2v", ".m1v",
        ".qt", ".3gp", ".3g2",
        ".rm", ".rmvb", ".ra",
        ".asf", ".wm",
        ".ogv", ".ogm",
        ".vob", ".divx", ".f4v", ".h264", ".mxf", ".svi", ".tp", ".trp", ".wtv",
        ".ts", ".m2ts", ".mts",
        ".swf", ".yuv", ".m4p", ".m4b", ".m4r",
    }
)  # fmt: skip

TITLE_MATCH_THRESHOLD = 90

_SEASON_TOKEN_RE = re.compile(
    r"(?<![a-z0-9])s\d+|\d+x\d+|第\s*\d+\s*季|シーズン\s*\d+|season\s*\d+"
)
_EPISODE_TOKEN_RE = re.compile(
    r"(?<![a-z0-9])(?:e|ep|episode)\s*\d+|\d+\s*[話话回集]"
)

Matcher = Callable[[str, int, int], bool]


@dataclass(frozen=True)
class EpisodeMatch:
    """One catalog episode and the video file recognized for it."""

    season: int
    episode: int
    video_file_path: str

    def to_recognized_file(self) -> RecognizedFile:
        """Convert to the RecognizedFile shape stored in recognition plans."""
        return RecognizedFile(
            season=self.season, episode=self.episode, path=self.video_file_path
        )


def is_video_file(path: str) -> bool:
    """Return True if *path* has a known video file extension."""
    return posixpath.splitext(to_posix_path(path))[1].lower() in VIDEO_EXTENSIONS


def normalize_stem(path: str) -> str:
    """Return the lower-cased file name without extension, ``._`` as spaces."""
    stem = posixpath.splitext(posixpath.basename(to_posix_path(path)))[0]
    return re.sub(r"[._]+", " ", stem).lower().strip()


def has_season_token(stem: str) -> bool:
    """Whether a normalized stem names a season on its own."""
    return _SEASON_TOKEN_RE.search(stem) is not None


def _search(pattern: str, stem: str) -> bool:
    return re.search(pattern, stem) is not None


def _match_sxxeyy(stem: str, season: int, episode: int) -> bool:
    return _search(
        rf"(?<![a-z0-9])s0*{season}[\s-]?x?[\s-]?e0*{episode}(?!\d)", stem
    )


def _match_nxm(stem: str, season: int, episode: int) -> bool:
    return _search(rf"(?<![\d])0*{season}x0*{episode}(?!\d)", stem)


def _match_cjk(stem: str, season: int, episode: int) -> bool:
    patterns = (
        rf"第\s*0*{season}\s*季\s*第\s*0*{episode}\s*[集話话]",
        rf"(?<![a-z0-9])s0*{season}\s*第\s*0*{episode}\s*[集話话]",
        rf"シーズン\s*0*{season}\s*エピソード\s*0*{episode}(?!\d)",
        rf"シーズン\s*0*{season}\s*第\s*0*{episode}\s*話",
    )
    return any(_search(p, stem) for p in patterns)


def _match_episode_only(stem: str, season: int, episode: int) -> bool:
    if season != 1 or has_season_token(stem):
        return False
    patterns = (
        rf"(?<![a-z0-9])(?:e|ep|episode)\s*0*{episode}(?!\d)",
        rf"第\s*0*{episode}\s*[話话回集]",
        rf"(?<!\d)0*{episode}\s*[話话回]",
    )
    return any(_search(p, stem) for p in patterns)


def _match_bare_number(stem: str, season: int, episode: int) -> bool:
    if season != 1 or has_season_token(stem):
        return False
    return _search(rf"(?:^|(?<=[\s#-]))0*{episode}(?=\s|$)", stem)


_TIERS: Tuple[Tuple[str, Matcher], ...] = (
    ("sxxeyy", _match_sxxeyy),
    ("nxm", _match_nxm),
    ("cjk", _match_cjk),
    ("episode-only", _match_episode_only),
    ("bare-number", _match_bare_number),
)


def _match_title(stem: str, name: Optional[str]) -> bool:
    if not name or has_season_token(stem) or _EPISODE_TOKEN_RE.search(stem):
        return False
    return fuzz.token_set_ratio(name.lower(), stem) >= TITLE_MATCH_THRESHOLD


class EpisodeMatches:
    """Restartable, lazily evaluated sequence of EpisodeMatch.

    Every iteration starts from scratch with no files claimed, so iterating
    twice yields the same matches in the same order.
    """

    def __init__(
        self,
        catalog: Optional[EpisodeCatalog],
        files: Iterable[str],
        title_fallback: bool = False,
    ) -> None:
        """Capture the catalog and the video files among *files*."""
        self.catalog = catalog
        self.title_fallback = title_fallback
        candidates = {to_posix_path(f) for f in files if f and is_video_file(f)}
        self._candidates: List[Tuple[str, str]] = [
            (path, normalize_stem(path)) for path in sorted(candidates)
        ]

    def __iter__(self) -> Iterator[EpisodeMatch]:
        if self.catalog is None or not self._candidates:
            return
        claimed: Set[str] = set()
        for season in self.catalog.seasons:
            for catalog_episode in season.episodes:
                path = self._find(
                    season.season_number,
                    catalog_episode.episode_number,
                    catalog_episode.name,
                    claimed,
                )
                if path is None:
                    continue
                claimed.add(path)
                yield EpisodeMatch(
                    season=season.season_number,
                    episode=catalog_episode.episode_number,
                    video_file_path=path,
                )

    def _find(
        self, season: int, episode: int, name: Optional[str], claimed: Set[str]
    ) -> Optional[str]:
        for tier, matcher in _TIERS:
            for path, stem in self._candidates:
                if path not in claimed and matcher(stem, season, episode):
                    logger.debug(
                        "S%02dE%02d matched %s (%s)", season, episode, path, tier
                    )
                    return path
        if self.title_fallback:
            for path, stem in self._candidates:
                if path not in claimed and _match_title(stem, name):
                    logger.debug(
                        "S%02dE%02d matched %s by title", season, episode, path
                    )
                    return path
        return None

    def to_recognized_files(self) -> List[RecognizedFile]:
        """Materialize the matches as RecognizedFile entries."""
        return [match.to_recognized_file() for match in self]


def match_episodes(
    catalog: Optional[EpisodeCatalog],
    files: Iterable[str],
    title_fallback: bool = False,
) -> EpisodeMatches:
    """Recognize season/episode numbers for candidate video files.

    Args:
        catalog: The show's episode catalog, or None when it is unknown.
        files: Candidate file paths in any order; non-video files are ignored.
        title_fallback: Also match untagged files by episode title.

    Returns:
        EpisodeMatches yielding one entry per catalog episode with a file.
        Empty when there is no catalog or no candidate file.
    """
    return EpisodeMatches(catalog, files, title_fallback=title_fallback)
