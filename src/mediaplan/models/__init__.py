"""Domain models for the mediaplan application."""

from mediaplan.models.catalog import CatalogEpisode, CatalogSeason, EpisodeCatalog
from mediaplan.models.confirmation import ConfirmationRequest, ConfirmationResponse
from mediaplan.models.core import (
    PlanStatus,
    RecognizedFile,
    RejectionReason,
    RenameTask,
    TaskResult,
)
from mediaplan.models.plan import (
    Plan,
    RecognizeMediaFilePlan,
    RenameFilesPlan,
    parse_plan,
)

__all__ = [
    "CatalogEpisode",
    "CatalogSeason",
    "ConfirmationRequest",
    "ConfirmationResponse",
    "EpisodeCatalog",
    "Plan",
    "PlanStatus",
    "RecognizeMediaFilePlan",
    "RecognizedFile",
    "RejectionReason",
    "RenameFilesPlan",
    "RenameTask",
    "TaskResult",
    "parse_plan",
]
