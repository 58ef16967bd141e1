"""Confirmation request/response envelopes."""

import uuid
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ASK_FOR_RENAME_FILES_CONFIRMATION = "askForRenameFilesConfirmation"
ASK_FOR_RECOGNIZE_MEDIA_FILES_CONFIRMATION = "askForRecognizeMediaFilesConfirmation"


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


class ConfirmationRequest(BaseModel):
    """A question sent to one consumer, answered at most once.

    The request is owned by the caller awaiting it; the channel only keeps the
    correlation id until the answer, the timeout or a cancellation.
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    event: str
    data: Dict[str, Any] = Field(default_factory=dict)
    client_id: Optional[str] = None
    correlation_id: str = Field(default_factory=_new_correlation_id)


class ConfirmationResponse(BaseModel):
    """A yes/no decision for a plan."""

    model_config = ConfigDict(frozen=True, extra="allow")

    confirmed: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "ConfirmationResponse":
        """Read a decision from a raw consumer payload.

        Accepts ``{"confirmed": bool}`` and the older ``{"response": "yes"}``
        shape. Anything else counts as a rejection.
        """
        if isinstance(payload, ConfirmationResponse):
            return payload
        if not isinstance(payload, Mapping):
            return cls(confirmed=False)
        if "confirmed" in payload and payload["confirmed"] is not None:
            return cls.model_validate(dict(payload))
        answer = str(payload.get("response", "")).strip().lower()
        return cls(confirmed=answer == "yes")
