"""Per-user receipt session state and its stage transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .acquisition import TempDocument
from .errors import InvalidTransitionError
from .fields import FieldKey
from .schemas import CategoryOption, ExtractionResult

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    ACQUIRING = "acquiring"
    EXTRACTING = "extracting"
    OFFER_MANUAL_FALLBACK = "offer_manual_fallback"
    AWAIT_REVIEW_DECISION = "await_review_decision"
    AWAIT_FIELD_SELECTION = "await_field_selection"
    AWAIT_FIELD_VALUE = "await_field_value"
    TERMINATED = "terminated"


class Outcome(str, Enum):
    COMMITTED = "committed"
    COMMIT_FAILED = "commit_failed"
    CANCELLED = "cancelled"
    MANUAL_ENTRY = "manual_entry"
    FAILED = "failed"
    EXPIRED = "expired"


# Every stage may also drop straight to TERMINATED.
ALLOWED_TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    Stage.ACQUIRING: frozenset({Stage.EXTRACTING}),
    Stage.EXTRACTING: frozenset({Stage.OFFER_MANUAL_FALLBACK, Stage.AWAIT_REVIEW_DECISION}),
    Stage.OFFER_MANUAL_FALLBACK: frozenset(),
    Stage.AWAIT_REVIEW_DECISION: frozenset({Stage.AWAIT_FIELD_SELECTION}),
    Stage.AWAIT_FIELD_SELECTION: frozenset({Stage.AWAIT_FIELD_VALUE}),
    Stage.AWAIT_FIELD_VALUE: frozenset({Stage.AWAIT_FIELD_SELECTION}),
    Stage.TERMINATED: frozenset(),
}

CORRECTION_STAGES = frozenset({Stage.AWAIT_FIELD_SELECTION, Stage.AWAIT_FIELD_VALUE})


@dataclass(slots=True)
class Reply:
    """One outbound message; `options` renders as an ordered reply keyboard."""

    text: str
    options: list[str] | None = None
    columns: int = 1
    remove_keyboard: bool = False


@dataclass(slots=True)
class ReceiptSession:
    user_id: str
    locale: str
    source_file_ref: str | None = None
    document: TempDocument | None = None
    extraction_result: ExtractionResult | None = None
    stage: Stage = Stage.ACQUIRING
    outcome: Outcome | None = None
    pending_corrections: dict[FieldKey, str] = field(default_factory=dict)
    current_field: FieldKey | None = None
    category_choices: list[CategoryOption] | None = None

    @property
    def local_file_path(self) -> Path | None:
        return self.document.path if self.document else None

    @property
    def is_terminated(self) -> bool:
        return self.stage is Stage.TERMINATED

    def advance(self, target: Stage) -> None:
        if self.stage is Stage.TERMINATED:
            raise InvalidTransitionError("Session already terminated.")
        if target is not Stage.TERMINATED and target not in ALLOWED_TRANSITIONS[self.stage]:
            raise InvalidTransitionError(f"Cannot move from {self.stage.value} to {target.value}.")
        logger.debug("Receipt session %s: %s -> %s", self.user_id, self.stage.value, target.value)
        self.stage = target
        if target is not Stage.AWAIT_FIELD_VALUE:
            self.current_field = None

    def record_correction(self, key: FieldKey, raw_value: str) -> None:
        if self.stage not in CORRECTION_STAGES:
            raise InvalidTransitionError(f"Corrections are not accepted in stage {self.stage.value}.")
        self.pending_corrections[key] = raw_value

    def attach_document(self, document: TempDocument) -> None:
        if self.document is not None and not self.document.released:
            raise InvalidTransitionError("Session already owns a document.")
        self.document = document

    def terminate(self, outcome: Outcome) -> None:
        """Enter the terminal stage and release the temp file; safe to call twice."""
        if self.stage is not Stage.TERMINATED:
            self.advance(Stage.TERMINATED)
            self.outcome = outcome
            logger.info("Receipt session for user %s finished: %s", self.user_id, outcome.value)
        if self.document is not None:
            self.document.release()


class SessionStore:
    """In-flight receipt sessions keyed by user; one per user at a time."""

    def __init__(self) -> None:
        self._sessions: dict[str, ReceiptSession] = {}

    def get(self, user_id: str) -> ReceiptSession | None:
        return self._sessions.get(user_id)

    def put(self, session: ReceiptSession) -> None:
        previous = self._sessions.get(session.user_id)
        if previous is not None and previous is not session and not previous.is_terminated:
            previous.terminate(Outcome.CANCELLED)
        self._sessions[session.user_id] = session

    def discard(self, user_id: str) -> ReceiptSession | None:
        return self._sessions.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def drain(self) -> list[ReceiptSession]:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        return sessions
