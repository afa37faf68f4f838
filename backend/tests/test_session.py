import pytest

from receipt_bot.acquisition import TempDocument
from receipt_bot.errors import InvalidTransitionError
from receipt_bot.fields import FieldKey
from receipt_bot.session import Outcome, ReceiptSession, SessionStore, Stage


def make_session(tmp_path, user_id="7") -> ReceiptSession:
    path = tmp_path / f"receipt_{user_id}_1.jpg"
    path.write_bytes(b"x")
    session = ReceiptSession(user_id=user_id, locale="en")
    session.attach_document(TempDocument(path=path, content=b"x"))
    return session


def test_happy_path_transitions(tmp_path):
    session = make_session(tmp_path)
    for stage in (
        Stage.EXTRACTING,
        Stage.AWAIT_REVIEW_DECISION,
        Stage.AWAIT_FIELD_SELECTION,
        Stage.AWAIT_FIELD_VALUE,
        Stage.AWAIT_FIELD_SELECTION,
    ):
        session.advance(stage)
    assert session.stage is Stage.AWAIT_FIELD_SELECTION


@pytest.mark.parametrize(
    "path",
    [
        (Stage.AWAIT_REVIEW_DECISION,),
        (Stage.EXTRACTING, Stage.AWAIT_FIELD_VALUE),
        (Stage.EXTRACTING, Stage.OFFER_MANUAL_FALLBACK, Stage.AWAIT_REVIEW_DECISION),
    ],
)
def test_illegal_transitions_raise(tmp_path, path):
    session = make_session(tmp_path)
    *legal, illegal = path
    for stage in legal:
        session.advance(stage)
    with pytest.raises(InvalidTransitionError):
        session.advance(illegal)


def test_current_field_is_cleared_when_leaving_value_stage(tmp_path):
    session = make_session(tmp_path)
    session.advance(Stage.EXTRACTING)
    session.advance(Stage.AWAIT_REVIEW_DECISION)
    session.advance(Stage.AWAIT_FIELD_SELECTION)
    session.advance(Stage.AWAIT_FIELD_VALUE)
    session.current_field = FieldKey.DATE
    session.record_correction(FieldKey.DATE, "2024-01-01")

    session.advance(Stage.AWAIT_FIELD_SELECTION)

    assert session.current_field is None
    assert session.pending_corrections == {FieldKey.DATE: "2024-01-01"}


def test_corrections_rejected_outside_correction_stages(tmp_path):
    session = make_session(tmp_path)
    with pytest.raises(InvalidTransitionError):
        session.record_correction(FieldKey.TOTAL, "1")


def test_terminate_releases_document_once(tmp_path):
    session = make_session(tmp_path)
    path = session.local_file_path

    session.terminate(Outcome.CANCELLED)
    session.terminate(Outcome.COMMITTED)

    assert session.outcome is Outcome.CANCELLED
    assert session.is_terminated
    assert not path.exists()


def test_store_replaces_live_session(tmp_path):
    store = SessionStore()
    first = make_session(tmp_path)
    second = ReceiptSession(user_id=first.user_id, locale="en")

    store.put(first)
    store.put(second)

    assert store.get(first.user_id) is second
    assert first.outcome is Outcome.CANCELLED
    assert len(store) == 1
    assert store.discard(first.user_id) is second
    assert store.get(first.user_id) is None


def test_drain_empties_store(tmp_path):
    store = SessionStore()
    store.put(make_session(tmp_path, "1"))
    store.put(make_session(tmp_path, "2"))

    drained = store.drain()

    assert {session.user_id for session in drained} == {"1", "2"}
    assert len(store) == 0
