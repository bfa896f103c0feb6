from __future__ import annotations

from pathlib import Path

from pagetranslate.pipeline.page_attempts import PageAttemptLoop
from pagetranslate.pipeline.transport import TransportAttemptLoop
from tests.fakes import (
    HttpStatusError,
    NoticeLog,
    RecordingSleeper,
    ScriptedClient,
    VALID_TABLE,
    blocked_response,
    make_job,
    text_response,
)


def _page_loop(
    client: ScriptedClient,
    sleeper: RecordingSleeper,
    notices: NoticeLog,
    *,
    page_attempts: int = 4,
    transport_attempts: int = 6,
) -> PageAttemptLoop:
    return PageAttemptLoop(
        transport=TransportAttemptLoop(
            client=client,
            max_attempts=transport_attempts,
            sleep_fn=sleeper.sleep,
            on_retry=notices,
        ),
        max_attempts=page_attempts,
        sleep_fn=sleeper.sleep,
        on_retry=notices,
    )


def test_page_loop_accepts_first_valid_table(tmp_path: Path) -> None:
    client = ScriptedClient([text_response(VALID_TABLE)])
    notices = NoticeLog()

    outcome = _page_loop(client, RecordingSleeper(), notices).run(
        job=make_job(tmp_path), prompt="p"
    )

    assert outcome.is_accepted is True
    assert outcome.attempts == 1
    assert "<<<END_OF_PAGE>>>" not in (outcome.text or "")
    assert notices.notices == []


def test_page_loop_retries_invalid_content_then_accepts(tmp_path: Path) -> None:
    client = ScriptedClient(
        [text_response("| cut | off |"), text_response(VALID_TABLE)]
    )
    sleeper = RecordingSleeper()
    notices = NoticeLog()

    outcome = _page_loop(client, sleeper, notices).run(
        job=make_job(tmp_path), prompt="p"
    )

    assert outcome.is_accepted is True
    assert outcome.attempts == 2
    assert notices.count("page") == 1
    assert "truncated" in notices.notices[0].reason
    assert 12.0 <= sleeper.delays[0] <= 14.0


def test_page_loop_exhausts_budget_with_last_reason(tmp_path: Path) -> None:
    client = ScriptedClient([text_response("no table at all")])
    sleeper = RecordingSleeper()

    outcome = _page_loop(client, sleeper, NoticeLog(), page_attempts=3).run(
        job=make_job(tmp_path), prompt="p"
    )

    assert outcome.is_accepted is False
    assert outcome.kind == "exhausted"
    assert outcome.attempts == 3
    assert outcome.error_code == "CONTENT_QUALITY"
    assert "no translation table rows found" in (outcome.reason or "")
    assert len(client.calls) == 3
    assert len(sleeper.delays) == 2


def test_page_loop_stops_on_policy_block(tmp_path: Path) -> None:
    client = ScriptedClient([blocked_response("PROHIBITED_CONTENT")])
    sleeper = RecordingSleeper()

    outcome = _page_loop(client, sleeper, NoticeLog()).run(
        job=make_job(tmp_path), prompt="p"
    )

    assert outcome.kind == "exhausted"
    assert outcome.attempts == 1
    assert outcome.error_code == "CONTENT_POLICY"
    assert "blocked" in (outcome.reason or "")
    assert len(client.calls) == 1
    assert sleeper.delays == []


def test_page_loop_escalates_exhausted_transport_tier(tmp_path: Path) -> None:
    client = ScriptedClient([HttpStatusError(503)])
    sleeper = RecordingSleeper()
    notices = NoticeLog()

    outcome = _page_loop(
        client, sleeper, notices, page_attempts=2, transport_attempts=2
    ).run(job=make_job(tmp_path), prompt="p")

    assert outcome.kind == "exhausted"
    assert outcome.reason == "transient transport error 503"
    assert outcome.attempts == 2
    assert len(client.calls) == 4
    assert notices.count("transport") == 2
    assert notices.count("page") == 1
