from unittest.mock import AsyncMock, MagicMock

import pytest

from matcharc.database.models import new_match_id
from matcharc.utils.interactions import (
    ButtonPayload, InteractionDispatcher, InteractionKind,
    create_interaction_id, parse_interaction_id, parse_report_parts
)
from matcharc.utils.match_exceptions import InvalidIdentifier, InvalidPayload

MATCH_ID = new_match_id()


def test_create_and_parse_check_in():
    custom_id = create_interaction_id(InteractionKind.CHECK_IN, MATCH_ID, 2)
    assert custom_id == f"checkin:{MATCH_ID}:2"

    payload = parse_interaction_id(custom_id)
    assert payload == ButtonPayload(kind=InteractionKind.CHECK_IN, match_id=MATCH_ID, parts=("2",))


def test_foreign_prefix_is_ignored():
    assert parse_interaction_id("leaderboard:next:2") is None
    assert parse_interaction_id("") is None


def test_known_prefix_with_bad_id_fails_before_lookup():
    with pytest.raises(InvalidIdentifier):
        parse_interaction_id("report:not-a-cuid:1")
    with pytest.raises(InvalidPayload):
        parse_interaction_id("confirm")


def test_report_parts():
    quick = parse_interaction_id(f"report:{MATCH_ID}:1:quick")
    assert parse_report_parts(quick) == (1, None)

    plain = parse_interaction_id(f"report:{MATCH_ID}:2")
    assert parse_report_parts(plain) == (2, None)

    select = parse_interaction_id(f"report:{MATCH_ID}:select", values=["2|3-1"])
    assert parse_report_parts(select) == (2, "3-1")

    select_no_score = parse_interaction_id(f"report:{MATCH_ID}:select", values=["1"])
    assert parse_report_parts(select_no_score) == (1, None)


@pytest.mark.parametrize("custom_id,values", [
    (f"report:{MATCH_ID}", None),
    (f"report:{MATCH_ID}:3", None),
    (f"report:{MATCH_ID}:1:slow", None),
    (f"report:{MATCH_ID}:select", None),
    (f"report:{MATCH_ID}:select", ["1|1-2"]),
])
def test_bad_report_parts(custom_id, values):
    payload = parse_interaction_id(custom_id, values)
    with pytest.raises(InvalidPayload):
        parse_report_parts(payload)


def test_dispatcher_covers_every_kind():
    dispatcher = InteractionDispatcher(MagicMock())
    assert set(dispatcher.routes) == set(InteractionKind)


@pytest.mark.asyncio
async def test_dispatcher_routes_to_match_service():
    match_service = MagicMock()
    match_service.check_in = AsyncMock(return_value="checked")
    match_service.report_score = AsyncMock(return_value="reported")
    match_service.resolve_confirmation = AsyncMock(return_value="resolved")
    dispatcher = InteractionDispatcher(match_service)

    assert await dispatcher.dispatch(parse_interaction_id(f"checkin:{MATCH_ID}:1"), 42) == "checked"
    match_service.check_in.assert_awaited_once_with(MATCH_ID, 42, 1)

    await dispatcher.dispatch(parse_interaction_id(f"report:{MATCH_ID}:select", ["2|2-0"]), 42)
    match_service.report_score.assert_awaited_once_with(MATCH_ID, 42, 2, "2-0")

    await dispatcher.dispatch(parse_interaction_id(f"confirm:{MATCH_ID}"), 7)
    match_service.resolve_confirmation.assert_awaited_with(MATCH_ID, 7, accepted=True)

    await dispatcher.dispatch(parse_interaction_id(f"dispute:{MATCH_ID}"), 7)
    match_service.resolve_confirmation.assert_awaited_with(MATCH_ID, 7, accepted=False, reason=None)
