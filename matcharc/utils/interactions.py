"""
Component interaction payloads and dispatch.

Buttons and select menus carry a custom id of the form
"kind:matchId:part...". The kind is one of a closed set (InteractionKind);
InteractionDispatcher refuses to build unless every kind has a handler, so
adding a kind without wiring it fails at start-up instead of at click time.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from matcharc.constants import InteractionConstants
from matcharc.data_models.match_status import OperationResult
from matcharc.utils.match_exceptions import InvalidPayload
from matcharc.utils.validation import parse_score, parse_slot, require_match_id


class InteractionKind(Enum):
    CHECK_IN = "checkin"
    REPORT = "report"
    CONFIRM = "confirm"
    DISPUTE = "dispute"


@dataclass(frozen=True)
class ButtonPayload:
    """A parsed custom id plus any values picked in a select menu."""
    kind: InteractionKind
    match_id: str
    parts: Tuple[str, ...] = ()
    values: Tuple[str, ...] = ()


def create_interaction_id(kind: InteractionKind, match_id: str, *parts) -> str:
    """Build a custom id, e.g. create_interaction_id(InteractionKind.CHECK_IN, mid, 1)"""
    return InteractionConstants.SEPARATOR.join([kind.value, match_id, *(str(p) for p in parts)])


def parse_interaction_id(custom_id: str, values: Optional[Sequence[str]] = None) -> Optional[ButtonPayload]:
    """
    Parse a custom id into a ButtonPayload.

    Returns None when the prefix is not one of ours (other cogs' components).

    Raises:
        InvalidIdentifier: Known prefix but malformed match id
        InvalidPayload: Known prefix but no match id at all
    """
    if not custom_id:
        return None

    prefix, _, rest = custom_id.partition(InteractionConstants.SEPARATOR)
    try:
        kind = InteractionKind(prefix)
    except ValueError:
        return None

    if not rest:
        raise InvalidPayload(f"\"{custom_id}\" has no match id.")

    match_id, *parts = rest.split(InteractionConstants.SEPARATOR)
    require_match_id(match_id)
    return ButtonPayload(kind=kind, match_id=match_id, parts=tuple(parts), values=tuple(values or ()))


def parse_report_parts(payload: ButtonPayload) -> Tuple[int, Optional[str]]:
    """
    Winner slot and optional detailed score of a report interaction.

    Accepted forms:
        report:<id>:<slot>:quick         quick-report button
        report:<id>:<slot>               plain button
        report:<id>:select + "1|2-1"     select menu value "<slot>|<score>"
    """
    parts = list(payload.parts)
    if parts and parts[0] == InteractionConstants.SELECT_REPORT:
        if not payload.values:
            raise InvalidPayload("no result was selected.")
        slot_part, _, score = payload.values[0].partition(InteractionConstants.SCORE_SEPARATOR)
        score = score or None
        parse_score(score)
        return parse_slot(slot_part), score

    if not parts:
        raise InvalidPayload("report is missing the winner slot.")
    if len(parts) > 1 and parts[1] != InteractionConstants.QUICK_REPORT:
        raise InvalidPayload(f"unknown report mode \"{parts[1]}\".")
    return parse_slot(parts[0]), None


Handler = Callable[[ButtonPayload, int], Awaitable[OperationResult]]


class InteractionDispatcher:
    """Routes parsed payloads to MatchService operations."""

    def __init__(self, match_service, extra_routes: Optional[Dict[InteractionKind, Handler]] = None):
        self.match_service = match_service
        self.routes: Dict[InteractionKind, Handler] = {
            InteractionKind.CHECK_IN: self._check_in,
            InteractionKind.REPORT: self._report,
            InteractionKind.CONFIRM: self._confirm,
            InteractionKind.DISPUTE: self._dispute,
        }
        if extra_routes:
            self.routes.update(extra_routes)

        missing: List[str] = [kind.value for kind in InteractionKind if kind not in self.routes]
        if missing:
            raise RuntimeError(f"No interaction handler for: {', '.join(missing)}")

    async def dispatch(self, payload: ButtonPayload, discord_id: int) -> OperationResult:
        return await self.routes[payload.kind](payload, discord_id)

    async def _check_in(self, payload: ButtonPayload, discord_id: int) -> OperationResult:
        if not payload.parts:
            raise InvalidPayload("check-in is missing the player slot.")
        try:
            slot = int(payload.parts[0])
        except ValueError:
            raise InvalidPayload(f"player slot \"{payload.parts[0]}\" must be 1 or 2.")
        return await self.match_service.check_in(payload.match_id, discord_id, slot)

    async def _report(self, payload: ButtonPayload, discord_id: int) -> OperationResult:
        slot, score = parse_report_parts(payload)
        return await self.match_service.report_score(payload.match_id, discord_id, slot, score)

    async def _confirm(self, payload: ButtonPayload, discord_id: int) -> OperationResult:
        return await self.match_service.resolve_confirmation(payload.match_id, discord_id, accepted=True)

    async def _dispute(self, payload: ButtonPayload, discord_id: int) -> OperationResult:
        reason = payload.values[0] if payload.values else None
        return await self.match_service.resolve_confirmation(
            payload.match_id, discord_id, accepted=False, reason=reason
        )
