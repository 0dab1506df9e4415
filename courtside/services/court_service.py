"""
Court allocation helpers.

Works out which courts are free, given the active matches, and names new courts.
"""

from typing import Dict, Iterable, List, Mapping, Optional

from courtside.models.schemas import Court, Match
from courtside.utils.constants import DEFAULT_COURT_NAME


def available_courts(matches: Iterable[Match], courts: Iterable[Court]) -> List[str]:
    """
    Court ids not bound to any active match, in court order.

    Args:
        matches: Active matches
        courts: Registered courts, in display order

    Returns:
        List of free court ids
    """
    used = {m.court_id for m in matches}
    return [court.id for court in courts if court.id not in used]


def first_available_court(matches: Iterable[Match], courts: Iterable[Court]) -> Optional[str]:
    """First free court id, or None when every court is occupied."""
    free = available_courts(matches, courts)
    return free[0] if free else None


def match_on_court(matches: Iterable[Match], court_id: str) -> Optional[Match]:
    """The active match occupying a court, if any."""
    for match in matches:
        if match.court_id == court_id:
            return match
    return None


def court_name(courts: Mapping[str, Court], court_id: str) -> str:
    """Display name for a court id, falling back to a generic label."""
    court = courts.get(court_id)
    return court.name if court else "Court"


def default_court_name(courts: Dict[str, Court]) -> str:
    """Name for a court added without one: its position, skipping names in use."""
    taken = {court.name for court in courts.values()}
    number = len(courts) + 1
    while DEFAULT_COURT_NAME.format(number=number) in taken:
        number += 1
    return DEFAULT_COURT_NAME.format(number=number)
