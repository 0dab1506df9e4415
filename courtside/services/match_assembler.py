"""
Match assembler.

Picks four waiting players and splits them into two teams. Both teams must
share the same gender signature (MM, FF or MF) and the same category signature
(BB, II or BI). Among all legal groupings the one with the fewest total games
played wins, then the one with the lowest maximum. When nothing balanced exists
the caller may allow a single fallback shape: three of one category inside one
gender bucket.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from courtside.models.schemas import Category, Gender, Player

logger = logging.getLogger(__name__)

Team = Tuple[Player, Player]
Bucket = Tuple[Gender, Category]

MB: Bucket = (Gender.MALE, Category.BEGINNERS)
MI: Bucket = (Gender.MALE, Category.INTERMEDIATE)
FB: Bucket = (Gender.FEMALE, Category.BEGINNERS)
FI: Bucket = (Gender.FEMALE, Category.INTERMEDIATE)


@dataclass(frozen=True)
class ProposedMatch:
    """Two teams proposed by the assembler."""

    team1: Team
    team2: Team
    unbalanced: bool = False

    @property
    def players(self) -> List[Player]:
        return [*self.team1, *self.team2]

    @property
    def player_ids(self) -> List[str]:
        return [p.id for p in self.players]


@dataclass
class AssemblyResult:
    match: Optional[ProposedMatch]
    remaining: List[Player] = field(default_factory=list)


# ============================================================================
# Signatures and scoring
# ============================================================================


def team_gender_signature(team: Sequence[Player]) -> str:
    """MM, FF or MF."""
    genders = {p.gender for p in team}
    if genders == {Gender.MALE}:
        return "MM"
    if genders == {Gender.FEMALE}:
        return "FF"
    return "MF"


def team_category_signature(team: Sequence[Player]) -> str:
    """BB, II or BI."""
    categories = {p.category for p in team}
    if categories == {Category.BEGINNERS}:
        return "BB"
    if categories == {Category.INTERMEDIATE}:
        return "II"
    return "BI"


def is_balanced(team1: Sequence[Player], team2: Sequence[Player]) -> bool:
    """True when both teams share gender and category signatures."""
    return (
        team_gender_signature(team1) == team_gender_signature(team2)
        and team_category_signature(team1) == team_category_signature(team2)
    )


def is_fallback_shape(team1: Sequence[Player], team2: Sequence[Player]) -> bool:
    """
    True for the one tolerated unbalanced shape: a single gender, one
    category appearing three times, and the odd player teamed with one of the
    majority against the other two.
    """
    players = [*team1, *team2]
    genders = {p.gender for p in players}
    if len(genders) != 1:
        return False
    beginners = sum(1 for p in players if p.category == Category.BEGINNERS)
    if beginners not in (1, 3):
        return False
    signatures = {team_category_signature(team1), team_category_signature(team2)}
    return "BI" in signatures and len(signatures) == 2


def match_score(players: Sequence[Player]) -> Tuple[int, int]:
    """
    Score a grouping by (total games, max games). Lower is better.

    Args:
        players: The four chosen players

    Returns:
        Tuple ordered lexicographically
    """
    games = [p.games_played for p in players]
    return sum(games), max(games)


# ============================================================================
# Candidate generation
# ============================================================================


def shuffle_within_ties(players: Sequence[Player], rng: random.Random) -> List[Player]:
    """
    Order players by games played ascending, shuffling within each games tier
    so ties are not always taken in insertion order.
    """
    tiers: Dict[int, List[Player]] = {}
    for player in players:
        tiers.setdefault(player.games_played, []).append(player)
    ordered: List[Player] = []
    for games in sorted(tiers):
        tier = list(tiers[games])
        rng.shuffle(tier)
        ordered.extend(tier)
    return ordered


def _bucketize(players: Sequence[Player]) -> Dict[Bucket, List[Player]]:
    buckets: Dict[Bucket, List[Player]] = {MB: [], MI: [], FB: [], FI: []}
    for player in players:
        buckets[(player.gender, player.category)].append(player)
    return buckets


def _balanced_candidates(b: Dict[Bucket, List[Player]]) -> Iterator[Tuple[Team, Team]]:
    # Same gender, same category
    for key in (MB, MI, FB, FI):
        group = b[key]
        if len(group) >= 4:
            yield (group[0], group[1]), (group[2], group[3])

    # Same gender, one beginner and one intermediate per team
    for beg, inter in ((MB, MI), (FB, FI)):
        if len(b[beg]) >= 2 and len(b[inter]) >= 2:
            yield (b[beg][0], b[inter][0]), (b[beg][1], b[inter][1])

    # Mixed gender, same category
    for male, female in ((MB, FB), (MI, FI)):
        if len(b[male]) >= 2 and len(b[female]) >= 2:
            yield (b[male][0], b[female][0]), (b[male][1], b[female][1])

    # Mixed gender, mixed category (categories split one per team)
    if all(b[key] for key in (MB, FI, MI, FB)):
        yield (b[MB][0], b[FI][0]), (b[MI][0], b[FB][0])
    for male, female in ((MB, FI), (MI, FB)):
        if len(b[male]) >= 2 and len(b[female]) >= 2:
            yield (b[male][0], b[female][0]), (b[male][1], b[female][1])


def _fallback_candidates(b: Dict[Bucket, List[Player]]) -> Iterator[Tuple[Team, Team]]:
    for beg, inter in ((MB, MI), (FB, FI)):
        if len(b[beg]) >= 3 and b[inter]:
            yield (b[inter][0], b[beg][0]), (b[beg][1], b[beg][2])
        if b[beg] and len(b[inter]) >= 3:
            yield (b[beg][0], b[inter][0]), (b[inter][1], b[inter][2])


def _best(candidates: Iterator[Tuple[Team, Team]]) -> Optional[Tuple[Team, Team]]:
    best = None
    best_score = None
    for team1, team2 in candidates:
        score = match_score([*team1, *team2])
        if best_score is None or score < best_score:
            best, best_score = (team1, team2), score
    return best


# ============================================================================
# Partner randomization
# ============================================================================


def randomize_partners(match: ProposedMatch, rng: random.Random) -> ProposedMatch:
    """
    Reshuffle who partners whom while keeping the gender/category pattern.
    Mixed-gender mixed-category groupings are returned unchanged.
    """
    players = match.players
    gender_sig = team_gender_signature(match.team1)

    if match.unbalanced:
        # Odd-category player keeps one random partner from the majority
        beginners = [p for p in players if p.category == Category.BEGINNERS]
        intermediates = [p for p in players if p.category == Category.INTERMEDIATE]
        odd, majority = (beginners, intermediates) if len(beginners) == 1 else (intermediates, beginners)
        majority = list(majority)
        rng.shuffle(majority)
        return ProposedMatch(
            (odd[0], majority[0]), (majority[1], majority[2]), unbalanced=True
        )

    if gender_sig in ("MM", "FF"):
        shuffled = list(players)
        rng.shuffle(shuffled)
        if team_category_signature(match.team1) == "BI":
            beginners = [p for p in shuffled if p.category == Category.BEGINNERS]
            intermediates = [p for p in shuffled if p.category == Category.INTERMEDIATE]
            return ProposedMatch(
                (beginners[0], intermediates[0]), (beginners[1], intermediates[1])
            )
        return ProposedMatch((shuffled[0], shuffled[1]), (shuffled[2], shuffled[3]))

    if team_category_signature(match.team1) == "BI":
        return match

    males = [p for p in players if p.gender == Gender.MALE]
    females = [p for p in players if p.gender == Gender.FEMALE]
    rng.shuffle(males)
    rng.shuffle(females)
    return ProposedMatch((males[0], females[0]), (males[1], females[1]))


# ============================================================================
# Public API
# ============================================================================


def assemble(
    waiting: Sequence[Player],
    allow_unbalanced_fallback: bool = False,
    randomize: bool = False,
    rng: Optional[random.Random] = None,
) -> AssemblyResult:
    """
    Propose the best legal match from the waiting players.

    Args:
        waiting: Candidate players (already excluding playing/reserved ones)
        allow_unbalanced_fallback: Permit the 3-of-one-category shape when no
            balanced grouping exists
        randomize: Reshuffle partners inside the chosen pattern
        rng: Random source; a fresh ``random.Random()`` when omitted

    Returns:
        AssemblyResult with the match (or None) and the players left over
    """
    rng = rng or random.Random()
    ordered = shuffle_within_ties(waiting, rng)
    buckets = _bucketize(ordered)

    unbalanced = False
    chosen = _best(_balanced_candidates(buckets))
    if chosen is None and allow_unbalanced_fallback:
        chosen = _best(_fallback_candidates(buckets))
        unbalanced = chosen is not None

    if chosen is None:
        return AssemblyResult(match=None, remaining=ordered)

    match = ProposedMatch(chosen[0], chosen[1], unbalanced=unbalanced)
    if randomize:
        match = randomize_partners(match, rng)
    if unbalanced:
        logger.debug(f"Assembled fallback match {match.player_ids}")

    taken = set(match.player_ids)
    return AssemblyResult(match=match, remaining=[p for p in ordered if p.id not in taken])


def assemble_many(
    waiting: Sequence[Player],
    limit: int,
    allow_unbalanced_fallback: bool = False,
    randomize: bool = False,
    rng: Optional[random.Random] = None,
) -> Tuple[List[ProposedMatch], List[Player]]:
    """Assemble up to ``limit`` matches, each from whoever the previous ones left."""
    rng = rng or random.Random()
    matches: List[ProposedMatch] = []
    remaining = list(waiting)
    while len(matches) < limit:
        result = assemble(
            remaining,
            allow_unbalanced_fallback=allow_unbalanced_fallback,
            randomize=randomize,
            rng=rng,
        )
        if result.match is None:
            break
        matches.append(result.match)
        remaining = result.remaining
    return matches, remaining
