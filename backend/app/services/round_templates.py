"""
Round Templates: Template Resolver (single source of truth for pool schedules).

A template is keyed by pool size and lists rounds of (slot_a, slot_b, ref_slot)
triples, where slots are 1-based seed positions within the pool.

Stored JSON format (per tournament, ScheduleTemplate.template_data):
    [{"round": 1, "play": [[1, 4]], "ref": [2]}, ...]
``ref`` is aligned with ``play`` by index.

Resolution order: tournament template -> built-in default -> TemplateMissing.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.services.engine_errors import InvalidTemplate, TemplateMissing


@dataclass(frozen=True)
class SlotTriple:
    slot_a: int
    slot_b: int
    ref_slot: Optional[int] = None


@dataclass
class RoundDefinition:
    round_number: int
    pairings: List[SlotTriple] = field(default_factory=list)


# =============================================================================
# Built-in defaults (single-court ordering)
# =============================================================================

# (slot_a, slot_b, ref_slot) per round; round number = position + 1
_DEFAULT_POOL_4 = [
    (1, 4, 2),
    (2, 3, 1),
    (1, 3, 4),
    (2, 4, 3),
    (1, 2, 4),
    (3, 4, 2),
]

_DEFAULT_POOL_5 = [
    (2, 5, 3),
    (1, 4, 2),
    (3, 5, 1),
    (2, 4, 5),
    (1, 3, 4),
    (4, 5, 1),
    (2, 3, 4),
    (1, 5, 2),
    (3, 4, 5),
    (1, 2, 3),
]


def _single_court_rounds(triples: Sequence[tuple]) -> List[RoundDefinition]:
    return [
        RoundDefinition(round_number=idx, pairings=[SlotTriple(a, b, ref)])
        for idx, (a, b, ref) in enumerate(triples, start=1)
    ]


DEFAULT_TEMPLATES: Dict[int, List[RoundDefinition]] = {
    4: _single_court_rounds(_DEFAULT_POOL_4),
    5: _single_court_rounds(_DEFAULT_POOL_5),
}


def supported_pool_sizes(overrides: Optional[Mapping[int, Any]] = None) -> List[int]:
    sizes = set(DEFAULT_TEMPLATES.keys())
    if overrides:
        sizes.update(overrides.keys())
    return sorted(sizes)


# =============================================================================
# JSON <-> RoundDefinition
# =============================================================================

def parse_template_data(template_data: Sequence[Mapping[str, Any]]) -> List[RoundDefinition]:
    """
    Parse stored template JSON into round definitions.

    Round numbers follow list position; a stored "round" value is ignored so a
    hand-edited template can never produce gaps or duplicates.
    """
    if not isinstance(template_data, (list, tuple)):
        raise InvalidTemplate("Template must be a list of rounds.")

    rounds: List[RoundDefinition] = []
    for idx, raw in enumerate(template_data, start=1):
        if not isinstance(raw, Mapping):
            raise InvalidTemplate(f"Round {idx} must be an object with 'play' and 'ref'.")
        plays = raw.get("play") or []
        refs = raw.get("ref") or []
        pairings: List[SlotTriple] = []
        for i, pair in enumerate(plays):
            if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                raise InvalidTemplate(f"Round {idx} play #{i + 1} must be a [seedA, seedB] pair.")
            try:
                slot_a, slot_b = int(pair[0]), int(pair[1])
                ref_slot = int(refs[i]) if i < len(refs) and refs[i] is not None else None
            except (TypeError, ValueError):
                raise InvalidTemplate(f"Round {idx} play #{i + 1} has a non-integer seed.")
            pairings.append(SlotTriple(slot_a, slot_b, ref_slot))
        rounds.append(RoundDefinition(round_number=idx, pairings=pairings))
    return rounds


def template_to_data(rounds: Sequence[RoundDefinition]) -> List[Dict[str, Any]]:
    return [
        {
            "round": r.round_number,
            "play": [[p.slot_a, p.slot_b] for p in r.pairings],
            "ref": [p.ref_slot for p in r.pairings],
        }
        for r in rounds
    ]


# =============================================================================
# Validation
# =============================================================================

def template_problems(pool_size: int, rounds: Sequence[RoundDefinition]) -> List[str]:
    """
    Return a list of problems with a template (empty list = valid).

    Rules:
    - every slot (players and ref) is within 1..pool_size
    - no slot is paired with itself
    - the ref is never one of the two players it referees
    - every seed position 1..pool_size referees at least once
    """
    problems: List[str] = []
    if pool_size < 2:
        return [f"Pool size must be at least 2, got {pool_size}"]
    if not rounds or not any(r.pairings for r in rounds):
        return ["Template has no pairings"]

    refs_seen = set()
    for r in rounds:
        for p in r.pairings:
            where = f"round {r.round_number} ({p.slot_a} vs {p.slot_b})"
            for slot in (p.slot_a, p.slot_b):
                if not 1 <= slot <= pool_size:
                    problems.append(f"{where}: slot {slot} outside 1..{pool_size}")
            if p.slot_a == p.slot_b:
                problems.append(f"{where}: slot paired with itself")
            if p.ref_slot is None:
                continue
            if not 1 <= p.ref_slot <= pool_size:
                problems.append(f"{where}: ref slot {p.ref_slot} outside 1..{pool_size}")
            elif p.ref_slot in (p.slot_a, p.slot_b):
                problems.append(f"{where}: ref slot {p.ref_slot} is playing")
            refs_seen.add(p.ref_slot)

    missing_refs = [s for s in range(1, pool_size + 1) if s not in refs_seen]
    if missing_refs:
        problems.append(f"seed positions never referee: {missing_refs}")
    return problems


def validate_template(pool_size: int, rounds: Sequence[RoundDefinition]) -> None:
    problems = template_problems(pool_size, rounds)
    if problems:
        raise InvalidTemplate(
            f"Template for pool size {pool_size} is invalid: {problems[0]}",
            {"pool_size": pool_size, "problems": problems},
        )


# =============================================================================
# Resolution
# =============================================================================

def resolve_template(
    pool_size: int,
    overrides: Optional[Mapping[int, Sequence[RoundDefinition]]] = None,
) -> List[RoundDefinition]:
    """
    Return the ordered round definitions for a pool of ``pool_size`` teams.

    ``overrides`` maps pool size to tournament-specific rounds and wins over the
    built-in defaults. Raises TemplateMissing when neither has the size.
    """
    if overrides and pool_size in overrides:
        return list(overrides[pool_size])
    if pool_size in DEFAULT_TEMPLATES:
        return list(DEFAULT_TEMPLATES[pool_size])
    raise TemplateMissing(pool_size)


def has_template(pool_size: int, overrides: Optional[Mapping[int, Any]] = None) -> bool:
    return bool(overrides and pool_size in overrides) or pool_size in DEFAULT_TEMPLATES
