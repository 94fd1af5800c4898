"""Unit placement policy for the random fill.

Each unit of the shuffled color bag is placed by trying the tiers of
``PLACEMENT_TIERS`` in order, strictest first. A tier is a set of
predicates plus a search mode: ``probe`` picks random bottles a bounded
number of times, ``scan`` walks every bottle from a random offset. The
last tier only checks the height target, so every unit is always placed.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..core.models import Bottle, Bush, Cloth, Slot, Vine


@dataclass
class FillContext:
    bottles: List[Bottle]
    heights: Sequence[int]
    max_run: int
    reserved: Dict[int, int] = field(default_factory=dict)
    # Units of each color still waiting in the bag.
    pending: Dict[int, int] = field(default_factory=dict)

    @property
    def reserved_colors(self) -> Set[int]:
        return set(self.reserved.values())


Predicate = Callable[[FillContext, int, int], bool]


def has_room(ctx: FillContext, index: int, color: int) -> bool:
    return ctx.bottles[index].size < ctx.heights[index]


def within_run_limit(ctx: FillContext, index: int, color: int) -> bool:
    bottle = ctx.bottles[index]
    if ctx.max_run <= 0 or isinstance(bottle.gimmick, Vine):
        return True
    run = 0
    for slot in reversed(bottle.slots):
        if slot.color != color:
            break
        run += 1
    return run < ctx.max_run


def respects_reservation(ctx: FillContext, index: int, color: int) -> bool:
    """Reserved colors stay out of other reserved bottles."""
    owner = ctx.reserved.get(index)
    if owner is None or owner == color:
        return True
    return color not in ctx.reserved_colors


def keeps_room_for_owner(ctx: FillContext, index: int, color: int) -> bool:
    """A reserved bottle keeps room for owner units that have no other home."""
    owner = ctx.reserved.get(index)
    if owner is None or owner == color:
        return True
    elsewhere = 0
    for other, bottle in enumerate(ctx.bottles):
        if other == index or isinstance(bottle.gimmick, (Cloth, Bush, Vine)):
            continue
        if ctx.reserved.get(other, owner) != owner:
            continue
        elsewhere += max(0, ctx.heights[other] - bottle.size)
    room = ctx.heights[index] - ctx.bottles[index].size - 1
    return room + elsewhere >= ctx.pending.get(owner, 0)


def cloth_refuses_target(ctx: FillContext, index: int, color: int) -> bool:
    gimmick = ctx.bottles[index].gimmick
    return not (isinstance(gimmick, Cloth) and gimmick.target == color)


def locked_refuses_support(ctx: FillContext, index: int, color: int) -> bool:
    """Cloth and Bush bottles take no unit of a color some support must gather."""
    if not isinstance(ctx.bottles[index].gimmick, (Cloth, Bush)):
        return True
    return color not in ctx.reserved_colors


def vine_monochrome(ctx: FillContext, index: int, color: int) -> bool:
    bottle = ctx.bottles[index]
    if not isinstance(bottle.gimmick, Vine) or not bottle.slots:
        return True
    return bottle.slots[0].color == color


@dataclass(frozen=True)
class PlacementRule:
    name: str
    predicates: Tuple[Predicate, ...]
    mode: str = "scan"

    def allows(self, ctx: FillContext, index: int, color: int) -> bool:
        return all(predicate(ctx, index, color) for predicate in self.predicates)


PLACEMENT_TIERS: Tuple[PlacementRule, ...] = (
    PlacementRule(
        "strict",
        (
            has_room,
            within_run_limit,
            respects_reservation,
            keeps_room_for_owner,
            locked_refuses_support,
            cloth_refuses_target,
            vine_monochrome,
        ),
        mode="probe",
    ),
    PlacementRule(
        "ignore-run-limit",
        (
            has_room,
            respects_reservation,
            keeps_room_for_owner,
            locked_refuses_support,
            cloth_refuses_target,
            vine_monochrome,
        ),
    ),
    PlacementRule("hard-only", (has_room, vine_monochrome)),
    PlacementRule("forced", (has_room,)),
)


def choose_bottle(
    ctx: FillContext,
    color: int,
    rng: random.Random,
    probes: int = 64,
    tiers: Sequence[PlacementRule] = PLACEMENT_TIERS,
) -> Optional[Tuple[int, PlacementRule]]:
    """Return the bottle index for ``color`` and the tier that accepted it."""

    count = len(ctx.bottles)
    if count == 0:
        return None
    for rule in tiers:
        if rule.mode == "probe":
            for _ in range(probes):
                index = rng.randrange(count)
                if rule.allows(ctx, index, color):
                    return index, rule
            continue
        offset = rng.randrange(count)
        for step in range(count):
            index = (offset + step) % count
            if rule.allows(ctx, index, color):
                return index, rule
    return None


def place_unit(
    ctx: FillContext,
    color: int,
    rng: random.Random,
    probes: int = 64,
) -> Optional[PlacementRule]:
    chosen = choose_bottle(ctx, color, rng, probes)
    if chosen is None:
        return None
    index, rule = chosen
    ctx.bottles[index].slots.append(Slot(color))
    if ctx.pending.get(color, 0) > 0:
        ctx.pending[color] -= 1
    return rule
