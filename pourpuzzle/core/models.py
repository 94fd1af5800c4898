"""Data models supporting the pour puzzle engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, List, Tuple, Union

from .constants import EMPTY, MAX_CAPACITY, MAX_COLORS, MIN_CAPACITY, GimmickKind
from .exceptions import ConfigError


@dataclass
class Slot:
    """One unit of liquid. ``hidden`` only affects what the player sees."""

    color: int
    hidden: bool = False


@dataclass(frozen=True)
class NoGimmick:
    kind: ClassVar[GimmickKind] = GimmickKind.NONE


@dataclass(frozen=True)
class Cloth:
    """Locked until ``target`` is mono-full in some other bottle."""

    target: int
    kind: ClassVar[GimmickKind] = GimmickKind.CLOTH


@dataclass(frozen=True)
class Vine:
    """Never poured out of; filled with a single color at generation."""

    kind: ClassVar[GimmickKind] = GimmickKind.VINE


@dataclass(frozen=True)
class Bush:
    """Locked until an index neighbour is mono-full."""

    kind: ClassVar[GimmickKind] = GimmickKind.BUSH


Gimmick = Union[NoGimmick, Cloth, Vine, Bush]

NO_GIMMICK = NoGimmick()
VINE = Vine()
BUSH = Bush()


def gimmick_from_code(kind: int, param: int = 0) -> Gimmick:
    """Build a gimmick from its persisted ``kind``/``param`` pair."""

    code = GimmickKind(kind)
    if code == GimmickKind.CLOTH:
        return Cloth(target=param)
    if code == GimmickKind.VINE:
        return VINE
    if code == GimmickKind.BUSH:
        return BUSH
    return NO_GIMMICK


def gimmick_param(gimmick: Gimmick) -> int:
    return gimmick.target if isinstance(gimmick, Cloth) else 0


@dataclass
class Bottle:
    """A capacity-limited stack of slots, stored bottom to top."""

    capacity: int
    slots: List[Slot] = field(default_factory=list)
    gimmick: Gimmick = NO_GIMMICK

    @property
    def size(self) -> int:
        return len(self.slots)

    def is_full(self) -> bool:
        return len(self.slots) >= self.capacity

    def is_empty(self) -> bool:
        return not self.slots

    def free_capacity(self) -> int:
        return self.capacity - len(self.slots)

    def top_color(self) -> int:
        return self.slots[-1].color if self.slots else EMPTY

    def top_hidden(self) -> bool:
        return self.slots[-1].hidden if self.slots else False

    def top_chunk(self) -> int:
        """Count the contiguous visible same-color run at the top."""
        if not self.slots:
            return 0
        top = self.slots[-1]
        if top.color == EMPTY or top.hidden:
            return 0
        count = 0
        for slot in reversed(self.slots):
            if slot.hidden or slot.color != top.color:
                break
            count += 1
        return count

    def color_run(self) -> int:
        """Same-color run at the top, counting hidden slots."""
        if not self.slots or self.slots[-1].color == EMPTY:
            return 0
        top = self.slots[-1].color
        count = 0
        for slot in reversed(self.slots):
            if slot.color != top:
                break
            count += 1
        return count

    def is_mono_full(self) -> bool:
        if len(self.slots) != self.capacity or not self.slots:
            return False
        first = self.slots[0].color
        if first == EMPTY:
            return False
        return all(slot.color == first for slot in self.slots)

    def color_groups(self) -> int:
        """Number of maximal same-color runs, ignoring the empty sentinel."""
        groups = 0
        previous = EMPTY
        for slot in self.slots:
            if slot.color != previous:
                if slot.color != EMPTY:
                    groups += 1
                previous = slot.color
        return groups

    def hidden_count(self) -> int:
        return sum(1 for slot in self.slots if slot.hidden)

    def colors(self) -> List[int]:
        return [slot.color for slot in self.slots]

    def copy(self) -> "Bottle":
        return Bottle(
            capacity=self.capacity,
            slots=[Slot(slot.color, slot.hidden) for slot in self.slots],
            gimmick=self.gimmick,
        )


@dataclass(frozen=True)
class Move:
    """Pour ``amount`` units from the top of ``source`` onto ``target``."""

    source: int
    target: int
    amount: int = 0

    def reversed(self) -> "Move":
        return Move(self.target, self.source, self.amount)

    def to_notation(self) -> str:
        return f"{self.source}->{self.target}x{self.amount}"


@dataclass(frozen=True)
class Params:
    """Puzzle shape."""

    num_colors: int = 6
    num_bottles: int = 8
    capacity: int = 4

    @property
    def total_units(self) -> int:
        return self.num_colors * self.capacity

    def validate(self) -> None:
        if not 1 <= self.num_colors <= MAX_COLORS:
            raise ConfigError(f"num_colors must be in 1..{MAX_COLORS}, got {self.num_colors}")
        if not MIN_CAPACITY <= self.capacity <= MAX_CAPACITY:
            raise ConfigError(
                f"capacity must be in {MIN_CAPACITY}..{MAX_CAPACITY}, got {self.capacity}"
            )
        if self.num_bottles < self.num_colors:
            raise ConfigError(
                f"num_bottles ({self.num_bottles}) must be >= num_colors ({self.num_colors})"
            )


@dataclass(frozen=True)
class Locks:
    """Derived per-bottle lock flags; rebuilt by ``PuzzleState.refresh_locks``."""

    bush_locked: Tuple[bool, ...] = ()
    cloth_locked: Tuple[bool, ...] = ()

    @classmethod
    def unlocked(cls, count: int) -> "Locks":
        flags = (False,) * count
        return cls(bush_locked=flags, cloth_locked=flags)
