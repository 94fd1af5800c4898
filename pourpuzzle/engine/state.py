"""Puzzle state and the pour legality rules."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ..core.constants import EMPTY
from ..core.exceptions import IllegalMoveError
from ..core.models import (
    NO_GIMMICK,
    Bottle,
    Bush,
    Cloth,
    Gimmick,
    Locks,
    Move,
    NoGimmick,
    Params,
    Slot,
    Vine,
)


_MASK64 = (1 << 64) - 1
_GOLDEN = 0x9E3779B97F4A7C15
_FNV_OFFSET = 1469598103934665603
_HIDDEN_SALT = 0xDEADBEEF
_VISIBLE_SALT = 0x12345678

ContentKey = Tuple[Tuple[int, Tuple[Tuple[int, bool], ...], int, int], ...]


def _mix(h: int, value: int) -> int:
    return (h ^ ((value + _GOLDEN + (h << 6) + (h >> 2)) & _MASK64)) & _MASK64


class PuzzleState:
    """Bottles plus the lock flags derived from their gimmicks.

    The state is mutated only through :meth:`apply`; search branches work
    on independent :meth:`clone` copies.
    """

    __slots__ = ("params", "bottles", "locks")

    def __init__(self, params: Params, bottles: List[Bottle]) -> None:
        self.params = params
        self.bottles = bottles
        self.locks = Locks.unlocked(len(bottles))
        self.refresh_locks()

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    @classmethod
    def goal(cls, params: Params) -> "PuzzleState":
        """Sorted arrangement: the first ``num_colors`` bottles are mono-full."""
        bottles = [Bottle(capacity=params.capacity) for _ in range(params.num_bottles)]
        for color in range(1, params.num_colors + 1):
            bottles[color - 1].slots = [Slot(color) for _ in range(params.capacity)]
        return cls(params, bottles)

    @classmethod
    def from_colors(
        cls,
        columns: Sequence[Sequence[int]],
        capacity: int,
        num_colors: Optional[int] = None,
        gimmicks: Optional[Sequence[Gimmick]] = None,
        hidden: Optional[Sequence[Sequence[bool]]] = None,
    ) -> "PuzzleState":
        """Build a state from bottom-to-top color lists."""
        if num_colors is None:
            num_colors = len({color for column in columns for color in column if color != EMPTY})
        params = Params(num_colors=num_colors, num_bottles=len(columns), capacity=capacity)
        bottles: List[Bottle] = []
        for index, column in enumerate(columns):
            mask = hidden[index] if hidden is not None else ()
            slots = [
                Slot(color, bool(mask[k]) if k < len(mask) else False)
                for k, color in enumerate(column)
            ]
            gimmick = gimmicks[index] if gimmicks is not None else NO_GIMMICK
            bottles.append(Bottle(capacity=capacity, slots=slots, gimmick=gimmick))
        return cls(params, bottles)

    def clone(self) -> "PuzzleState":
        copy = PuzzleState.__new__(PuzzleState)
        copy.params = self.params
        copy.bottles = [bottle.copy() for bottle in self.bottles]
        copy.locks = self.locks
        return copy

    def solve_normalized(self) -> "PuzzleState":
        """Copy with every hidden flag cleared; hidden slots never change solvability."""
        copy = self.clone()
        for bottle in copy.bottles:
            for slot in bottle.slots:
                slot.hidden = False
        return copy

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------
    def completed_colors(self) -> Set[int]:
        return {bottle.slots[0].color for bottle in self.bottles if bottle.is_mono_full()}

    def refresh_locks(self) -> None:
        count = len(self.bottles)
        completed = self.completed_colors()
        bush = [False] * count
        cloth = [False] * count
        for index, bottle in enumerate(self.bottles):
            gimmick = bottle.gimmick
            if isinstance(gimmick, Cloth):
                cloth[index] = gimmick.target not in completed
            elif isinstance(gimmick, Bush):
                left_ok = index > 0 and self.bottles[index - 1].is_mono_full()
                right_ok = index + 1 < count and self.bottles[index + 1].is_mono_full()
                bush[index] = not (left_ok or right_ok)
        self.locks = Locks(bush_locked=tuple(bush), cloth_locked=tuple(cloth))

    def is_locked(self, index: int) -> bool:
        gimmick = self.bottles[index].gimmick
        if isinstance(gimmick, Cloth):
            return self.locks.cloth_locked[index]
        if isinstance(gimmick, Bush):
            return self.locks.bush_locked[index]
        return False

    # ------------------------------------------------------------------
    # Legality
    # ------------------------------------------------------------------
    def can_pour(self, source: int, target: int, relaxed: bool = False) -> Optional[int]:
        """Return the pour amount from ``source`` to ``target``, or ``None``.

        ``relaxed`` is the generation variant used by scrambling: the
        destination top color need not match, except that a Vine bottle
        still only accepts its own color.
        """
        count = len(self.bottles)
        if source == target or not (0 <= source < count and 0 <= target < count):
            return None
        src = self.bottles[source]
        dst = self.bottles[target]
        if isinstance(src.gimmick, Vine):
            return None
        if self.is_locked(source) or self.is_locked(target):
            return None
        if not src.slots or dst.is_full():
            return None
        color = src.top_color()
        if color == EMPTY:
            return None
        dest_top = dst.top_color()
        if dest_top != EMPTY and dest_top != color:
            if not relaxed or isinstance(dst.gimmick, Vine):
                return None
        amount = min(src.top_chunk(), dst.free_capacity())
        return amount if amount > 0 else None

    def legal_moves(self, relaxed: bool = False) -> List[Move]:
        moves: List[Move] = []
        count = len(self.bottles)
        for source in range(count):
            for target in range(count):
                amount = self.can_pour(source, target, relaxed=relaxed)
                if amount is not None:
                    moves.append(Move(source, target, amount))
        return moves

    def has_any_move(self) -> bool:
        count = len(self.bottles)
        return any(
            self.can_pour(source, target) is not None
            for source in range(count)
            for target in range(count)
        )

    def apply(self, move: Move, relaxed: bool = False) -> Move:
        """Apply ``move`` and return it with the amount actually poured.

        An ``amount`` of 0 asks for the visible legal amount. An explicit
        amount may reach into hidden slots of the same color below the top,
        which is how moves planned on :meth:`solve_normalized` replay here;
        each unit is revealed as it leaves.
        """
        legal = self.can_pour(move.source, move.target, relaxed=relaxed)
        if legal is None:
            raise IllegalMoveError(f"Cannot pour {move.source} -> {move.target}")
        src = self.bottles[move.source]
        dst = self.bottles[move.target]
        if move.amount > 0:
            amount = move.amount
            limit = min(src.color_run(), dst.free_capacity())
        else:
            amount = legal
            limit = legal
        if amount > limit:
            raise IllegalMoveError(
                f"Pour {move.source} -> {move.target} of {amount} exceeds legal amount {limit}"
            )
        for _ in range(amount):
            slot = src.slots.pop()
            slot.hidden = False
            dst.slots.append(slot)
        if src.slots:
            src.slots[-1].hidden = False
        if dst.slots:
            dst.slots[-1].hidden = False
        self.refresh_locks()
        return Move(move.source, move.target, amount)

    def is_solved(self) -> bool:
        return all(not bottle.slots or bottle.is_mono_full() for bottle in self.bottles)

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------
    def heights(self) -> List[int]:
        return [bottle.size for bottle in self.bottles]

    def total_units(self) -> int:
        return sum(bottle.size for bottle in self.bottles)

    def empty_bottle_count(self) -> int:
        return sum(1 for bottle in self.bottles if bottle.is_empty())

    def mono_full_count(self) -> int:
        return sum(1 for bottle in self.bottles if bottle.is_mono_full())

    def hidden_count(self) -> int:
        return sum(bottle.hidden_count() for bottle in self.bottles)

    def gimmick_count(self) -> int:
        return sum(1 for bottle in self.bottles if not isinstance(bottle.gimmick, NoGimmick))

    def state_hash(self) -> int:
        """Cheap order-sensitive rolling hash; collisions are tolerated."""
        h = _FNV_OFFSET
        for bottle in self.bottles:
            h = _mix(h, bottle.capacity)
            for slot in bottle.slots:
                h = _mix(h, (slot.color << 1) ^ (_HIDDEN_SALT if slot.hidden else _VISIBLE_SALT))
            gimmick = bottle.gimmick
            h ^= int(gimmick.kind)
            if isinstance(gimmick, Cloth):
                h ^= (gimmick.target << 32) & _MASK64
        return h

    def content_key(self) -> ContentKey:
        """Exact canonical key, used where hash collisions must not prune."""
        return tuple(
            (
                bottle.capacity,
                tuple((slot.color, slot.hidden) for slot in bottle.slots),
                int(bottle.gimmick.kind),
                bottle.gimmick.target if isinstance(bottle.gimmick, Cloth) else 0,
            )
            for bottle in self.bottles
        )

    def __repr__(self) -> str:
        columns = ["".join(str(color) for color in bottle.colors()) or "-" for bottle in self.bottles]
        return f"PuzzleState({'|'.join(columns)})"


def replay(state: PuzzleState, moves: Iterable[Move], steps: Optional[int] = None) -> PuzzleState:
    """Return a clone of ``state`` after applying the first ``steps`` moves."""

    current = state.clone()
    for index, move in enumerate(moves):
        if steps is not None and index >= steps:
            break
        current.apply(move)
    return current
