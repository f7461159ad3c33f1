"""Split calculation for bills: equal and itemized allocation strategies."""

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Hashable, Mapping, Sequence, Union

from exceptions import EmptyParticipantSet, UnassignedItem, UnknownParticipant
from utils.money import Money, sum_money


@dataclass(frozen=True)
class SplitItem:
    name: str
    unit_price: Money
    quantity: int = 1

    @property
    def line_total(self) -> Money:
        return self.unit_price.multiply_by_quantity(self.quantity)


@dataclass(frozen=True)
class SplitBill:
    """The money side of a bill, as seen by the split engine."""
    currency: str
    items: Sequence[SplitItem]
    tax: Money
    tip: Money
    total: Money = None

    def __post_init__(self):
        if self.total is None:
            object.__setattr__(self, "total", self.subtotal + self.tax + self.tip)

    @property
    def subtotal(self) -> Money:
        return sum_money([item.line_total for item in self.items], self.currency)


@dataclass(frozen=True)
class ItemShare:
    participant: Hashable
    weight: Union[int, Fraction] = 1


@dataclass(frozen=True)
class Equal:
    """Divide the bill total evenly; earlier participants absorb the remainder."""


@dataclass(frozen=True)
class ByItem:
    """
    Itemized split.

    assignments maps an item's index in bill.items to the participants
    sharing it. Weights default to 1 (an even split of that line).
    """
    assignments: Mapping[int, Sequence[ItemShare]] = field(default_factory=dict)


SplitStrategy = Union[Equal, ByItem]


def _ordered_participants(participants: Sequence[Hashable]) -> list:
    seen = set()
    ordered = []
    for participant in participants:
        if participant not in seen:
            seen.add(participant)
            ordered.append(participant)
    if not ordered:
        raise EmptyParticipantSet()
    return ordered


def compute_item_splits(
    bill: SplitBill,
    participants: Sequence[Hashable],
    strategy: ByItem
) -> dict[int, list[tuple[Hashable, Money]]]:
    """
    Allocate each item's line total (unit price x quantity) across its assignees.

    Returns {item_index: [(participant, share), ...]} where the shares of each
    item sum exactly to its line total.
    """
    members = set(_ordered_participants(participants))
    item_splits = {}

    for idx, item in enumerate(bill.items):
        shares = strategy.assignments.get(idx) or []
        if not shares:
            raise UnassignedItem(
                f"Item '{item.name}' must have at least one participant",
                item_index=idx,
                item_name=item.name,
            )
        for share in shares:
            if share.participant not in members:
                raise UnknownParticipant(
                    f"Item '{item.name}' is assigned to someone outside the bill",
                    item_index=idx,
                    participant=str(share.participant),
                )

        amounts = item.line_total.allocate([share.weight for share in shares])
        item_splits[idx] = [(share.participant, amount) for share, amount in zip(shares, amounts)]

    return item_splits


def compute_shares(
    bill: SplitBill,
    participants: Sequence[Hashable],
    strategy: SplitStrategy
) -> list[tuple[Hashable, Money]]:
    """
    Calculate each participant's share of the bill total.

    Equal:
        total.allocate([1] * n), remainder to the earliest participants.

    ByItem:
    1. Allocate every item line across its assignees
    2. Sum each participant's item subtotal
    3. Allocate tax, then tip, proportionally to those subtotals
       (evenly if every subtotal is zero)
    4. Allocate any rounding difference between the printed total and
       subtotal + tax + tip the same way

    The returned shares are in participant order and always sum to bill.total.
    """
    ordered = _ordered_participants(participants)

    if isinstance(strategy, Equal):
        amounts = bill.total.allocate([1] * len(ordered))
        return list(zip(ordered, amounts))

    if not isinstance(strategy, ByItem):
        raise TypeError(f"Unknown split strategy: {strategy!r}")

    item_splits = compute_item_splits(bill, ordered, strategy)

    subtotals = {participant: Money.zero(bill.currency) for participant in ordered}
    for shares in item_splits.values():
        for participant, amount in shares:
            subtotals[participant] = subtotals[participant] + amount

    weights = [subtotals[participant].amount for participant in ordered]
    if not any(weights):
        weights = [1] * len(ordered)

    rounding = bill.total - (bill.subtotal + bill.tax + bill.tip)
    totals = dict(subtotals)
    for extra in (bill.tax, bill.tip, rounding):
        if extra.is_zero():
            continue
        for participant, amount in zip(ordered, extra.allocate(weights)):
            totals[participant] = totals[participant] + amount

    return [(participant, totals[participant]) for participant in ordered]
