import pytest

from exceptions import EmptyParticipantSet, UnassignedItem, UnknownParticipant
from utils.money import Money
from utils.splits import ByItem, Equal, ItemShare, SplitBill, SplitItem, compute_item_splits, compute_shares


def inr(amount):
    return Money(amount, "INR")


def make_bill(prices, tax=0, tip=0, total=None, quantities=None):
    quantities = quantities or [1] * len(prices)
    items = [SplitItem(f"item {i}", inr(p), q) for i, (p, q) in enumerate(zip(prices, quantities))]
    return SplitBill(
        currency="INR",
        items=items,
        tax=inr(tax),
        tip=inr(tip),
        total=inr(total) if total is not None else None,
    )


def amounts(shares):
    return [amount.amount for _, amount in shares]


def test_equal_split_hundred_rupees_three_ways():
    bill = make_bill([10000])
    shares = compute_shares(bill, ["a", "b", "c"], Equal())
    assert shares == [("a", inr(3334)), ("b", inr(3333)), ("c", inr(3333))]


@pytest.mark.parametrize("participant_count", range(1, 51))
def test_equal_split_sums_exactly(participant_count):
    bill = make_bill([12345, 678], tax=999, tip=101)
    participants = [f"p{i}" for i in range(participant_count)]
    shares = compute_shares(bill, participants, Equal())
    assert sum(amounts(shares)) == bill.total.amount
    assert max(amounts(shares)) - min(amounts(shares)) <= 1


@pytest.mark.parametrize("participant_count", range(1, 51))
def test_by_item_split_sums_exactly(participant_count):
    participants = [f"p{i}" for i in range(participant_count)]
    prices = [1999, 350, 12001, 7]
    bill = make_bill(prices, tax=913, tip=500, total=sum(prices) + 913 + 500 + 1)
    # Spread items over the participants, the last item shared by everyone
    assignments = {
        0: [ItemShare(participants[0])],
        1: [ItemShare(p) for p in participants[::2]],
        2: [ItemShare(p, weight=i + 1) for i, p in enumerate(participants)],
        3: [ItemShare(p) for p in participants],
    }
    shares = compute_shares(bill, participants, ByItem(assignments))
    assert sum(amounts(shares)) == bill.total.amount
    assert all(a >= 0 for a in amounts(shares))


def test_by_item_tax_and_tip_follow_subtotals():
    bill = make_bill([3000, 1000], tax=400, tip=200)
    assignments = {0: [ItemShare("a")], 1: [ItemShare("b")]}
    shares = compute_shares(bill, ["a", "b"], ByItem(assignments))
    # a: 3000 + 300 tax + 150 tip, b: 1000 + 100 tax + 50 tip
    assert shares == [("a", inr(3450)), ("b", inr(1150))]


def test_by_item_quantity_multiplies_line_total():
    bill = make_bill([250, 100], quantities=[4, 1])
    assignments = {0: [ItemShare("a"), ItemShare("b")], 1: [ItemShare("b")]}
    shares = compute_shares(bill, ["a", "b"], ByItem(assignments))
    assert shares == [("a", inr(500)), ("b", inr(600))]


def test_by_item_rounding_difference_is_allocated():
    bill = make_bill([1000, 1000], total=1999)
    assignments = {0: [ItemShare("a")], 1: [ItemShare("b")]}
    shares = compute_shares(bill, ["a", "b"], ByItem(assignments))
    assert sum(amounts(shares)) == 1999
    assert shares == [("a", inr(999)), ("b", inr(1000))]


def test_item_splits_sum_to_line_totals():
    bill = make_bill([1001], quantities=[3])
    strategy = ByItem({0: [ItemShare("a"), ItemShare("b"), ItemShare("c", weight=2)]})
    item_splits = compute_item_splits(bill, ["a", "b", "c"], strategy)
    assert sum(amount.amount for _, amount in item_splits[0]) == 3003
    assert item_splits[0] == [("a", inr(751)), ("b", inr(750)), ("c", inr(1502))]


def test_zero_subtotal_participants_get_even_tax():
    bill = make_bill([0], tax=100)
    shares = compute_shares(bill, ["a", "b"], ByItem({0: [ItemShare("a")]}))
    assert shares == [("a", inr(50)), ("b", inr(50))]


def test_duplicate_participants_are_collapsed():
    shares = compute_shares(make_bill([900]), ["a", "b", "a"], Equal())
    assert shares == [("a", inr(450)), ("b", inr(450))]


def test_empty_participants_rejected():
    with pytest.raises(EmptyParticipantSet):
        compute_shares(make_bill([100]), [], Equal())


def test_unassigned_item_rejected():
    bill = make_bill([100, 200])
    with pytest.raises(UnassignedItem) as exc_info:
        compute_shares(bill, ["a"], ByItem({0: [ItemShare("a")]}))
    assert exc_info.value.identifiers["item_index"] == 1


def test_item_assigned_outside_bill_rejected():
    bill = make_bill([100])
    with pytest.raises(UnknownParticipant):
        compute_shares(bill, ["a"], ByItem({0: [ItemShare("z")]}))
