from __future__ import annotations

from decimal import Decimal

import pytest
from factories import FIXED_NOW, make_product

from gesto_shift_sdk.models import FlowKind
from gesto_shift_sdk.quantities import (
    QuantityAggregator,
    build_ledger,
    is_valid_quantity,
    parse_quantity,
    reshape,
)


@pytest.mark.parametrize("raw", ["", "0", "12", "1.5", "1,50", ".5", "3.", "007"])
def test_quantity_grammar_accepts(raw: str) -> None:
    assert is_valid_quantity(raw)


@pytest.mark.parametrize("raw", ["1.234", "1.2.3", "-1", "1e3", "abc", "1 ", "1,,2"])
def test_quantity_grammar_rejects(raw: str) -> None:
    assert not is_valid_quantity(raw)


def test_parse_quantity_accepts_comma_and_partial_input() -> None:
    assert parse_quantity("1,5") == Decimal("1.5")
    assert parse_quantity("3.") == Decimal("3")
    assert parse_quantity(".") == Decimal("0")
    assert parse_quantity("") == Decimal("0")


def test_reshape_seeds_first_slot_from_quantity() -> None:
    shaped = reshape([make_product(quantity="4")], 3)

    assert shaped[0].counts == ["4", "0", "0"]
    assert shaped[0].quantity == "4"


def test_reshape_pads_and_truncates() -> None:
    entries = [make_product("a", counts=["1", "2"]), make_product("b", counts=["1", "2", "3"])]

    shaped = reshape(entries, 2)
    grown = reshape(shaped, 4)

    assert shaped[0].counts == ["1", "2"]
    assert shaped[1].counts == ["1", "2"]
    assert shaped[1].quantity == "3"
    assert grown[0].counts == ["1", "2", "0", "0"]
    assert grown[0].quantity == "3"


def test_reshape_is_idempotent_and_pure() -> None:
    original = make_product(counts=["1.5", "2"])

    once = reshape([original], 3)
    twice = reshape(once, 3)

    assert once == twice
    assert original.counts == ["1.5", "2"]


def test_reshape_rejects_non_positive_slot_count() -> None:
    with pytest.raises(ValueError):
        reshape([make_product()], 0)


def test_quantity_falls_back_to_first_slot_when_sum_is_zero() -> None:
    shaped = reshape([make_product(counts=["0.", "0"])], 2)

    assert shaped[0].quantity == "0."


def test_set_slot_updates_sum_and_notifies() -> None:
    aggregator = QuantityAggregator(FlowKind.FINAL, slot_count=3)
    aggregator.load([make_product("p1")])
    changed: list[str] = []
    aggregator.add_listener(changed.append)

    assert aggregator.set_slot("p1", 0, "2")
    assert aggregator.set_slot("p1", 2, "1,5")

    entry = aggregator.entries[0]
    assert entry.counts == ["2", "0", "1.5"]
    assert entry.quantity == "3.5"
    assert aggregator.total("p1") == Decimal("3.5")
    assert changed == ["p1", "p1"]


def test_rejected_input_leaves_state_untouched() -> None:
    aggregator = QuantityAggregator(FlowKind.INITIAL, slot_count=2)
    aggregator.load([make_product("p1", counts=["1", "1"])])
    changed: list[str] = []
    aggregator.add_listener(changed.append)
    before = aggregator.entries

    assert not aggregator.set_slot("p1", 0, "1.234")
    assert not aggregator.set_slot("p1", 5, "1")
    assert not aggregator.set_slot("missing", 0, "1")
    assert not aggregator.set_single("p1", "abc")

    assert aggregator.entries == before
    assert changed == []


def test_set_single_writes_quantity() -> None:
    aggregator = QuantityAggregator(FlowKind.REQUEST)
    aggregator.load([make_product("p1")])

    assert aggregator.set_single("p1", "7,25")

    entry = aggregator.entries[0]
    assert entry.quantity == "7.25"
    assert entry.counts == ["7.25"]


def test_house_ceiling_subtracts_debt() -> None:
    aggregator = QuantityAggregator(FlowKind.HOUSE)
    aggregator.load([make_product("p1", sold="5")], debt={"p1": Decimal("2")})

    assert aggregator.ceiling_for("p1") == Decimal("3")
    assert not aggregator.set_single("p1", "4")
    assert aggregator.set_single("p1", "3")


def test_debt_ceiling_subtracts_house() -> None:
    aggregator = QuantityAggregator(FlowKind.DEBT)
    aggregator.load([make_product("p1", sold="5")], house={"p1": Decimal("4")})

    assert not aggregator.set_single("p1", "2")
    assert aggregator.set_single("p1", "1")


def test_area_to_area_ceiling_is_sold() -> None:
    aggregator = QuantityAggregator(FlowKind.AREA_TO_AREA)
    aggregator.load([make_product("p1", sold="2")])

    assert not aggregator.set_single("p1", "2.5")
    assert aggregator.set_single("p1", "2")


def test_uncapped_flows_have_no_ceiling() -> None:
    aggregator = QuantityAggregator(FlowKind.FINAL, slot_count=2)
    aggregator.load([make_product("p1", sold="0")])

    assert aggregator.ceiling_for("p1") is None
    assert aggregator.set_slot("p1", 1, "99")


def test_house_flow_prefills_from_ledger() -> None:
    aggregator = QuantityAggregator(FlowKind.HOUSE)
    aggregator.load(
        [make_product("p1", sold="5", quantity="9"), make_product("p2", sold="5")],
        house={"p1": Decimal("2")},
    )

    quantities = {entry.id: entry.quantity for entry in aggregator.entries}
    assert quantities == {"p1": "2", "p2": "0"}


def test_prefill_from_ledger_replaces_quantities() -> None:
    aggregator = QuantityAggregator(FlowKind.DEBT)
    aggregator.load([make_product("p1", sold="5")])

    aggregator.prefill_from_ledger({"p1": Decimal("1.5")})

    assert aggregator.entries[0].quantity == "1.5"


def test_build_ledger_keeps_positive_quantities() -> None:
    entries = [
        make_product("p1", quantity="2"),
        make_product("p2", quantity="0"),
        make_product("p3", counts=["1", "0.5"], quantity=""),
    ]

    ledger = build_ledger(entries, now=FIXED_NOW)

    assert ledger.quantities() == {"p1": Decimal("2"), "p3": Decimal("1.5")}
    assert ledger.created_at == FIXED_NOW


def test_aggregator_reshape_keeps_totals() -> None:
    aggregator = QuantityAggregator(FlowKind.INITIAL, slot_count=2)
    aggregator.load([make_product("p1", counts=["1", "2"])])

    aggregator.reshape(3)

    assert aggregator.slot_count == 3
    assert aggregator.entries[0].counts == ["1", "2", "0"]
    assert aggregator.total("p1") == Decimal("3")


@pytest.mark.parametrize(
    "counts",
    [
        ["3", "0", "", "1.5"],
        ["", "3", "1.5", "0"],
        ["0", "", "3", "1.5"],
        ["1.5", "", "0", "3"],
    ],
)
def test_zero_slot_order_does_not_change_quantity(counts: list[str]) -> None:
    shaped = reshape([make_product(counts=counts)], 4)

    assert shaped[0].quantity == "4.5"


def test_zero_slot_order_does_not_change_total_through_edits() -> None:
    layouts = [
        [(0, "3"), (1, "0"), (2, ""), (3, "1,5")],
        [(0, ""), (1, "1.5"), (2, "0"), (3, "3")],
        [(0, "0"), (1, "3"), (2, "1.5"), (3, "")],
    ]
    results = []
    for layout in layouts:
        aggregator = QuantityAggregator(FlowKind.INITIAL, slot_count=4)
        aggregator.load([make_product("p1")])
        for slot, raw in layout:
            assert aggregator.set_slot("p1", slot, raw)
        results.append((aggregator.entries[0].quantity, aggregator.total("p1")))

    assert results == [("4.5", Decimal("4.5"))] * 3


def test_shrinking_after_growing_keeps_leading_slots() -> None:
    entries = [make_product("a", counts=["2", "1.5"]), make_product("b", counts=["0", "7"])]

    shaped = reshape(reshape(entries, 4), 2)

    assert [entry.counts for entry in shaped] == [["2", "1.5"], ["0", "7"]]
    assert [entry.quantity for entry in shaped] == ["3.5", "7"]
