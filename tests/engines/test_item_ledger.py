"""
Tests for engines.orders.ledger - item list with a stable ghost entry.
"""

import pytest

from engines.orders.ledger import ItemLedger, next_item_number
from engines.orders.models import GhostItem, Item


def _item(item_id, quantity=1, lot="L1", number="1", **kw):
    return Item(id=item_id, quantity=quantity, lot_number=lot, item_number=number, **kw)


class TestNextItemNumber:
    @pytest.mark.parametrize("raw,expected", [
        ("1", "2"),
        ("41", "42"),
        ("12A", "13"),
        ("abc", "1"),
        ("", "1"),
        (None, "1"),
        (7, "8"),
    ])
    def test_values(self, raw, expected):
        assert next_item_number(raw) == expected


class TestAppendGhost:
    def test_empty_ledger_gets_first_ghost(self):
        ghost = ItemLedger().append_ghost()
        assert isinstance(ghost, GhostItem)
        assert ghost.item_number == "1"
        assert ghost.lot_number == "1"
        assert ghost.quantity == ""

    def test_ghost_id_is_stable_across_calls(self):
        ledger = ItemLedger([_item("a", number="3")])
        first = ledger.append_ghost()
        second = ledger.append_ghost()
        assert first.id == second.id
        assert first.item_number == "4"
        assert first.lot_number == "L1"

    def test_defaults_follow_items_but_id_stays(self):
        ledger = ItemLedger([_item("a", number="3", lot="L1")])
        ghost = ledger.append_ghost()
        moved = ledger.append_ghost([_item("a", number="9", lot="L2")])
        assert moved.id == ghost.id
        assert (moved.item_number, moved.lot_number) == ("10", "L2")

    def test_last_item_without_quantity_is_the_entry(self):
        pending = _item("b", quantity="", number="2")
        ledger = ItemLedger([_item("a"), pending])
        assert ledger.append_ghost() == pending
        assert [e.id for e in ledger.entries()] == ["a", "b"]

    def test_last_item_without_lot_uses_default_lot(self):
        ghost = ItemLedger([_item("a", lot="")], default_lot_number="7").append_ghost()
        assert ghost.lot_number == "7"


class TestCommitGhost:
    def test_commit_keeps_ghost_id_and_defaults(self):
        ledger = ItemLedger()
        ghost = ledger.append_ghost()

        items = ledger.commit_ghost(ghost.id, "quantity", 5)

        assert items == [Item(id=ghost.id, quantity=5, lot_number="1", item_number="1")]

    def test_append_edit_append_never_duplicates_ids(self):
        ledger = ItemLedger()
        ghost = ledger.append_ghost()
        ledger.commit_ghost(ghost.id, "quantity", 5)

        next_ghost = ledger.append_ghost()
        items = ledger.commit_ghost(ghost.id, "quantity", 6)

        assert next_ghost.id != ghost.id
        assert next_ghost.item_number == "2"
        assert [i.id for i in items] == [ghost.id]
        assert items[0].quantity == 6

    def test_unknown_ghost_id_is_ignored(self):
        ledger = ItemLedger([_item("a")])
        assert ledger.commit_ghost("missing", "quantity", 1) == [_item("a")]

    def test_unknown_field_raises(self):
        ledger = ItemLedger()
        ghost = ledger.append_ghost()
        with pytest.raises(ValueError):
            ledger.commit_ghost(ghost.id, "price", 1)

    def test_edit_dispatches_to_ghost_or_item(self):
        ledger = ItemLedger([_item("a")])
        ghost = ledger.append_ghost()
        ledger.edit(ghost.id, "lot_number", "L9")
        items = ledger.edit("a", "quantity", 3)
        assert [(i.id, i.quantity, i.lot_number) for i in items] == [
            ("a", 3, "L1"),
            (ghost.id, "", "L9"),
        ]


class TestRemoveItem:
    def test_remove_then_edit_is_noop(self):
        ledger = ItemLedger([_item("a"), _item("b", number="2")])
        ledger.remove_item("a")
        items = ledger.update_item("a", "quantity", 99)
        assert [i.id for i in items] == ["b"]

    def test_remove_is_idempotent(self):
        ledger = ItemLedger([_item("a")])
        assert ledger.remove_item("a") == []
        assert ledger.remove_item("a") == []

    def test_remove_by_server_id(self):
        ledger = ItemLedger([_item("local", server_id="srv-1")])
        assert ledger.remove_item("srv-1") == []

    def test_removed_ghost_cannot_be_committed(self):
        ledger = ItemLedger()
        ghost = ledger.append_ghost()
        ledger.remove_item(ghost.id)
        assert ledger.commit_ghost(ghost.id, "quantity", 1) == []
        assert ledger.append_ghost().id != ghost.id

    def test_removed_ids_stay_out_when_items_are_readopted(self):
        ledger = ItemLedger([_item("a"), _item("b", number="2")])
        ledger.remove_item("a")
        ledger.append_ghost([_item("a"), _item("b", number="2")])
        assert [i.id for i in ledger.items] == ["b"]
