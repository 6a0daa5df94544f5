"""
Tests for engines.orders.subscriptions - idempotent realtime updates.
"""

from engines.orders.events import InMemoryOrderEventSource, resolve_order_event_type
from engines.orders.lines import ensure_ghost_line
from engines.orders.models import DocumentView, Item, OrderLine, OrderState, ProductRef
from engines.orders.subscriptions import (
    RealtimeSyncAdapter,
    adopt_server_items,
    apply_item_added,
    apply_item_removed,
)

TELA = ProductRef(id="p1", code="TEL", name="Tela")
HILO = ProductRef(id="p2", code="HIL", name="Hilo")


def _lines():
    return ensure_ghost_line([
        OrderLine(id="a", product=TELA, price=1000, requested_quantity=10,
                  items=(Item(id="i1", quantity=2, server_id="i1"),)),
        OrderLine(id="b", product=HILO),
    ])


def _added(item_id="i9", product="p1", quantity=4):
    return {"id": item_id, "product": {"id": product}, "currentQuantity": quantity, "lotNumber": "L2"}


class TestApplyItemAdded:
    def test_prepends_item(self):
        updated = apply_item_added(_lines(), _added())
        assert [i.id for i in updated[0].items] == ["i9", "i1"]
        assert updated[0].items[0].quantity == 4
        assert updated[0].items[0].server_id == "i9"

    def test_applying_twice_is_same_as_once(self):
        once = apply_item_added(_lines(), _added())
        twice = apply_item_added(once, _added())
        assert twice == once

    def test_echo_of_known_server_id_is_ignored(self):
        lines = _lines()
        assert apply_item_added(lines, _added(item_id="i1")) == lines

    def test_metadata_untouched(self):
        updated = apply_item_added(_lines(), _added())
        assert updated[0].price == 1000
        assert updated[0].requested_quantity == 10

    def test_unknown_product_is_noop(self):
        lines = _lines()
        assert apply_item_added(lines, _added(product="p404")) == lines

    def test_item_without_id_is_noop(self):
        payload = {"product": {"id": "p1"}, "currentQuantity": 4}
        lines = _lines()
        once = apply_item_added(lines, payload)
        assert apply_item_added(once, payload) == lines

    def test_product_given_as_bare_id(self):
        payload = {**_added(), "product": "p2"}
        updated = apply_item_added(_lines(), payload)
        assert [i.id for i in updated[1].items] == ["i9"]


class TestApplyItemRemoved:
    def test_removes_item(self):
        updated = apply_item_removed(_lines(), {"id": "i1", "product": {"id": "p1"}})
        assert updated[0].items == ()
        assert updated[0].requested_quantity == 10

    def test_absent_item_is_noop(self):
        lines = _lines()
        assert apply_item_removed(lines, {"id": "nope", "product": {"id": "p1"}}) == lines

    def test_missing_line_is_noop(self):
        lines = _lines()
        assert apply_item_removed(lines, {"id": "i1", "product": {"id": "p404"}}) == lines


class TestAdoptServerItems:
    def test_matches_by_lot_number_and_quantity(self):
        lines = [OrderLine(id="a", product=TELA, items=(
            Item(id="c1", quantity=1, lot_number="L1", item_number="1"),
            Item(id="c2", quantity=1, lot_number="L1", item_number="1"),
        ))]
        remote = [{"product": "p1", "items": [
            {"id": 501, "currentQuantity": 1, "lotNumber": "L1", "itemNumber": "1"},
            {"id": 502, "currentQuantity": "1", "lotNumber": "L1", "itemNumber": "1"},
        ]}]

        updated = adopt_server_items(lines, remote)

        assert [(i.id, i.server_id) for i in updated[0].items] == [("c1", "501"), ("c2", "502")]

    def test_known_server_ids_are_skipped(self):
        lines = [OrderLine(id="a", product=TELA, items=(Item(id="c1", quantity=1, server_id="501"),))]
        remote = [{"product": {"id": "p1"}, "items": [{"id": 501, "currentQuantity": 1}]}]
        assert adopt_server_items(lines, remote) == lines


class TestRealtimeSyncAdapter:
    def _bound(self, document_id="42"):
        source = InMemoryOrderEventSource()
        view = DocumentView(document_id=document_id, lines=_lines())
        adapter = RealtimeSyncAdapter(source, view)
        adapter.bind(document_id)
        return source, view, adapter

    def test_events_reach_bound_document(self):
        source, view, _ = self._bound()
        source.publish_item_added("42", _added())
        assert [i.id for i in view.lines[0].items] == ["i9", "i1"]

    def test_other_document_is_ignored(self):
        source, view, _ = self._bound()
        result = source.publish_item_added("43", _added())
        assert result["subscribers_notified"] == 0
        assert [i.id for i in view.lines[0].items] == ["i1"]

    def test_direct_call_for_other_document_is_ignored(self):
        _, view, adapter = self._bound()
        adapter.handle_item_removed("43", {"id": "i1", "product": {"id": "p1"}})
        assert [i.id for i in view.lines[0].items] == ["i1"]

    def test_unbind_stops_delivery(self):
        source, view, adapter = self._bound()
        adapter.unbind()
        source.publish_item_removed("42", {"id": "i1", "product": {"id": "p1"}})
        assert adapter.bound_document_id is None
        assert [i.id for i in view.lines[0].items] == ["i1"]

    def test_rebind_moves_subscriptions(self):
        source, view, adapter = self._bound()
        other = DocumentView(document_id="43", lines=_lines())
        adapter.bind("43", other)

        source.publish_item_added("42", _added())
        source.publish_item_added("43", _added())

        assert [i.id for i in view.lines[0].items] == ["i1"]
        assert [i.id for i in other.lines[0].items] == ["i9", "i1"]
        assert source.registry.documents_with_subscribers() == frozenset({"43"})

    def test_document_updated_only_moves_forward(self):
        source, view, _ = self._bound()
        source.publish_document_updated("42", {"state": "confirmed"})
        assert view.state is OrderState.CONFIRMED
        source.publish_document_updated("42", {"state": "draft"})
        assert view.state is OrderState.CONFIRMED

    def test_wire_names_resolve(self):
        source, view, _ = self._bound()
        source.publish("order:item-removed", "42", {"id": "i1", "product": {"id": "p1"}})
        assert view.lines[0].items == ()
        assert resolve_order_event_type("order:updated") == "order.document.updated"
        assert resolve_order_event_type("socket:ping") is None
