"""
Tests for the routing resolution cache.
"""
from types import SimpleNamespace

from mesflow.services.routing_cache import MISSING, RoutingCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _node(node_id, parent=None):
    node = SimpleNamespace(id=node_id, parent=parent, children=[])
    if parent is not None:
        parent.children.append(node)
    node.ancestors = lambda: _chain(node)
    node.descendants = lambda: _subtree(node)
    return node


def _chain(node):
    result = []
    current = node.parent
    while current is not None:
        result.append(current)
        current = current.parent
    return result


def _subtree(node):
    result = []
    for child in node.children:
        result.append(child)
        result.extend(_subtree(child))
    return result


class TestRoutingCache:

    def test_miss_is_distinct_from_cached_none(self):
        cache = RoutingCache(ttl_seconds=60)
        assert cache.get(("bom_item", 1)) is MISSING
        cache.set(("bom_item", 1), None)
        assert cache.get(("bom_item", 1)) is None
        assert cache.stats.hits == 1
        assert cache.stats.misses == 1

    def test_entries_expire(self):
        clock = FakeClock()
        cache = RoutingCache(ttl_seconds=60, clock=clock)
        cache.set(("bom_item", 1), 42)
        clock.now += 59
        assert cache.get(("bom_item", 1)) == 42
        clock.now += 1
        assert cache.get(("bom_item", 1)) is MISSING
        assert len(cache) == 0

    def test_zero_ttl_never_expires(self):
        clock = FakeClock()
        cache = RoutingCache(ttl_seconds=0, clock=clock)
        cache.set(("order", 7), 3)
        clock.now += 10 ** 9
        assert cache.get(("order", 7)) == 3

    def test_invalidate_bom_item_covers_ancestors_and_subtree(self):
        cache = RoutingCache(ttl_seconds=60)
        root = _node(1)
        middle = _node(2, root)
        leaf = _node(3, middle)
        sibling = _node(4, root)
        for node in (root, middle, leaf, sibling):
            cache.set(("bom_item", node.id), 99)

        removed = cache.invalidate_bom_item(middle)

        assert removed == 3
        assert cache.get(("bom_item", 4)) == 99
        for node_id in (1, 2, 3):
            assert cache.get(("bom_item", node_id)) is MISSING

    def test_invalidate_order_subtree(self):
        cache = RoutingCache(ttl_seconds=60)
        child = SimpleNamespace(id=11, children=[])
        order = SimpleNamespace(id=10, children=[child])
        cache.set(("order", 10), 1)
        cache.set(("order", 11), 1)
        cache.set(("order", 12), 1)

        assert cache.invalidate_order(order) == 2
        assert len(cache) == 1

    def test_clear(self):
        cache = RoutingCache(ttl_seconds=60)
        cache.set(("bom_item", 1), 1)
        cache.set(("bom_item", 2), 2)
        assert cache.clear() == 2
        assert len(cache) == 0
