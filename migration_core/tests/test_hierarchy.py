"""
Unit tests for migration_core.utils.hierarchy
Tests ancestor chains and inherited membership resolution
"""
import os
import sys
import unittest

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from migration_core.clients.pagination import FetchResult
from migration_core.utils.hierarchy import (
    MAX_DEPTH,
    SOURCE_ALL,
    SOURCE_DENIED,
    SOURCE_DIRECT_ONLY,
    build_ancestor_chains,
    mark_inherited,
    resolve_members,
)


def group(group_id, parent_id=None, path=None):
    return {"id": group_id, "parent_id": parent_id, "full_path": path or f"g{group_id}"}


def fetched(items):
    return FetchResult(items, None, False)


DENIED = FetchResult(None, None, True)


class TestBuildAncestorChains(unittest.TestCase):
    """Test build_ancestor_chains()"""

    def test_root_has_empty_chain(self):
        """Test that a root group has an empty chain."""
        chains = build_ancestor_chains([group(1)])
        self.assertEqual(chains[1].chain, [])
        self.assertEqual(chains[1].depth, 0)

    def test_parent_child(self):
        """Test a single parent link."""
        chains = build_ancestor_chains([group(1, path="a"), group(2, 1, "a/b")])
        self.assertEqual(chains[2].chain, [{"id": 1, "path": "a"}])
        self.assertEqual(chains[2].depth, 1)

    def test_chain_is_root_first(self):
        """Test that chains are ordered root first."""
        groups = [group(3, 2, "a/b/c"), group(2, 1, "a/b"), group(1, None, "a")]
        chains = build_ancestor_chains(groups)
        self.assertEqual([a["id"] for a in chains[3].chain], [1, 2])

    def test_unknown_parent_stops(self):
        """Test that a parent outside the listing ends the chain."""
        chains = build_ancestor_chains([group(5, 99)])
        self.assertEqual(chains[5].chain, [])

    def test_self_cycle_terminates(self):
        """Test that a node listed as its own parent has no ancestors."""
        chains = build_ancestor_chains([group(1, 1)])
        self.assertEqual(chains[1].chain, [])
        self.assertEqual(chains[1].depth, 0)

    def test_two_node_cycle_terminates(self):
        """Test that a two-node cycle stops before repeating a node."""
        chains = build_ancestor_chains([group(1, 2), group(2, 1)])
        self.assertEqual(chains[1].chain, [{"id": 2, "path": "g2"}])
        self.assertEqual(chains[2].chain, [{"id": 1, "path": "g1"}])

    def test_cycle_above_node_has_no_duplicates(self):
        """Test that a cycle further up the chain lists each ancestor once."""
        chains = build_ancestor_chains([group(4, 3), group(3, 2), group(2, 3)])
        ids = [a["id"] for a in chains[4].chain]

        self.assertEqual(ids, [2, 3])
        self.assertEqual(chains[4].depth, 2)
        for node_id, chain in chains.items():
            chain_ids = [a["id"] for a in chain.chain]
            self.assertNotIn(node_id, chain_ids)
            self.assertEqual(len(chain_ids), len(set(chain_ids)))

    def test_depth_is_capped(self):
        """Test that deep chains stop at MAX_DEPTH."""
        groups = [group(1)] + [group(i, i - 1) for i in range(2, 31)]
        chains = build_ancestor_chains(groups)

        self.assertEqual(chains[30].depth, MAX_DEPTH)
        self.assertEqual(chains[30].chain[-1]["id"], 29)
        self.assertEqual(chains[21].depth, 20)
        self.assertEqual(chains[21].chain[0]["id"], 1)

    def test_nodes_without_id_ignored(self):
        """Test that nodes without an id are skipped."""
        chains = build_ancestor_chains([{"name": "x"}, group(1)])
        self.assertEqual(list(chains), [1])


class TestMarkInherited(unittest.TestCase):
    """Test mark_inherited()"""

    def test_flags_members_missing_from_direct(self):
        """Test that members missing from the direct list are inherited."""
        all_members = [{"id": 1, "username": "alice"}, {"id": 2, "username": "bob"}]
        direct = [{"id": 1, "username": "alice"}]

        marked = mark_inherited(all_members, direct)

        self.assertEqual([m["inherited"] for m in marked], [False, True])
        self.assertNotIn("inherited", all_members[0])

    def test_empty_inputs(self):
        """Test mark_inherited with no members."""
        self.assertEqual(mark_inherited(None, None), [])


class TestResolveMembers(unittest.TestCase):
    """Test resolve_members()"""

    def setUp(self):
        self.all_members = [{"id": 1}, {"id": 2}]
        self.direct = [{"id": 1}]

    def test_both_readable(self):
        """Test resolution when both listings are readable."""
        view = resolve_members(fetched(self.all_members), fetched(self.direct))
        self.assertEqual(view.source, SOURCE_ALL)
        self.assertFalse(view.approximated)
        self.assertEqual([m["inherited"] for m in view.members], [False, True])

    def test_all_denied_degrades_to_direct(self):
        """Test fallback to direct members when the full listing is denied."""
        view = resolve_members(DENIED, fetched(self.direct))
        self.assertEqual(view.source, SOURCE_DIRECT_ONLY)
        self.assertTrue(view.approximated)
        self.assertEqual(view.members, [{"id": 1, "inherited": False}])

    def test_direct_denied_leaves_inheritance_unknown(self):
        """Test that inheritance is unknown when direct members are denied."""
        view = resolve_members(fetched(self.all_members), DENIED)
        self.assertEqual(view.source, SOURCE_ALL)
        self.assertTrue(view.approximated)
        self.assertTrue(all(m["inherited"] is None for m in view.members))

    def test_both_denied(self):
        """Test resolution when both listings are denied."""
        view = resolve_members(DENIED, DENIED)
        self.assertEqual(view.source, SOURCE_DENIED)
        self.assertEqual(view.members, [])


if __name__ == '__main__':
    unittest.main()
