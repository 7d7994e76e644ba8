"""
Unit tests for migration_core.clients.gitlab_client
Tests read-only source access through a routed fake transport
"""
import os
import sys
import unittest

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from migration_core.clients.errors import NormalizedError
from migration_core.clients.gitlab_client import GitLabClient
from migration_core.tests.fakes import RoutingTransport, json_response, make_rest_client
from migration_core.tracking.provisioning_tracker import ProvisioningTracker
from migration_core.utils.hierarchy import SOURCE_ALL, SOURCE_DIRECT_ONLY

GROUPS = [
    {"id": 1, "parent_id": None, "full_path": "platform"},
    {"id": 2, "parent_id": 1, "full_path": "platform/backend"},
    {"id": 3, "parent_id": 2, "full_path": "platform/backend/services"},
]


class GitLabTestCase(unittest.TestCase):
    """Shared setup"""

    def make_client(self, routes):
        self.transport = RoutingTransport(routes)
        self.tracker = ProvisioningTracker()
        return GitLabClient(make_rest_client(self.transport), tracker=self.tracker)


class TestGroups(GitLabTestCase):
    """Test group listing and ancestor chains"""

    def test_list_groups(self):
        """Test listing groups."""
        client = self.make_client({("GET", "api/v4/groups"): json_response(200, GROUPS)})

        groups = client.list_groups()

        self.assertEqual([g["id"] for g in groups], [1, 2, 3])
        params = self.transport.requests[0].params
        self.assertEqual(params["all_available"], "true")
        self.assertEqual(params["page"], 1)

    def test_group_ancestor_chains(self):
        """Test building group ancestor chains."""
        client = self.make_client({("GET", "api/v4/groups"): json_response(200, GROUPS)})

        chains = client.group_ancestor_chains()

        self.assertEqual(chains[1].depth, 0)
        self.assertEqual([a["path"] for a in chains[3].chain], ["platform", "platform/backend"])

    def test_ancestor_chains_from_prefetched_groups(self):
        """Test ancestor chains from already fetched groups."""
        client = self.make_client({})
        chains = client.group_ancestor_chains(GROUPS)
        self.assertEqual(chains[2].depth, 1)
        self.assertEqual(self.transport.requests, [])

    def test_denied_listing_records_gap(self):
        """Test that a denied listing records a permission gap."""
        client = self.make_client({("GET", "api/v4/groups"): json_response(403, {"message": "403 Forbidden"})})

        self.assertEqual(client.list_groups(), [])
        self.assertEqual(self.tracker.get_gaps(), [("source", "api/v4/groups", None)])


class TestProjects(GitLabTestCase):
    """Test project lookups"""

    def test_get_project_by_path(self):
        """Test fetching a project by path."""
        client = self.make_client({
            ("GET", "api/v4/projects/platform%2Fapp"): json_response(200, {"id": 42, "path": "app"}),
        })
        self.assertEqual(client.get_project("platform/app")["id"], 42)

    def test_get_missing_project(self):
        """Test fetching a project that doesn't exist."""
        client = self.make_client({})
        self.assertIsNone(client.get_project(999))
        self.assertEqual(self.tracker.get_gaps(), [])

    def test_get_denied_project(self):
        """Test fetching a project that is denied."""
        client = self.make_client({("GET", "api/v4/projects/7"): json_response(403)})
        self.assertIsNone(client.get_project(7))
        self.assertEqual(self.tracker.get_gaps(), [("source", "api/v4/projects/7", 403)])

    def test_server_error_propagates(self):
        """Test that a server error propagates."""
        client = self.make_client({("GET", "api/v4/projects/7"): json_response(500, {"message": "boom"})})
        with self.assertRaises(NormalizedError):
            client.get_project(7)

    def test_list_group_projects(self):
        """Test listing the projects of a group."""
        client = self.make_client({
            ("GET", "api/v4/groups/1/projects"): json_response(200, [{"id": 10}, {"id": 11}]),
        })
        projects = client.list_group_projects(1)
        self.assertEqual(len(projects), 2)
        self.assertEqual(self.transport.requests[0].params["include_subgroups"], "true")


class TestMembers(GitLabTestCase):
    """Test membership with inherited flags"""

    def test_all_and_direct(self):
        """Test combining all and direct member listings."""
        client = self.make_client({
            ("GET", "api/v4/projects/7/members/all"): json_response(200, [{"id": 1}, {"id": 2}]),
            ("GET", "api/v4/projects/7/members"): json_response(200, [{"id": 1}]),
        })

        view = client.list_project_members(7)

        self.assertEqual(view.source, SOURCE_ALL)
        self.assertFalse(view.approximated)
        self.assertEqual({m["id"]: m["inherited"] for m in view.members}, {1: False, 2: True})

    def test_effective_listing_denied(self):
        """Test members when the full listing is denied."""
        client = self.make_client({
            ("GET", "api/v4/projects/7/members/all"): json_response(403),
            ("GET", "api/v4/projects/7/members"): json_response(200, [{"id": 1}]),
        })

        view = client.list_project_members(7)

        self.assertEqual(view.source, SOURCE_DIRECT_ONLY)
        self.assertTrue(view.approximated)
        self.assertEqual(view.members, [{"id": 1, "inherited": False}])
        self.assertEqual(self.tracker.get_gaps(), [("source", "api/v4/projects/7/members/all", None)])


class TestWorkItems(GitLabTestCase):
    """Test issues, milestones and labels"""

    def test_list_issues(self):
        """Test listing project issues."""
        client = self.make_client({
            ("GET", "api/v4/projects/7/issues"): json_response(200, [{"iid": 1, "title": "Bug"}]),
        })
        issues = client.list_issues(7, state="opened")
        self.assertEqual(issues[0]["title"], "Bug")
        params = self.transport.requests[0].params
        self.assertEqual(params["state"], "opened")
        self.assertEqual(params["sort"], "asc")

    def test_milestones_and_labels(self):
        """Test listing milestones and labels."""
        client = self.make_client({
            ("GET", "api/v4/projects/7/milestones"): json_response(200, [{"id": 1, "title": "v1"}]),
            ("GET", "api/v4/projects/7/labels"): json_response(200, [{"name": "bug"}, {"name": "ui"}]),
        })
        self.assertEqual(len(client.list_milestones(7)), 1)
        self.assertEqual([label["name"] for label in client.list_labels(7)], ["bug", "ui"])


if __name__ == '__main__':
    unittest.main()
