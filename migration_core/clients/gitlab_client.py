"""
GitLab REST API v4 client (migration source)
Read-only access to groups, projects, members, issues, milestones and labels
"""
from urllib.parse import quote

from migration_core.clients.errors import NormalizedError
from migration_core.clients.pagination import GITLAB_PAGES
from migration_core.config.credentials import SOURCE
from migration_core.logging.logger import get_logger
from migration_core.utils.hierarchy import build_ancestor_chains, resolve_members

logger = get_logger("gitlab")

API_PREFIX = "api/v4"


class GitLabClient:
    """
    GitLab REST API v4 client.

    Features:
    - Group listing with ancestor chains
    - Project lookup by path or id
    - Effective/direct membership with inherited flags
    - Issues, milestones, labels with pagination

    Denied listings return empty results and are recorded as gaps on the
    tracker instead of aborting the migration.
    """

    def __init__(self, rest, tracker=None):
        """
        Initialize GitLab client.

        Args:
            rest: Initialized RestClient
            tracker: Optional ProvisioningTracker for authorization gaps
        """
        self.rest = rest
        self.tracker = tracker

    def _endpoint(self, path):
        return f"{API_PREFIX}/{path.lstrip('/')}"

    def _fetch(self, path, query=None):
        return self.rest.fetch_all(SOURCE, self._endpoint(path), query, scheme=GITLAB_PAGES)

    def _list(self, path, query=None):
        """Fetch all pages; denial yields [] and a recorded gap."""
        result = self._fetch(path, query)
        if result.denied:
            self._record_gap(path)
            return []
        return result.items

    def _record_gap(self, path, status_code=None):
        endpoint = self.rest.redact(self._endpoint(path))
        logger.warning(f"No access to {endpoint}, skipping")
        if self.tracker is not None:
            self.tracker.record_gap(SOURCE, endpoint, status_code)

    # ===== Groups =====

    def list_groups(self):
        """
        List every group visible to the token.

        Returns:
            list: Group dicts (id, parent_id, full_path, ...)
        """
        return self._list("groups", {"all_available": "true", "order_by": "id"})

    def group_ancestor_chains(self, groups=None):
        """
        Ancestor chains for all visible groups.

        Args:
            groups: Pre-fetched group listing (fetched when omitted)

        Returns:
            dict: {group_id: AncestorChain}
        """
        if groups is None:
            groups = self.list_groups()
        return build_ancestor_chains(groups, id_key='id', parent_key='parent_id', path_key='full_path')

    # ===== Projects =====

    def get_project(self, path_or_id):
        """
        Get a project by numeric id or full path.

        Args:
            path_or_id: e.g. 42 or 'group/subgroup/project'

        Returns:
            dict: Project or None if missing or not accessible
        """
        project_ref = quote(str(path_or_id), safe='')
        try:
            result = self.rest.call(SOURCE, "GET", self._endpoint(f"projects/{project_ref}"))
        except NormalizedError as e:
            if e.status_code == 404:
                return None
            raise

        if result.is_denied:
            self._record_gap(f"projects/{project_ref}", result.status_code)
            return None
        return result.body

    def list_group_projects(self, group_id, include_subgroups=True):
        """
        List projects of a group.

        Args:
            group_id: Group id or full path
            include_subgroups: Include projects of descendant groups

        Returns:
            list: Project dicts
        """
        group_ref = quote(str(group_id), safe='')
        query = {"include_subgroups": "true" if include_subgroups else "false", "order_by": "id"}
        return self._list(f"groups/{group_ref}/projects", query)

    # ===== Members =====

    def list_project_members(self, project_id):
        """
        Project members with an 'inherited' flag.

        Uses /members/all (effective) and /members (direct). If only the
        direct listing is readable the view is direct-only and flagged as
        approximated.

        Returns:
            MembershipView: (members, source, approximated)
        """
        project_ref = quote(str(project_id), safe='')
        all_result = self._fetch(f"projects/{project_ref}/members/all")
        direct_result = self._fetch(f"projects/{project_ref}/members")

        if all_result.denied:
            self._record_gap(f"projects/{project_ref}/members/all")
        if direct_result.denied:
            self._record_gap(f"projects/{project_ref}/members")

        return resolve_members(all_result, direct_result, key='id')

    # ===== Work items =====

    def list_issues(self, project_id, state="all"):
        """
        List project issues.

        Args:
            project_id: Project id or full path
            state: 'opened', 'closed' or 'all'

        Returns:
            list: Issue dicts
        """
        project_ref = quote(str(project_id), safe='')
        return self._list(f"projects/{project_ref}/issues", {"state": state, "order_by": "created_at", "sort": "asc"})

    def list_milestones(self, project_id):
        project_ref = quote(str(project_id), safe='')
        return self._list(f"projects/{project_ref}/milestones")

    def list_labels(self, project_id):
        project_ref = quote(str(project_id), safe='')
        return self._list(f"projects/{project_ref}/labels")
