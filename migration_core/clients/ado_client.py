"""
Azure DevOps REST API client (migration destination)
Idempotent provisioning of projects, repositories, area/iteration paths, teams and work items
"""
import time
from urllib.parse import quote

from migration_core.clients.errors import NormalizedError
from migration_core.clients.pagination import ADO_CONTINUATION
from migration_core.config.credentials import DEST
from migration_core.logging.logger import get_logger
from migration_core.provisioning.ensure import ProvisioningError, ensure

logger = get_logger("ado")

API_VERSION = "7.1"
JSON_PATCH = "application/json-patch+json"

# Agile process template
DEFAULT_PROCESS_TEMPLATE_ID = "adcc42ab-9882-485e-a3ed-7678f01f66bc"

AREAS = "Areas"
ITERATIONS = "Iterations"

_OPERATION_DONE = ("succeeded", "failed", "cancelled")


def _q(value):
    return quote(str(value), safe='')


def _wiql_literal(value):
    return "'" + str(value).replace("'", "''") + "'"


class AzureDevOpsClient:
    """
    Azure DevOps REST API client.

    Features:
    - Project provisioning (asynchronous create with operation polling)
    - Git repository provisioning
    - Area / iteration path provisioning (walks and creates each level)
    - Team provisioning
    - Work item provisioning (WIQL title lookup, JSON-Patch create)

    Every ensure_* call is idempotent: re-running after a partial failure
    reuses what already exists.
    """

    def __init__(self, rest, tracker=None, api_version=API_VERSION, poll_interval=2.0, max_polls=60,
                 sleep=time.sleep):
        """
        Initialize Azure DevOps client.

        Args:
            rest: Initialized RestClient
            tracker: Optional ProvisioningTracker (created/skipped counters, gaps)
            api_version: api-version query parameter
            poll_interval: Seconds between project-creation status polls
            max_polls: Maximum number of status polls
            sleep: Sleep function (injected in tests)
        """
        self.rest = rest
        self.tracker = tracker
        self.api_version = api_version
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.sleep = sleep

    # ===== Request helpers =====

    def _params(self, extra=None):
        params = {"api-version": self.api_version}
        params.update(extra or {})
        return params

    def _get_or_none(self, endpoint, params=None):
        """
        GET a single resource.

        Returns:
            dict: Resource, or None on 404

        Raises:
            NormalizedError: Access denied or other failure
        """
        try:
            result = self.rest.call(DEST, "GET", endpoint, params=self._params(params))
        except NormalizedError as e:
            if e.status_code == 404:
                return None
            raise
        self._raise_if_denied(result)
        return result.body

    def _send(self, method, endpoint, body, content_type="application/json", params=None):
        result = self.rest.call(DEST, method, endpoint, body=body, params=self._params(params),
                                content_type=content_type)
        self._raise_if_denied(result)
        return result.body

    def _raise_if_denied(self, result):
        """Provisioning cannot continue without access; record the gap and escalate."""
        if result.is_denied:
            if self.tracker is not None:
                self.tracker.record_gap(DEST, result.error.endpoint, result.status_code)
            raise result.error

    # ===== Projects =====

    def get_project(self, name):
        """
        Get a project by name or id.

        Returns:
            dict: Project or None
        """
        return self._get_or_none(f"_apis/projects/{_q(name)}")

    def list_projects(self):
        """
        List all projects of the organization.

        Returns:
            list: Project dicts ([] when denied)
        """
        result = self.rest.fetch_all(DEST, "_apis/projects", self._params(), scheme=ADO_CONTINUATION)
        if result.denied:
            if self.tracker is not None:
                self.tracker.record_gap(DEST, "_apis/projects", None)
            return []
        return result.items

    def _create_project(self, name, description, process_template_id):
        payload = {
            "name": name,
            "description": description or "",
            "capabilities": {
                "versioncontrol": {"sourceControlType": "Git"},
                "processTemplate": {"templateTypeId": process_template_id},
            },
        }
        operation = self._send("POST", "_apis/projects", payload)
        if operation and operation.get("id"):
            self._wait_for_operation(operation["id"], f"project '{name}'")

        project = self.get_project(name)
        if project is None:
            raise ProvisioningError(f"Project '{name}' not visible after creation")
        return project

    def _wait_for_operation(self, operation_id, label):
        """
        Poll an asynchronous operation until it finishes.

        Raises:
            ProvisioningError: Operation failed, was cancelled or did not finish in time
        """
        for _ in range(self.max_polls):
            operation = self._get_or_none(f"_apis/operations/{_q(operation_id)}") or {}
            status = str(operation.get("status", "")).lower()
            if status in _OPERATION_DONE:
                if status != "succeeded":
                    detail = operation.get("resultMessage") or operation.get("detailedMessage") or status
                    raise ProvisioningError(f"Creating {label} {status}: {detail}")
                return operation
            logger.debug(f"Waiting for {label} (status: {status or 'unknown'})...")
            self.sleep(self.poll_interval)

        raise ProvisioningError(f"Creating {label} did not finish after {self.max_polls} polls")

    def ensure_project(self, name, description="", process_template_id=DEFAULT_PROCESS_TEMPLATE_ID):
        """
        Get or create a project.

        Args:
            name: Project name
            description: Project description
            process_template_id: Process template type id (default: Agile)

        Returns:
            EnsureResult: (created, project)
        """
        return ensure(
            self.get_project,
            lambda n: self._create_project(n, description, process_template_id),
            name,
            tracker=self.tracker,
            resource_type="project",
        )

    # ===== Repositories =====

    def get_repository(self, project, name):
        return self._get_or_none(f"{_q(project)}/_apis/git/repositories/{_q(name)}")

    def ensure_repository(self, project, name):
        """
        Get or create a Git repository in a project.

        Args:
            project: Project name or id
            name: Repository name

        Returns:
            EnsureResult: (created, repository)
        """
        def create(repo_name):
            project_obj = self.get_project(project)
            if project_obj is None:
                raise ProvisioningError(f"Project '{project}' does not exist")
            payload = {"name": repo_name, "project": {"id": project_obj["id"]}}
            return self._send("POST", f"{_q(project)}/_apis/git/repositories", payload)

        return ensure(
            lambda repo_name: self.get_repository(project, repo_name),
            create,
            name,
            tracker=self.tracker,
            resource_type="repository",
        )

    # ===== Area / Iteration paths =====

    def get_classification_node(self, project, structure, path_list):
        path = "/".join(_q(p) for p in path_list)
        return self._get_or_none(f"{_q(project)}/_apis/wit/classificationnodes/{structure}/{path}")

    def ensure_classification_path(self, project, structure, path_list):
        """
        Traverse an area or iteration path, creating nodes as needed.

        Args:
            project: Project name or id
            structure: AREAS or ITERATIONS
            path_list: Node names below the root (e.g., ['Team A', 'Backend'])

        Returns:
            list: EnsureResult per level (empty for an empty path)
        """
        if structure not in (AREAS, ITERATIONS):
            raise ValueError(f"Unknown classification structure: {structure}")

        results = []
        parents = []
        for name in path_list:
            name = name.strip()
            if not name:
                continue

            parent_path = list(parents)

            def lookup(node_name, parent_path=parent_path):
                return self.get_classification_node(project, structure, parent_path + [node_name])

            def create(node_name, parent_path=parent_path):
                base = f"{_q(project)}/_apis/wit/classificationnodes/{structure}"
                if parent_path:
                    base += "/" + "/".join(_q(p) for p in parent_path)
                return self._send("POST", base, {"name": node_name})

            results.append(ensure(lookup, create, name, tracker=self.tracker,
                                  resource_type=structure[:-1].lower()))
            parents.append(name)

        return results

    # ===== Teams =====

    def get_team(self, project_id, name):
        return self._get_or_none(f"_apis/projects/{_q(project_id)}/teams/{_q(name)}")

    def ensure_team(self, project_id, name, description=""):
        """
        Get or create a team.

        Returns:
            EnsureResult: (created, team)
        """
        return ensure(
            lambda team: self.get_team(project_id, team),
            lambda team: self._send("POST", f"_apis/projects/{_q(project_id)}/teams",
                                    {"name": team, "description": description}),
            name,
            tracker=self.tracker,
            resource_type="team",
        )

    # ===== Work items =====

    def find_work_item(self, project, work_item_type, title):
        """
        Find a work item by exact title and type.

        Returns:
            dict: Work item or None
        """
        query = (
            "SELECT [System.Id] FROM WorkItems "
            f"WHERE [System.TeamProject] = @project "
            f"AND [System.WorkItemType] = {_wiql_literal(work_item_type)} "
            f"AND [System.Title] = {_wiql_literal(title)}"
        )
        found = self._send("POST", f"{_q(project)}/_apis/wit/wiql", {"query": query}) or {}
        refs = found.get("workItems") or []
        if not refs:
            return None
        return self._get_or_none(f"{_q(project)}/_apis/wit/workitems/{refs[0]['id']}")

    def create_work_item(self, project, work_item_type, title, fields=None):
        """
        Create a work item with a JSON-Patch document.

        Args:
            project: Project name or id
            work_item_type: e.g. 'Task', 'User Story', 'Bug'
            title: System.Title
            fields: Extra {field_reference_name: value}

        Returns:
            dict: Created work item
        """
        patch = [{"op": "add", "path": "/fields/System.Title", "value": title}]
        for field, value in (fields or {}).items():
            patch.append({"op": "add", "path": f"/fields/{field}", "value": value})
        endpoint = f"{_q(project)}/_apis/wit/workitems/${_q(work_item_type)}"
        return self._send("POST", endpoint, patch, content_type=JSON_PATCH)

    def ensure_work_item(self, project, work_item_type, title, fields=None):
        """
        Get or create a work item identified by type and title.

        Returns:
            EnsureResult: (created, work_item)
        """
        return ensure(
            lambda t: self.find_work_item(project, work_item_type, t),
            lambda t: self.create_work_item(project, work_item_type, t, fields),
            title,
            tracker=self.tracker,
            resource_type="work item",
        )
