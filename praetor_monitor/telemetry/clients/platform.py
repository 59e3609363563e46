"""
Automation Platform Client for Praetor Monitor.

This module provides the async JSON-over-HTTP client for the automation
platform API:
- Job listing, launching and run event retrieval
- Project, job template and inventory catalogs
- Host and group management within inventories

Transport failures and non-success statuses are raised as PlatformError
subclasses. Malformed or empty response bodies on list endpoints degrade
to empty collections so a polling loop never crashes on them.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from praetor_monitor.core.exceptions import (
    PlatformError,
    PlatformHTTPError,
    PlatformTransportError,
)
from praetor_monitor.telemetry.schemas import (
    Group,
    GroupCreate,
    GroupMembershipRequest,
    Host,
    HostCreate,
    Inventory,
    InventoryCreate,
    Job,
    JobEvent,
    JobLaunchRequest,
    JobTemplate,
    JobTemplateWrite,
    Project,
    ProjectCreate,
    ProjectSyncResult,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

API_PREFIX = "/api/v1"


class PlatformClient:
    """
    Async automation platform HTTP API client.

    Features:
    - Connection pooling through a shared httpx.AsyncClient
    - Bearer token authentication
    - Per-request timeout so a stalled call resolves to an error
    - Tolerant collection parsing (bare arrays or ``{items: [...]}``)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize platform client.

        Args:
            base_url: Platform server URL
            token: Optional bearer token
            timeout_seconds: Request timeout
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._transport = transport

        # HTTP client will be created on first use
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(
        cls,
        settings,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "PlatformClient":
        """Build a client from the ``platform`` settings section."""
        return cls(
            base_url=base_url or settings.platform.base_url,
            token=settings.platform.token or None,
            timeout_seconds=settings.platform.timeout_seconds,
            transport=transport,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"

            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout_seconds),
                follow_redirects=True,
                transport=self._transport,
            )

        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "PlatformClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ==========================================================================
    # Request plumbing
    # ==========================================================================

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[BaseModel] = None,
        accept_envelope: bool = False,
    ) -> Any:
        """
        Make an HTTP request to the platform and decode the JSON body.

        Args:
            method: HTTP method
            endpoint: Path below the API prefix
            payload: Optional request body
            accept_envelope: Return a ``{success: ...}`` body even when the
                status code is an error

        Returns:
            Decoded JSON body, or None when the body is empty or malformed

        Raises:
            PlatformTransportError: network failure or timeout
            PlatformHTTPError: non-success status code
        """
        client = await self._get_client()
        url = f"{API_PREFIX}{endpoint}"
        body = payload.model_dump(mode="json", exclude_none=True) if payload is not None else None

        try:
            response = await client.request(method, url, json=body)
        except httpx.TimeoutException as e:
            logger.warning("platform_request_timeout", method=method, endpoint=url)
            raise PlatformTransportError(f"{method} {url} timed out") from e
        except httpx.RequestError as e:
            logger.warning("platform_request_error", method=method, endpoint=url, error=str(e))
            raise PlatformTransportError(f"{method} {url} failed: {e}") from e

        data = self._decode(response, url)

        if response.is_error:
            if accept_envelope and isinstance(data, dict) and "success" in data:
                return data
            detail = ""
            if isinstance(data, dict):
                detail = str(data.get("error") or data.get("status") or "")
            logger.warning(
                "platform_http_error",
                method=method,
                endpoint=url,
                status_code=response.status_code,
            )
            raise PlatformHTTPError(response.status_code, detail)

        return data

    @staticmethod
    def _decode(response: httpx.Response, url: str) -> Any:
        """Decode a JSON body, returning None for empty or malformed bodies."""
        if not response.content or not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning(
                "platform_malformed_body",
                endpoint=url,
                status_code=response.status_code,
                size=len(response.content),
            )
            return None

    @staticmethod
    def _collection(data: Any, model: Type[ModelT], endpoint: str) -> List[ModelT]:
        """
        Parse a list response into models.

        Accepts a bare array or a paginated ``{items: [...]}`` envelope.
        Anything else degrades to an empty list; items that fail validation
        are skipped.
        """
        if isinstance(data, dict):
            data = data.get("items")

        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("platform_unexpected_collection", endpoint=endpoint, kind=type(data).__name__)
            return []

        items: List[ModelT] = []
        for raw in data:
            try:
                items.append(model.model_validate(raw))
            except ValidationError as e:
                logger.warning(
                    "platform_invalid_item",
                    endpoint=endpoint,
                    model=model.__name__,
                    errors=e.error_count(),
                )
        return items

    @staticmethod
    def _entity(data: Any, model: Type[ModelT], endpoint: str) -> ModelT:
        """Parse a single-entity response."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise PlatformError(f"Malformed {model.__name__} returned by {endpoint}") from e

    # ==========================================================================
    # Jobs
    # ==========================================================================

    async def list_jobs(self) -> List[Job]:
        """List jobs, newest first as ordered by the server."""
        data = await self._request("GET", "/jobs")
        return self._collection(data, Job, "/jobs")

    async def list_run_events(self, run_id: str) -> List[JobEvent]:
        """Get the full current event list for a run."""
        endpoint = f"/jobs/runs/{run_id}/events"
        data = await self._request("GET", endpoint)
        return self._collection(data, JobEvent, endpoint)

    async def launch_job(self, request: JobLaunchRequest) -> Job:
        """Launch a job. The server answers with at least ``{id, status}``."""
        data = await self._request("POST", "/jobs", payload=request)
        job = self._entity(data, Job, "/jobs")
        if not job.name:
            job = job.model_copy(update={"name": request.name})
        return job

    # ==========================================================================
    # Projects
    # ==========================================================================

    async def list_projects(self) -> List[Project]:
        data = await self._request("GET", "/projects")
        return self._collection(data, Project, "/projects")

    async def create_project(self, request: ProjectCreate) -> Project:
        data = await self._request("POST", "/projects", payload=request)
        return self._entity(data, Project, "/projects")

    async def sync_project(self, project_id: int) -> ProjectSyncResult:
        """
        Ask the platform to sync a project from SCM.

        A ``{success: false, error}`` envelope is returned as-is, even when
        it arrives with an error status code.
        """
        endpoint = f"/projects/{project_id}/sync"
        data = await self._request("POST", endpoint, accept_envelope=True)
        if data is None:
            raise PlatformError(f"Empty response from {endpoint}")
        return self._entity(data, ProjectSyncResult, endpoint)

    # ==========================================================================
    # Job templates
    # ==========================================================================

    async def list_job_templates(self) -> List[JobTemplate]:
        data = await self._request("GET", "/job-templates")
        return self._collection(data, JobTemplate, "/job-templates")

    async def create_job_template(self, request: JobTemplateWrite) -> JobTemplate:
        data = await self._request("POST", "/job-templates", payload=request)
        return self._entity(data, JobTemplate, "/job-templates")

    async def update_job_template(self, template_id: int, request: JobTemplateWrite) -> JobTemplate:
        endpoint = f"/job-templates/{template_id}"
        data = await self._request("PUT", endpoint, payload=request)
        return self._entity(data, JobTemplate, endpoint)

    # ==========================================================================
    # Inventories, hosts and groups
    # ==========================================================================

    async def list_inventories(self) -> List[Inventory]:
        data = await self._request("GET", "/inventories")
        return self._collection(data, Inventory, "/inventories")

    async def create_inventory(self, request: InventoryCreate) -> Inventory:
        data = await self._request("POST", "/inventories", payload=request)
        return self._entity(data, Inventory, "/inventories")

    async def list_hosts(self, inventory_id: int) -> List[Host]:
        endpoint = f"/inventories/{inventory_id}/hosts"
        data = await self._request("GET", endpoint)
        return self._collection(data, Host, endpoint)

    async def create_host(self, inventory_id: int, request: HostCreate) -> Host:
        endpoint = f"/inventories/{inventory_id}/hosts"
        data = await self._request("POST", endpoint, payload=request)
        return self._entity(data, Host, endpoint)

    async def delete_host(self, host_id: int) -> None:
        await self._request("DELETE", f"/hosts/{host_id}")

    async def list_groups(self, inventory_id: int) -> List[Group]:
        endpoint = f"/inventories/{inventory_id}/groups"
        data = await self._request("GET", endpoint)
        return self._collection(data, Group, endpoint)

    async def create_group(self, inventory_id: int, request: GroupCreate) -> Group:
        endpoint = f"/inventories/{inventory_id}/groups"
        data = await self._request("POST", endpoint, payload=request)
        return self._entity(data, Group, endpoint)

    async def list_group_hosts(self, group_id: int) -> List[Host]:
        endpoint = f"/groups/{group_id}/hosts"
        data = await self._request("GET", endpoint)
        return self._collection(data, Host, endpoint)

    async def add_host_to_group(self, group_id: int, host_id: int) -> None:
        """Add a host to a group. The server answers 201 with no body."""
        await self._request(
            "POST",
            f"/groups/{group_id}/hosts",
            payload=GroupMembershipRequest(host_id=host_id),
        )

    # ==========================================================================
    # Health
    # ==========================================================================

    async def health_check(self) -> Dict[str, Any]:
        """
        Check platform reachability.

        Returns:
            Dict with ``healthy`` and ``message`` keys
        """
        try:
            await self._request("GET", "/jobs")
            return {"healthy": True, "message": "Platform API reachable"}
        except PlatformError as e:
            return {"healthy": False, "message": str(e)}
