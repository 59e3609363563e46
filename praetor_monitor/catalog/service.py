"""
Catalog Service for Praetor Monitor.

One-shot operator actions over the platform catalog:
- Project creation and SCM sync
- Job template creation and editing
- Inventory, host and group management

Actions are never retried. Every action returns an ActionOutcome instead of
raising, so callers can show the result directly. Variables typed by the
operator are validated locally before any request is made.
"""

import json
from typing import Any, Dict, List, Optional

import structlog

from praetor_monitor.core.exceptions import InvalidVariablesError, PlatformError
from praetor_monitor.telemetry.clients.platform import PlatformClient
from praetor_monitor.telemetry.schemas import (
    ActionOutcome,
    Group,
    GroupCreate,
    Host,
    HostCreate,
    InventoryCreate,
    JobTemplateWrite,
    ProjectCreate,
)
from praetor_monitor.telemetry.store import TelemetryStore

logger = structlog.get_logger(__name__)


def parse_variables(text: Optional[str]) -> Dict[str, Any]:
    """
    Parse operator-supplied variables.

    Args:
        text: JSON document typed by the operator, may be blank

    Returns:
        The decoded mapping; blank input yields an empty dict

    Raises:
        InvalidVariablesError: If the text is not a JSON object
    """
    if text is None or not text.strip():
        return {}
    try:
        value = json.loads(text)
    except ValueError as e:
        raise InvalidVariablesError(f"Invalid JSON in variables: {e}") from e
    if not isinstance(value, dict):
        raise InvalidVariablesError("Variables must be a JSON object")
    return value


class CatalogService:
    """
    Mutating catalog operations.

    When a store is given, the matching store catalog is refreshed after a
    successful create, update or sync.
    """

    def __init__(self, client: PlatformClient, store: Optional[TelemetryStore] = None):
        self.client = client
        self.store = store

    # ==========================================================================
    # Projects
    # ==========================================================================

    async def create_project(
        self,
        name: str,
        scm_url: str,
        scm_type: str = "git",
        organization_id: int = 1,
    ) -> ActionOutcome:
        if not name.strip() or not scm_url.strip():
            return ActionOutcome.invalid_input("Project name and SCM URL are required")

        request = ProjectCreate(
            name=name.strip(),
            scm_url=scm_url.strip(),
            scm_type=scm_type,
            organization_id=organization_id,
        )
        try:
            project = await self.client.create_project(request)
        except PlatformError as e:
            logger.warning("project_create_failed", name=name, error=str(e))
            return ActionOutcome.request_failed(f"Failed to create project: {e}")

        logger.info("project_created", project_id=project.id, name=project.name)
        if self.store is not None:
            await self.store.refresh_projects()
        return ActionOutcome.succeeded(f"Created project #{project.id}", data=project)

    async def sync_project(self, project_id: int) -> ActionOutcome:
        """
        Sync a project from SCM.

        A failure reported by the platform leaves the local project list
        untouched and carries the platform's own error message.
        """
        try:
            result = await self.client.sync_project(project_id)
        except PlatformError as e:
            logger.warning("project_sync_request_failed", project_id=project_id, error=str(e))
            return ActionOutcome.request_failed(f"Sync failed: {e}")

        if not result.success:
            error = result.error or result.message or "unknown error"
            logger.warning("project_sync_reported_failure", project_id=project_id, error=error)
            return ActionOutcome.reported_failure(f"Sync failed: {error}", data=result)

        logger.info("project_synced", project_id=project_id, revision=result.revision)
        if self.store is not None:
            await self.store.refresh_projects()

        message = "Sync successful"
        if result.revision:
            message = f"{message}: {result.revision[:8]}"
            if result.commit_msg:
                message = f"{message} {result.commit_msg}"
        return ActionOutcome.succeeded(message, data=result)

    # ==========================================================================
    # Job templates
    # ==========================================================================

    @staticmethod
    def _template_request(
        name: str,
        project_id: Optional[int],
        inventory_id: Optional[int],
        playbook: str,
        organization_id: int,
    ) -> Optional[JobTemplateWrite]:
        if not name.strip() or not playbook.strip() or project_id is None or inventory_id is None:
            return None
        return JobTemplateWrite(
            name=name.strip(),
            project_id=project_id,
            inventory_id=inventory_id,
            playbook=playbook.strip(),
            organization_id=organization_id,
        )

    async def create_template(
        self,
        name: str,
        project_id: Optional[int],
        inventory_id: Optional[int],
        playbook: str,
        organization_id: int = 1,
    ) -> ActionOutcome:
        request = self._template_request(name, project_id, inventory_id, playbook, organization_id)
        if request is None:
            return ActionOutcome.invalid_input("Name, project, inventory and playbook are required")

        try:
            template = await self.client.create_job_template(request)
        except PlatformError as e:
            logger.warning("template_create_failed", name=name, error=str(e))
            return ActionOutcome.request_failed(f"Failed to save template: {e}")

        logger.info("template_created", template_id=template.id)
        if self.store is not None:
            await self.store.refresh_templates()
        return ActionOutcome.succeeded(f"Created template #{template.id}", data=template)

    async def update_template(
        self,
        template_id: int,
        name: str,
        project_id: Optional[int],
        inventory_id: Optional[int],
        playbook: str,
        organization_id: int = 1,
    ) -> ActionOutcome:
        request = self._template_request(name, project_id, inventory_id, playbook, organization_id)
        if request is None:
            return ActionOutcome.invalid_input("Name, project, inventory and playbook are required")

        try:
            template = await self.client.update_job_template(template_id, request)
        except PlatformError as e:
            logger.warning("template_update_failed", template_id=template_id, error=str(e))
            return ActionOutcome.request_failed(f"Failed to save template: {e}")

        logger.info("template_updated", template_id=template_id)
        if self.store is not None:
            await self.store.refresh_templates()
        return ActionOutcome.succeeded(f"Updated template #{template.id}", data=template)

    # ==========================================================================
    # Inventories
    # ==========================================================================

    async def create_inventory(self, name: str, organization_id: int = 1) -> ActionOutcome:
        if not name.strip():
            return ActionOutcome.invalid_input("Inventory name is required")

        try:
            inventory = await self.client.create_inventory(
                InventoryCreate(name=name.strip(), organization_id=organization_id)
            )
        except PlatformError as e:
            logger.warning("inventory_create_failed", name=name, error=str(e))
            return ActionOutcome.request_failed(f"Failed to create inventory: {e}")

        logger.info("inventory_created", inventory_id=inventory.id)
        if self.store is not None:
            await self.store.refresh_inventories()
        return ActionOutcome.succeeded(f"Created inventory #{inventory.id}", data=inventory)

    # ==========================================================================
    # Hosts and groups
    # ==========================================================================

    async def create_host(self, inventory_id: int, name: str, variables_text: Optional[str] = None) -> ActionOutcome:
        """
        Add a host to an inventory.

        Variables that are not a JSON object yield an ``invalid_input``
        outcome before any request is made.
        """
        try:
            variables = parse_variables(variables_text)
        except InvalidVariablesError as e:
            return ActionOutcome.invalid_input(str(e))
        if not name.strip():
            return ActionOutcome.invalid_input("Host name is required")

        try:
            host = await self.client.create_host(
                inventory_id,
                HostCreate(name=name.strip(), variables=variables),
            )
        except PlatformError as e:
            logger.warning("host_create_failed", inventory_id=inventory_id, name=name, error=str(e))
            return ActionOutcome.request_failed(f"Failed to add host: {e}")

        logger.info("host_created", inventory_id=inventory_id, host_id=host.id)
        return ActionOutcome.succeeded(f"Added host #{host.id}", data=host)

    async def delete_host(self, host_id: int) -> ActionOutcome:
        try:
            await self.client.delete_host(host_id)
        except PlatformError as e:
            logger.warning("host_delete_failed", host_id=host_id, error=str(e))
            return ActionOutcome.request_failed(f"Failed to delete host: {e}")

        logger.info("host_deleted", host_id=host_id)
        return ActionOutcome.succeeded(f"Deleted host #{host_id}")

    async def create_group(self, inventory_id: int, name: str) -> ActionOutcome:
        if not name.strip():
            return ActionOutcome.invalid_input("Group name is required")

        try:
            group = await self.client.create_group(inventory_id, GroupCreate(name=name.strip()))
        except PlatformError as e:
            logger.warning("group_create_failed", inventory_id=inventory_id, name=name, error=str(e))
            return ActionOutcome.request_failed(f"Failed to create group: {e}")

        logger.info("group_created", inventory_id=inventory_id, group_id=group.id)
        return ActionOutcome.succeeded(f"Created group #{group.id}", data=group)

    async def add_host_to_group(self, group_id: int, host_id: int) -> ActionOutcome:
        try:
            await self.client.add_host_to_group(group_id, host_id)
        except PlatformError as e:
            logger.warning("group_membership_failed", group_id=group_id, host_id=host_id, error=str(e))
            return ActionOutcome.request_failed(f"Failed to add host to group: {e}")

        logger.info("group_membership_added", group_id=group_id, host_id=host_id)
        return ActionOutcome.succeeded(f"Added host #{host_id} to group #{group_id}")

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def hosts(self, inventory_id: int) -> List[Host]:
        return await self.client.list_hosts(inventory_id)

    async def groups(self, inventory_id: int) -> List[Group]:
        return await self.client.list_groups(inventory_id)

    async def group_hosts(self, group_id: int) -> List[Host]:
        return await self.client.list_group_hosts(group_id)
