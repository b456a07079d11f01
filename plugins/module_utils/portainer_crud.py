from __future__ import annotations

from functools import reduce
from typing import TYPE_CHECKING, TypeVar, Any, Generator, cast
from contextlib import contextmanager

from .portainer_fields import PortainerFields as PF


if TYPE_CHECKING:
    from .portainer_module import PortainerModule


class PortainerCRUDException(Exception):
    pass


class ClusterResolutionError(PortainerCRUDException):
    pass


class DeploymentError(PortainerCRUDException):
    def __init__(self, message, status: int | None = None, body: Any | None = None):
        super().__init__(message)
        self.status = status
        self.body = body


class AccessControlError(DeploymentError):
    pass


class InvalidFileError(PortainerCRUDException):
    pass


def get_nested(d, path, default=None):
    try:
        return reduce(lambda x, key: x[key], path.split("."), d)
    except (KeyError, TypeError):
        return default


T = TypeVar("T", dict, list)


class BaseCRUD:

    def __init__(
        self,
        module: PortainerModule,
        endpoint: str,
        name_field: str,
        id_field: str,
        resource_name: str,
    ) -> None:
        self.module = module

        self.resource_name = resource_name
        self._endpoint = endpoint
        self.name_field = name_field
        self.id_field = id_field

    def _get_create_endpoint(self) -> str:
        return self.endpoint

    def _get_update_endpoint(self, id: int) -> str:
        return f"{self.endpoint}/{id}"

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def find_first_by_name(self, items: list[dict[str, Any]], name: str) -> dict[str, Any] | None:
        """First item whose name matches exactly, in the order the API returned them."""
        return next((item for item in items if item.get(self.name_field) == name), None)

    def list_items(self, params: dict | None = None) -> list[dict[str, Any]]:

        return self._process_response(self.module.client.get(self.endpoint, params=params)) or []

    def create_item(
        self,
        name: str,
        item_data: dict | None = None,
        params: dict | None = None,
    ) -> dict[str, Any]:
        if not name:
            raise ValueError("Name should not be empty")

        if item_data is None:
            item_data = {}

        endpoint = self._get_create_endpoint()

        return self._process_response(
            self.module.client.post(
                endpoint,
                {self.name_field: name, **item_data},
                params=params,
            )
        )

    def update_item(
        self, item_id: int, changes: dict, params: dict | None = None
    ) -> dict[str, Any]:
        if item_id is None:
            raise ValueError("Item ID cannot be None")

        endpoint = self._get_update_endpoint(item_id)

        return self._process_response(
            self.module.client.put(endpoint, data=changes, params=params)
        )

    def resolve_names_to_ids(self, names: list[str]) -> tuple[list[int], list[str]]:
        """
        Resolve names to IDs against a freshly fetched list of items.

        Names are trimmed and matched exactly. Returns the resolved IDs in the
        order the names were given (without duplicates) and the names that did
        not match any item.
        """
        all_items = self.list_items()

        ids: list[int] = []
        missing: list[str] = []

        for name in names:
            name = name.strip()
            if not name:
                continue

            item = self.find_first_by_name(all_items, name)

            if item is None:
                missing.append(name)
            elif item[self.id_field] not in ids:
                ids.append(item[self.id_field])

        return ids, missing

    def _process_response(self, data: T) -> T:
        """
        Hook for subclasses to normalize/transform response data.
        Can handle both single items and lists.
        """
        if not data:
            return data

        if isinstance(data, list):
            return [self._process_single_item(item) for item in data]
        return self._process_single_item(data)

    def _process_single_item(self, item: dict) -> dict:
        """Process a single item. Override this in subclasses."""
        return item


class BaseDockerCRUD(BaseCRUD):
    """
    Base class for Docker API resources accessed through Portainer's proxy.
    Handles endpoint construction and Docker-specific response processing.
    """

    def __init__(
        self,
        module: PortainerModule,
        docker_endpoint: str,
        name_field: str,
        id_field: str,
        resource_name: str,
    ) -> None:
        # Store the Docker endpoint separately
        self.docker_endpoint = docker_endpoint

        # Initialize parent with placeholder endpoint
        super().__init__(
            module=module,
            endpoint=docker_endpoint,
            name_field=name_field,
            id_field=id_field,
            resource_name=resource_name,
        )

        self._endpoint_id: int | None = None

    @contextmanager
    def using_endpoint(self, endpoint_id: int) -> Generator[BaseDockerCRUD, None, None]:
        """Context manager to set the Portainer endpoint for Docker API access"""
        old_endpoint_id = self._endpoint_id
        self._endpoint_id = endpoint_id
        try:
            yield self
        finally:
            self._endpoint_id = old_endpoint_id

    @property
    def endpoint(self) -> str:
        """Build the Docker API endpoint through Portainer proxy"""
        if self._endpoint_id is None:
            raise ValueError(
                f"endpoint_id must be set to use {self.resource_name}. "
                f"Use 'with crud.using_endpoint(endpoint_id):' context manager."
            )
        return f"/endpoints/{self._endpoint_id}/docker{self.docker_endpoint}"

    def _process_single_item(self, item: dict) -> dict:
        """
        Process Docker API responses, which often have nested structures.
        Can be overridden by subclasses for resource-specific processing.
        """
        name = get_nested(item, "Spec.Name", None)

        if name and "Name" not in item:
            item["Name"] = name

        return item


class StackCRUD(BaseCRUD):

    def __init__(self, module: PortainerModule) -> None:
        resource_name = "stack"
        endpoint = "/stacks"
        name_field = PF.STACK_NAME
        id_field = PF.STACK_ID
        super().__init__(module, endpoint, name_field, id_field, resource_name)

    def create_swarm_stack(self, name: str, endpoint_id: int, data: dict) -> dict[str, Any]:
        """Create a swarm stack from an inline compose file."""
        params = {
            PF.STACK_TYPE_QUERY: PF.STACK_TYPE_SWARM,
            PF.STACK_METHOD_QUERY: PF.STACK_METHOD_STRING,
            PF.STACK_ENDPOINT_ID_QUERY: endpoint_id,
        }

        return self.create_item(name, item_data=data, params=params)

    def update_stack(self, stack_id: int, endpoint_id: int, data: dict) -> dict[str, Any]:
        params = {PF.STACK_ENDPOINT_ID_QUERY: endpoint_id}

        return self.update_item(stack_id, changes=data, params=params)


class SwarmCRUD(BaseDockerCRUD):

    def __init__(self, module: PortainerModule):
        super().__init__(
            module=module,
            docker_endpoint="/swarm",
            name_field="Name",
            id_field=PF.SWARM_ID,
            resource_name="swarm",
        )

    def inspect_swarm(self) -> dict[str, Any]:
        return cast(dict, self._process_response(self.module.client.get(self.endpoint)))

    def get_swarm_id(self, endpoint_id: int) -> str:
        with self.using_endpoint(endpoint_id):
            swarm = self.inspect_swarm() or {}

        # Docker reports "ID", some proxies normalize it to "Id"
        swarm_id = swarm.get(PF.SWARM_ID) or swarm.get(PF.SWARM_ID_SHORT)

        if not swarm_id:
            raise ClusterResolutionError(
                f"Failed to get Swarm ID for endpoint {endpoint_id}"
            )

        return swarm_id


class TeamCRUD(BaseCRUD):

    def __init__(self, module: PortainerModule) -> None:
        resource_name = "team"
        endpoint = "/teams"
        name_field = PF.TEAM_NAME
        id_field = PF.TEAM_ID
        super().__init__(module, endpoint, name_field, id_field, resource_name)


class ResourceControlCRUD(BaseCRUD):

    def __init__(self, module: PortainerModule) -> None:
        resource_name = "resource control"
        endpoint = "/resource_controls"
        name_field = PF.RESOURCE_CONTROL_ID
        id_field = PF.RESOURCE_CONTROL_ID
        super().__init__(module, endpoint, name_field, id_field, resource_name)

    def restrict_to_teams(self, resource_control_id: int, team_ids: list[int]) -> dict[str, Any]:
        """Replace the grants of a resource control with exactly the given teams."""
        return self.update_item(
            resource_control_id,
            changes={
                PF.RESOURCE_CONTROL_TEAMS: team_ids,
                PF.RESOURCE_CONTROL_PUBLIC: False,
                PF.RESOURCE_CONTROL_ADMINISTRATORS_ONLY: False,
            },
        )


class PortainerCRUD:

    class exc:
        PortainerCRUDException = PortainerCRUDException
        ClusterResolutionError = ClusterResolutionError
        DeploymentError = DeploymentError
        AccessControlError = AccessControlError
        InvalidFileError = InvalidFileError

    def __init__(self, module: PortainerModule) -> None:
        self.module = module
        self.stack = StackCRUD(module)
        self.swarm = SwarmCRUD(module)
        self.team = TeamCRUD(module)
        self.resource_control = ResourceControlCRUD(module)
