#!/usr/bin/python
# portainer_stack_deploy.py - A module to deploy swarm stacks through Portainer.
# Author: Igor Moraru (@bgtor)
# License: GPL-3.0-or-later
# GNU General Public License v3.0+ (see COPYING or https://www.gnu.org/licenses/gpl-3.0.txt)

from __future__ import annotations

DOCUMENTATION = r"""
---
module: portainer_stack_deploy
short_description: Deploy or update a Portainer swarm stack from a compose file
description:
    - Creates a swarm stack from a local compose file, or updates the stack with the same name if it already exists.
    - Stack variables can be given as a text block and merged with secret values, secrets always win.
    - Optionally restricts access to the deployed stack to a set of Portainer teams.
    - Authenticates with a Portainer username and password on every run.
version_added: "1.0.0"
author: Igor Moraru (@bgtor)
options:
    name:
        description:
            - Name of the stack to deploy.
            - An existing stack with exactly this name is updated, otherwise a new stack is created.
            - If several stacks share the name, the first one returned by Portainer is updated.
        type: str
        required: true

    endpoint_id:
        description:
            - ID of the Portainer endpoint (environment) to deploy into.
            - The swarm cluster ID is looked up from this endpoint.
        type: int
        required: true

    file:
        description:
            - Path to the compose file.
            - The content is sent to Portainer verbatim.
            - File must be valid UTF-8 text (binary files are rejected).
        type: path
        default: docker-compose.yml

    stack_vars:
        description:
            - Stack environment variables, one per line.
            - Each line is either C(KEY: VALUE) or C(KEY=VALUE). Lines with neither separator are ignored.
            - When a line contains both C(:) and C(=), it is split on the first C(:).
            - One pair of matching outer quotes is removed from values.
            - A key repeated in the block keeps the last value.
        type: str
        default: ""

    secrets:
        description:
            - Mapping of variable names to already resolved secret values.
            - Accepts a dictionary or a JSON object string.
            - Secret values override variables with the same name from O(stack_vars).
        type: dict
        default: {}

    prune:
        description:
            - Remove services that are no longer defined in the compose file.
        type: bool
        default: false

    pull_images:
        description:
            - Force Portainer to pull the images even if they exist locally.
        type: bool
        default: false

    teams:
        description:
            - Names of the teams allowed to access the stack.
            - Accepts a list or a comma-separated string. Names are trimmed and matched exactly.
            - Names that do not match any team are ignored.
            - When at least one team matches, the stack access is replaced with exactly these teams.
        type: list
        elements: str
        default: []

extends_documentation_fragment:
    - bgtor.portainer.portainer_client

notes:
    - The module never deletes stacks.
    - Team access is replaced on every run, grants from previous runs are not kept.
    - Supports check mode. Reads are still performed, writes are skipped.
    - Concurrent runs against the same stack name are not coordinated, the last write wins.
"""

EXAMPLES = r"""
- name: Deploy the web stack
  portainer_stack_deploy:
    portainer_url: https://portainer.example.com
    portainer_username: deploy
    portainer_password: "{{ vault_portainer_password }}"
    endpoint_id: 2
    name: web
    file: /opt/stacks/web/docker-compose.yml
    stack_vars: |
      APP_ENV: production
      LOG_LEVEL=info
    secrets:
      DB_PASS: "{{ vault_db_pass }}"
    prune: true
    pull_images: true

- name: Deploy and restrict access to two teams
  portainer_stack_deploy:
    portainer_url: https://portainer.example.com
    portainer_username: deploy
    portainer_password: "{{ vault_portainer_password }}"
    endpoint_id: 2
    name: web
    teams: ops, qa

- name: Deploy through a self-signed Portainer without the proxy
  portainer_stack_deploy:
    portainer_url: https://portainer.internal:9443
    portainer_username: deploy
    portainer_password: "{{ vault_portainer_password }}"
    validate_certs: false
    disable_proxy: true
    endpoint_id: 1
    name: monitoring
    secrets: "{{ lookup('file', 'secrets.json') }}"
"""

RETURN = r"""
changed:
    description: Whether the stack was created or updated
    type: bool
    returned: always
    sample: true

msg:
    description:
        - Human-readable message describing the operation result.
        - On failure it reads "Deployment failed: <detail>", followed by the raw response body when Portainer returned one.
    type: str
    returned: always
    sample: "Stack created."

stack_id:
    description:
        - ID of the deployed stack.
        - Null in check mode when the stack would be created.
    type: int
    returned: success
    sample: 7

stack_status:
    description: Whether the stack was created or updated
    type: str
    returned: success
    choices: ['created', 'updated']
    sample: "updated"

env_count:
    description: Number of environment variables sent with the stack
    type: int
    returned: success
    sample: 3

teams:
    description: IDs of the teams the stack access was restricted to
    type: list
    elements: int
    returned: success
    sample: [1, 4]

body:
    description: Raw response body returned by Portainer for the failing request
    type: str
    returned: on failure, when Portainer returned a body
    sample: '{"message":"A stack with the same name already exists"}'
"""

from concurrent.futures import ThreadPoolExecutor, wait, FIRST_EXCEPTION
from dataclasses import dataclass, field
from typing import Any, Union

from ..module_utils.portainer_fields import PortainerFields as PF
from ..module_utils.portainer_module import PortainerModule
from ..module_utils.portainer_client import PortainerApiError
from ..module_utils.portainer_crud import (
    AccessControlError,
    DeploymentError,
    get_nested,
)
from ..module_utils.portainer_env import merge_env


class DeployStatus:
    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True)
class DeployConfig:
    endpoint_id: int
    name: str
    file: str
    stack_vars: str = ""
    secrets: dict = field(default_factory=dict)
    prune: bool = False
    pull_images: bool = False
    teams: tuple = ()

    @classmethod
    def from_params(cls, params: dict) -> DeployConfig:
        return cls(
            endpoint_id=params["endpoint_id"],
            name=params["name"],
            file=params["file"],
            stack_vars=params["stack_vars"] or "",
            secrets=dict(params["secrets"] or {}),
            prune=bool(params["prune"]),
            pull_images=bool(params["pull_images"]),
            # "" arrives as [""] and means no teams
            teams=tuple(t for t in params["teams"] or () if t.strip()),
        )


@dataclass(frozen=True)
class StackResolution:
    swarm_id: str
    stack_id: int | None = None
    resource_control_id: int | None = None

    @property
    def exists(self) -> bool:
        return self.stack_id is not None


@dataclass(frozen=True)
class StackPayload:
    file_content: str
    env: list
    prune: bool
    pull_images: bool

    def to_dict(self) -> dict:
        return {
            PF.STACK_FILE_CONTENT: self.file_content,
            PF.STACK_ENV: self.env,
            PF.STACK_PRUNE: self.prune,
            PF.STACK_PULL_IMAGES: self.pull_images,
        }


@dataclass(frozen=True)
class CreateStackRequest:
    name: str
    swarm_id: str
    endpoint_id: int
    payload: StackPayload
    status: str = DeployStatus.CREATED

    def to_dict(self) -> dict:
        # Name is added by the CRUD layer
        return {
            **self.payload.to_dict(),
            PF.STACK_SWARM_ID: self.swarm_id,
            PF.STACK_FROM_APP_TEMPLATE: False,
        }


@dataclass(frozen=True)
class UpdateStackRequest:
    stack_id: int
    endpoint_id: int
    payload: StackPayload
    resource_control_id: int | None = None
    status: str = DeployStatus.UPDATED

    def to_dict(self) -> dict:
        return self.payload.to_dict()


DeployRequest = Union[CreateStackRequest, UpdateStackRequest]


@dataclass(frozen=True)
class DeployResult:
    stack_id: int | None
    status: str
    resource_control_id: int | None = None


def build_deploy_request(
    config: DeployConfig,
    resolution: StackResolution,
    env: list,
    file_content: str,
) -> DeployRequest:
    """Pick the create or update request for the resolved stack."""
    payload = StackPayload(
        file_content=file_content,
        env=env,
        prune=config.prune,
        pull_images=config.pull_images,
    )

    if resolution.exists:
        return UpdateStackRequest(
            stack_id=resolution.stack_id,
            endpoint_id=config.endpoint_id,
            payload=payload,
            resource_control_id=resolution.resource_control_id,
        )

    return CreateStackRequest(
        name=config.name,
        swarm_id=resolution.swarm_id,
        endpoint_id=config.endpoint_id,
        payload=payload,
    )


class StackResolver:
    """
    Finds the swarm cluster of the endpoint and the stack with the configured name.

    Both lookups are independent and run in parallel. The first failure aborts
    the resolution.
    """

    def __init__(self, module: PortainerModule, config: DeployConfig) -> None:
        self.module = module
        self.crud = module.crud
        self.config = config

    def resolve(self) -> StackResolution:
        with ThreadPoolExecutor(max_workers=2) as executor:
            swarm_future = executor.submit(self.crud.swarm.get_swarm_id, self.config.endpoint_id)
            stacks_future = executor.submit(self.crud.stack.list_items)

            done, _ = wait([swarm_future, stacks_future], return_when=FIRST_EXCEPTION)

            for future in done:
                error = future.exception()
                if error is not None:
                    raise error

            swarm_id = swarm_future.result()
            stacks = stacks_future.result()

        stack = self.crud.stack.find_first_by_name(stacks, self.config.name)

        if stack is None:
            self.module.debug(f"Stack '{self.config.name}' will be created")
            return StackResolution(swarm_id=swarm_id)

        self.module.debug(f"Found existing stack '{self.config.name}' (ID: {stack[PF.STACK_ID]})")

        return StackResolution(
            swarm_id=swarm_id,
            stack_id=stack[PF.STACK_ID],
            resource_control_id=get_nested(
                stack, f"{PF.STACK_RESOURCE_CONTROL}.{PF.RESOURCE_CONTROL_ID}"
            ),
        )


class StackDispatcher:

    def __init__(self, module: PortainerModule) -> None:
        self.module = module
        self.crud = module.crud.stack

    def dispatch(self, request: DeployRequest) -> DeployResult:
        if isinstance(request, UpdateStackRequest):
            action, handler = "update", self._update
        else:
            action, handler = "create", self._create

        try:
            return handler(request)

        except PortainerApiError as e:
            raise DeploymentError(
                f"Failed to {action} stack: {e}",
                status=e.status,
                body=e.body,
            ) from e

    def _update(self, request: UpdateStackRequest) -> DeployResult:
        self.crud.update_stack(request.stack_id, request.endpoint_id, request.to_dict())

        return DeployResult(
            stack_id=request.stack_id,
            status=request.status,
            resource_control_id=request.resource_control_id,
        )

    def _create(self, request: CreateStackRequest) -> DeployResult:
        response = self.crud.create_swarm_stack(
            request.name, request.endpoint_id, request.to_dict()
        )

        stack_id = response.get(PF.STACK_ID) if isinstance(response, dict) else None

        if stack_id is None:
            raise DeploymentError("Portainer did not return the created stack ID", body=response)

        return DeployResult(
            stack_id=stack_id,
            status=request.status,
            resource_control_id=get_nested(
                response, f"{PF.STACK_RESOURCE_CONTROL}.{PF.RESOURCE_CONTROL_ID}"
            ),
        )


class AccessControlAssigner:

    def __init__(self, module: PortainerModule, config: DeployConfig) -> None:
        self.module = module
        self.crud = module.crud
        self.config = config
        self.check_mode = module.check_mode

    def assign(self, resource_control_id: int | None) -> list[int]:
        """Restrict the stack to the configured teams, returning the granted team IDs."""
        if not self.config.teams:
            return []

        if resource_control_id is None:
            if not self.check_mode:
                self.module.warn(
                    f"Stack '{self.config.name}' has no resource control, team access was not changed."
                )
            return []

        team_ids, missing = self.crud.team.resolve_names_to_ids(list(self.config.teams))

        if missing:
            self.module.warn(f"Ignoring unknown teams: {', '.join(missing)}")

        if not team_ids:
            return []

        if not self.check_mode:
            try:
                self.crud.resource_control.restrict_to_teams(resource_control_id, team_ids)
            except PortainerApiError as e:
                raise AccessControlError(
                    f"Failed to update resource control {resource_control_id}: {e}",
                    status=e.status,
                    body=e.body,
                ) from e

        self.module.debug(f"Access granted to {len(team_ids)} team(s)")

        return team_ids


class StackDeployManager:
    """
    Runs a deployment end to end: authenticate, resolve the stack, merge the
    environment, create or update the stack and finally restrict team access.
    """

    def __init__(
        self,
        module: PortainerModule,
        results: dict,
        config: DeployConfig,
        resolver: StackResolver,
        dispatcher: StackDispatcher,
        assigner: AccessControlAssigner,
    ) -> None:
        self.module = module
        self.results = results
        self.config = config
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.assigner = assigner

        self.check_mode = module.check_mode

    @classmethod
    def for_module(cls, module: PortainerModule, results: dict) -> StackDeployManager:
        config = DeployConfig.from_params(module.params)

        return cls(
            module,
            results,
            config=config,
            resolver=StackResolver(module, config),
            dispatcher=StackDispatcher(module),
            assigner=AccessControlAssigner(module, config),
        )

    def run(self) -> None:
        self.module.debug("Authenticating with Portainer")
        self.module.client.authenticate()

        resolution = self.resolver.resolve()

        env = merge_env(self.config.stack_vars, self.config.secrets)
        file_content = self.module.read_text_file(self.config.file, "stack file")

        request = build_deploy_request(self.config, resolution, env, file_content)

        self.module.debug(f"Deploying with {len(env)} environment variables")

        if self.check_mode:
            result = DeployResult(
                stack_id=resolution.stack_id,
                status=request.status,
                resource_control_id=resolution.resource_control_id,
            )
        else:
            result = self.dispatcher.dispatch(request)

        team_ids = self.assigner.assign(result.resource_control_id)

        self.results["changed"] = True
        self.results["msg"] = f"Stack {result.status}."
        self.results["stack_id"] = result.stack_id
        self.results["stack_status"] = result.status
        self.results["env_count"] = len(env)
        self.results["teams"] = team_ids


def failure_details(e: Exception) -> dict[str, Any]:
    details: dict[str, Any] = {"msg": f"Deployment failed: {e}"}

    status = getattr(e, "status", None)
    body = getattr(e, "body", None)

    if status is not None:
        details["status"] = status
    if body:
        details["msg"] += f" (response: {body})"
        details["body"] = body

    return details


def main():

    argument_spec = PortainerModule.generate_argspec(
        name=dict(type="str", required=True),
        endpoint_id=dict(type="int", required=True),
        file=dict(type="path", default="docker-compose.yml"),
        stack_vars=dict(type="str", default=""),
        secrets=dict(type="dict", default={}, no_log=True),
        prune=dict(type="bool", default=False),
        pull_images=dict(type="bool", default=False),
        teams=dict(type="list", elements="str", default=[]),
    )

    module = PortainerModule(
        argument_spec=argument_spec,
        supports_check_mode=True,
    )

    try:
        results = dict(changed=False)

        StackDeployManager.for_module(module, results).run()

        module.exit_json(**results)

    except (module.client.exc.PortainerApiError, module.crud.exc.PortainerCRUDException) as e:
        module.fail_json(**failure_details(e))

    except Exception as e:
        module.fail_json(msg=f"Deployment failed: {str(e)}")


if __name__ == "__main__":
    main()
