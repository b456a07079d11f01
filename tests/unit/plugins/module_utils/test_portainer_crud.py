# -*- coding: utf-8 -*-
# Author: Igor Moraru (@bgtor)
# License: GPL-3.0-or-later
# GNU General Public License v3.0+ (see COPYING or https://www.gnu.org/licenses/gpl-3.0.txt)

from __future__ import annotations

import pytest

from plugins.module_utils.portainer_crud import ClusterResolutionError, get_nested
from plugins.module_utils.portainer_fields import PortainerFields as PF
from plugins.module_utils.portainer_client import RequestMethod
from tests.unit.plugins.conftest import MockMakeRequest, PortainerModuleFixture

pytestmark = pytest.mark.usefixtures("patch_ansible_module", "mock_make_request")


@pytest.mark.parametrize(
    "swarm, expected",
    [
        ({"ID": "long-form", "Spec": {"Name": "default"}}, "long-form"),
        ({"Id": "short-form"}, "short-form"),
        ({"ID": "long-form", "Id": "short-form"}, "long-form"),
    ],
)
def test_get_swarm_id(
    mock_make_request: MockMakeRequest,
    portainer_module: PortainerModuleFixture,
    swarm,
    expected,
):
    calls = mock_make_request(
        {
            f"{RequestMethod.GET} /endpoints/3/docker/swarm": {"data": swarm, "status": 200},
        }
    )

    module = portainer_module()

    assert module.crud.swarm.get_swarm_id(3) == expected
    assert calls[0].endpoint == "/endpoints/3/docker/swarm"


@pytest.mark.parametrize("swarm", [{}, {"id": "lowercase"}, {"ID": ""}])
def test_get_swarm_id_missing(
    mock_make_request: MockMakeRequest, portainer_module: PortainerModuleFixture, swarm
):
    mock_make_request(
        {
            f"{RequestMethod.GET} /endpoints/3/docker/swarm": {"data": swarm, "status": 200},
        }
    )

    module = portainer_module()

    with pytest.raises(ClusterResolutionError):
        module.crud.swarm.get_swarm_id(3)


def test_swarm_endpoint_requires_endpoint_id(portainer_module: PortainerModuleFixture):

    module = portainer_module()

    with pytest.raises(ValueError):
        module.crud.swarm.endpoint


def test_find_first_by_name_returns_first_match(portainer_module: PortainerModuleFixture):

    module = portainer_module()

    stacks = [
        {PF.STACK_ID: 1, PF.STACK_NAME: "api"},
        {PF.STACK_ID: 7, PF.STACK_NAME: "web"},
        {PF.STACK_ID: 9, PF.STACK_NAME: "web"},
    ]

    assert module.crud.stack.find_first_by_name(stacks, "web")[PF.STACK_ID] == 7
    assert module.crud.stack.find_first_by_name(stacks, "Web") is None
    assert module.crud.stack.find_first_by_name(stacks, "web ") is None


def test_resolve_names_to_ids(
    mock_make_request: MockMakeRequest, portainer_module: PortainerModuleFixture
):
    mock_make_request(
        {
            f"{RequestMethod.GET} /teams": {
                "data": [
                    {PF.TEAM_ID: 1, PF.TEAM_NAME: "ops"},
                    {PF.TEAM_ID: 2, PF.TEAM_NAME: "dev"},
                    {PF.TEAM_ID: 3, PF.TEAM_NAME: "qa"},
                ],
                "status": 200,
            },
        }
    )

    module = portainer_module()

    ids, missing = module.crud.team.resolve_names_to_ids([" qa", "ops ", "OPS", "", "qa", "sec"])

    assert ids == [3, 1]
    assert missing == ["OPS", "sec"]


def test_restrict_to_teams_replaces_grants(
    mock_make_request: MockMakeRequest, portainer_module: PortainerModuleFixture
):
    calls = mock_make_request(
        {
            f"{RequestMethod.PUT} /resource_controls/21": {"data": {}, "status": 200},
        }
    )

    module = portainer_module()

    module.crud.resource_control.restrict_to_teams(21, [3, 1])

    assert len(calls) == 1
    assert calls[0].data == {
        PF.RESOURCE_CONTROL_TEAMS: [3, 1],
        PF.RESOURCE_CONTROL_PUBLIC: False,
        PF.RESOURCE_CONTROL_ADMINISTRATORS_ONLY: False,
    }


def test_create_swarm_stack_uses_string_method(
    mock_make_request: MockMakeRequest, portainer_module: PortainerModuleFixture
):
    calls = mock_make_request(
        {
            f"{RequestMethod.POST} /stacks": {"data": {PF.STACK_ID: 12}, "status": 200},
        }
    )

    module = portainer_module()

    response = module.crud.stack.create_swarm_stack("web", 2, {PF.STACK_FILE_CONTENT: "x"})

    assert response[PF.STACK_ID] == 12
    assert calls[0].params == {"type": 1, "method": "string", "endpointId": 2}
    assert calls[0].data[PF.STACK_NAME] == "web"


def test_get_nested():
    assert get_nested({"ResourceControl": {"Id": 4}}, "ResourceControl.Id") == 4
    assert get_nested({"ResourceControl": None}, "ResourceControl.Id") is None
    assert get_nested({}, "ResourceControl.Id") is None
