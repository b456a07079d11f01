"""
Portainer API Field Reference
Generated from API responses and verified through testing.

Use this as the source of truth for field names.
"""


class PortainerFields:
    """Verified field names from Portainer API responses"""

    # Auth
    AUTH_USERNAME = "username"
    AUTH_PASSWORD = "password"
    AUTH_JWT = "jwt"

    # Swarm (Docker API through the Portainer proxy)
    SWARM_ID = "ID"
    SWARM_ID_SHORT = "Id"

    # Stacks
    STACK_ID = "Id"
    STACK_NAME = "Name"
    STACK_ENDPOINT_ID_QUERY = "endpointId"
    STACK_TYPE_QUERY = "type"
    STACK_METHOD_QUERY = "method"
    STACK_ENV = "Env"
    STACK_ENV_NAME = "name"
    STACK_ENV_VALUE = "value"
    STACK_PRUNE = "Prune"
    STACK_PULL_IMAGES = "PullImage"
    STACK_FROM_APP_TEMPLATE = "fromAppTemplate"
    STACK_SWARM_ID = "SwarmID"
    STACK_FILE_CONTENT = "StackFileContent"
    STACK_RESOURCE_CONTROL = "ResourceControl"

    # Stack creation modes
    STACK_TYPE_SWARM = 1
    STACK_METHOD_STRING = "string"

    # Teams
    TEAM_ID = "Id"
    TEAM_NAME = "Name"

    # Resource controls
    RESOURCE_CONTROL_ID = "Id"
    RESOURCE_CONTROL_TEAMS = "Teams"
    RESOURCE_CONTROL_PUBLIC = "Public"
    RESOURCE_CONTROL_ADMINISTRATORS_ONLY = "AdministratorsOnly"
