class ModuleDocFragment(object):

    DOCUMENTATION = r"""
    options:
        portainer_url:
            description: URL of the Portainer instance
            required: true
            type: str
        portainer_username:
            description: Username used to obtain a Portainer access token
            required: true
            type: str
        portainer_password:
            description: Password used to obtain a Portainer access token
            required: true
            type: str
        timeout:
            description: Timeout for API requests
            type: int
            default: 30
        validate_certs:
            description: Validate SSL certificates
            type: bool
            default: true
        disable_proxy:
            description: Ignore proxy environment variables and connect to Portainer directly
            type: bool
            default: false
    """
