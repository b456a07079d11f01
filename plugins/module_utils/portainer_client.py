from __future__ import annotations

import json

from urllib.parse import urlencode
from typing import Any
from enum import Enum

from ansible.module_utils.urls import fetch_url
from ansible.module_utils.basic import AnsibleModule
from ansible.module_utils.common.text.converters import to_text

from .portainer_fields import PortainerFields as PF


class PortainerApiError(Exception):
    def __init__(
        self,
        message,
        status: int | None = None,
        body: Any | None = None,
        url: str | None = None,
        method: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.body = body
        self.url = url
        self.method = method
        self.data = data


class AuthenticationError(PortainerApiError):
    pass


class RequestMethod(Enum):
    GET = "GET"
    PUT = "PUT"
    POST = "POST"


class PortainerClient:

    class exc:
        PortainerApiError = PortainerApiError
        AuthenticationError = AuthenticationError

    ARGSPEC = dict(
        portainer_url=dict(type="str", required=True),
        portainer_username=dict(type="str", required=True),
        portainer_password=dict(type="str", required=True, no_log=True),
        validate_certs=dict(type="bool", default=True),
        timeout=dict(type="int", default=30),
        disable_proxy=dict(type="bool", default=False),
    )

    def __init__(self, module: AnsibleModule):
        self.module = module

        self.portainer_url = module.params["portainer_url"].rstrip("/")
        self.portainer_username = module.params["portainer_username"]
        self.portainer_password = module.params["portainer_password"]
        self.timeout = module.params["timeout"]
        self.use_proxy = not module.params["disable_proxy"]

        self.headers = {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }

    def authenticate(self) -> str:
        """
        Exchange the configured username and password for a JWT.

        The token is kept in the client headers so every later request is sent
        with it. Any failure here is fatal and never retried.
        """
        credentials = {
            PF.AUTH_USERNAME: self.portainer_username,
            PF.AUTH_PASSWORD: self.portainer_password,
        }

        try:
            response = self.post("/auth", credentials)
        except PortainerApiError as e:
            # The request payload holds the password, so it is not carried over.
            raise AuthenticationError(
                f"Authentication failed: {e}",
                status=e.status,
                body=e.body,
                url=e.url,
                method=e.method,
            ) from e

        token = response.get(PF.AUTH_JWT) if isinstance(response, dict) else None

        if not token:
            raise AuthenticationError(
                "Authentication failed: no token returned by Portainer",
                body=response,
            )

        self.headers["Authorization"] = f"Bearer {token}"

        return token

    def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        return self._make_request(RequestMethod.GET, endpoint, params=params)

    def post(
        self,
        endpoint: str,
        data: dict[str, Any] | None = None,
        params: dict | None = None,
    ) -> Any:
        return self._make_request(RequestMethod.POST, endpoint=endpoint, data=data, params=params)

    def put(
        self,
        endpoint: str,
        data: dict[str, Any] | None = None,
        params: dict | None = None,
    ) -> Any:
        return self._make_request(RequestMethod.PUT, endpoint=endpoint, data=data, params=params)

    def _make_request(
        self,
        method: RequestMethod,
        endpoint: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """Make HTTP request to Portainer API"""
        url = f"{self.portainer_url}/api{endpoint}"
        data = {} if data is None else data

        if params:
            # Convert booleans to lowercase strings
            params_converted = {
                k: str(v).lower() if isinstance(v, bool) else v for k, v in params.items()
            }
            url = f"{url}?{urlencode(params_converted)}"

        resp, info = fetch_url(
            self.module,
            url,
            method=method.value,
            headers=self.headers,
            data=json.dumps(data) if method != RequestMethod.GET else None,
            use_proxy=self.use_proxy,
            force=True,
            timeout=self.timeout,
        )

        if info["status"] not in [200, 201, 204]:
            raise PortainerApiError(
                f"{info['msg']}",
                status=info["status"],
                body=to_text(info.get("body", "")),
                url=url,
                method=method.value,
                data=data,
            )

        if resp:
            body = resp.read()

            if body:
                return json.loads(body)
        return None
