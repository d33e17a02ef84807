"""Thin adapter for the Keycloak admin REST API."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

Representation = dict[str, Any]


class KeycloakApiError(Exception):
    """Non-success response from the Keycloak admin API."""

    def __init__(self, status_code: int, message: str, endpoint: str) -> None:
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")


class KeycloakRepository(Protocol):
    """Identity resources the provisioning workflow relies on."""

    def get_realms(self) -> list[Representation]: ...

    def create_realm(self, realm: Representation) -> None: ...

    def delete_realm(self, realm: str) -> None: ...

    def get_clients(self, realm: str) -> list[Representation]: ...

    def create_client(self, realm: str, client: Representation) -> None: ...

    def get_client_scopes(self, realm: str) -> list[Representation]: ...

    def create_client_scope(self, realm: str, client_scope: Representation) -> None: ...

    def add_scope_to_client(self, realm: str, client_id: str, scope_id: str) -> None: ...

    def get_users(self, realm: str, *, username: str | None = None, exact: bool = False) -> list[Representation]: ...

    def create_user(self, realm: str, user: Representation) -> None: ...

    def get_client_roles(self, realm: str, client_id: str) -> list[Representation]: ...

    def create_client_role(self, realm: str, client_id: str, role: Representation) -> None: ...

    def delete_client_role(self, realm: str, client_id: str, role: Representation) -> None: ...

    def add_client_roles_to_user(
        self, realm: str, user_id: str, client_id: str, roles: list[Representation]
    ) -> None: ...


class KeycloakAdminClient:
    """``KeycloakRepository`` over HTTP, authenticated with the admin password grant.

    ``client_id`` arguments are Keycloak's internal client ids, not the
    human readable ``clientId`` of a client representation.
    """

    def __init__(
        self,
        base_url: str,
        *,
        username: str,
        password: str,
        admin_realm: str = "master",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._username = username
        self._password = password
        self._admin_realm = admin_realm
        self._token: str | None = None
        self._http = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> KeycloakAdminClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ---------- Realms ----------
    def get_realms(self) -> list[Representation]:
        return self._request("GET", "/admin/realms").json()

    def create_realm(self, realm: Representation) -> None:
        self._request("POST", "/admin/realms", json=realm)

    def delete_realm(self, realm: str) -> None:
        self._request("DELETE", f"/admin/realms/{realm}")

    # ---------- Clients and scopes ----------
    def get_clients(self, realm: str) -> list[Representation]:
        return self._request("GET", f"/admin/realms/{realm}/clients").json()

    def create_client(self, realm: str, client: Representation) -> None:
        self._request("POST", f"/admin/realms/{realm}/clients", json=client)

    def get_client_scopes(self, realm: str) -> list[Representation]:
        return self._request("GET", f"/admin/realms/{realm}/client-scopes").json()

    def create_client_scope(self, realm: str, client_scope: Representation) -> None:
        self._request("POST", f"/admin/realms/{realm}/client-scopes", json=client_scope)

    def add_scope_to_client(self, realm: str, client_id: str, scope_id: str) -> None:
        self._request("PUT", f"/admin/realms/{realm}/clients/{client_id}/default-client-scopes/{scope_id}")

    # ---------- Users ----------
    def get_users(self, realm: str, *, username: str | None = None, exact: bool = False) -> list[Representation]:
        params: dict[str, str] = {}
        if username is not None:
            params["username"] = username
            params["exact"] = "true" if exact else "false"
        return self._request("GET", f"/admin/realms/{realm}/users", params=params).json()

    def create_user(self, realm: str, user: Representation) -> None:
        self._request("POST", f"/admin/realms/{realm}/users", json=user)

    # ---------- Client roles ----------
    def get_client_roles(self, realm: str, client_id: str) -> list[Representation]:
        return self._request("GET", f"/admin/realms/{realm}/clients/{client_id}/roles").json()

    def create_client_role(self, realm: str, client_id: str, role: Representation) -> None:
        self._request("POST", f"/admin/realms/{realm}/clients/{client_id}/roles", json=role)

    def delete_client_role(self, realm: str, client_id: str, role: Representation) -> None:
        self._request("DELETE", f"/admin/realms/{realm}/clients/{client_id}/roles/{role['name']}")

    def add_client_roles_to_user(
        self, realm: str, user_id: str, client_id: str, roles: list[Representation]
    ) -> None:
        self._request(
            "POST",
            f"/admin/realms/{realm}/users/{user_id}/role-mappings/clients/{client_id}",
            json=roles,
        )

    # ---------- HTTP ----------
    def _authenticate(self) -> str:
        endpoint = f"/realms/{self._admin_realm}/protocol/openid-connect/token"
        response = self._http.post(
            endpoint,
            data={
                "grant_type": "password",
                "client_id": "admin-cli",
                "username": self._username,
                "password": self._password,
            },
        )
        if response.status_code != httpx.codes.OK:
            raise KeycloakApiError(response.status_code, response.text, endpoint)
        return response.json()["access_token"]

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._token is None:
            self._token = self._authenticate()

        response = self._http.request(method, path, headers={"Authorization": f"Bearer {self._token}"}, **kwargs)
        if response.status_code == httpx.codes.UNAUTHORIZED:
            # Admin tokens are short lived; retry once with a fresh one.
            self._token = self._authenticate()
            response = self._http.request(
                method, path, headers={"Authorization": f"Bearer {self._token}"}, **kwargs
            )

        if response.is_error:
            logger.warning("Keycloak request %s %s failed with %s", method, path, response.status_code)
            raise KeycloakApiError(response.status_code, response.text, path)
        return response
