from __future__ import annotations

import uuid

import pytest

from conftest import Dataset
from timetracking.core.config import Settings
from timetracking.integrations.keycloak import Representation
from timetracking.models.entities import Holiday, TimeSheet
from timetracking.repositories.db_repository import DbRepository
from timetracking.services.keycloak_deployment_service import (
    ALL_ROLE_NAMES,
    DEFAULT_USER_NAME,
    RESTRICT_TO_CUSTOMER_CLIENT_SCOPE,
    KeycloakDeploymentService,
    provision_identity_provider,
)


class FakeKeycloak:
    """In-memory identity provider assigning ids the way the admin API does."""

    def __init__(self) -> None:
        self.realms: dict[str, Representation] = {}
        self.clients: dict[str, list[Representation]] = {}
        self.client_scopes: dict[str, list[Representation]] = {}
        self.default_scopes: dict[str, list[str]] = {}
        self.users: dict[str, list[Representation]] = {}
        self.roles: dict[str, list[Representation]] = {}
        self.user_roles: dict[str, list[str]] = {}
        self.deleted_roles: list[str] = []

    def get_realms(self) -> list[Representation]:
        return list(self.realms.values())

    def create_realm(self, realm: Representation) -> None:
        name = realm["realm"]
        self.realms[name] = realm
        self.clients[name] = []
        self.client_scopes[name] = []
        self.users[name] = []

    def delete_realm(self, realm: str) -> None:
        del self.realms[realm]

    def get_clients(self, realm: str) -> list[Representation]:
        return self.clients[realm]

    def create_client(self, realm: str, client: Representation) -> None:
        self.clients[realm].append({**client, "id": str(uuid.uuid4())})

    def get_client_scopes(self, realm: str) -> list[Representation]:
        return self.client_scopes[realm]

    def create_client_scope(self, realm: str, client_scope: Representation) -> None:
        self.client_scopes[realm].append({**client_scope, "id": str(uuid.uuid4())})

    def add_scope_to_client(self, realm: str, client_id: str, scope_id: str) -> None:
        self.default_scopes.setdefault(client_id, []).append(scope_id)

    def get_users(self, realm: str, *, username: str | None = None, exact: bool = False) -> list[Representation]:
        return [user for user in self.users.get(realm, []) if username is None or user["username"] == username]

    def create_user(self, realm: str, user: Representation) -> None:
        self.users[realm].append({**user, "id": str(uuid.uuid4())})

    def get_client_roles(self, realm: str, client_id: str) -> list[Representation]:
        return list(self.roles.get(client_id, []))

    def create_client_role(self, realm: str, client_id: str, role: Representation) -> None:
        self.roles.setdefault(client_id, []).append({**role, "id": str(uuid.uuid4())})

    def delete_client_role(self, realm: str, client_id: str, role: Representation) -> None:
        self.roles[client_id] = [item for item in self.roles[client_id] if item["name"] != role["name"]]
        self.deleted_roles.append(role["name"])

    def add_client_roles_to_user(
        self, realm: str, user_id: str, client_id: str, roles: list[Representation]
    ) -> None:
        self.user_roles.setdefault(user_id, []).extend(role["name"] for role in roles)


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {"feature_authorization": True, "keycloak_realm": "tt", "keycloak_client_id": "tt-app"}
    values.update(overrides)
    return Settings(**values)


def _client_id(keycloak: FakeKeycloak, realm: str = "tt") -> str:
    return keycloak.clients[realm][0]["id"]


def test_nothing_happens_without_authorization(repository: DbRepository) -> None:
    keycloak = FakeKeycloak()
    service = KeycloakDeploymentService(keycloak, repository, _settings(feature_authorization=False))

    assert service.create_realm_if_not_exists() is False
    service.sync_client_roles()
    assert keycloak.realms == {}


def test_realm_creation_can_be_switched_off(repository: DbRepository) -> None:
    keycloak = FakeKeycloak()
    service = KeycloakDeploymentService(keycloak, repository, _settings(keycloak_create_realm=False))

    assert service.create_realm_if_not_exists() is False
    assert keycloak.realms == {}


def test_create_realm_provisions_everything(repository: DbRepository) -> None:
    keycloak = FakeKeycloak()
    service = KeycloakDeploymentService(keycloak, repository, _settings(product_name="Tracker"))

    assert service.create_realm_if_not_exists() is True

    assert keycloak.realms["tt"]["displayName"] == "Tracker"
    assert keycloak.realms["tt"]["accessTokenLifespan"] == 300
    client = keycloak.clients["tt"][0]
    assert client["clientId"] == "tt-app"
    assert client["publicClient"] is True
    scope_names = {scope["name"] for scope in keycloak.client_scopes["tt"]}
    assert scope_names == {"tt-app-audience", RESTRICT_TO_CUSTOMER_CLIENT_SCOPE}
    assert len(keycloak.default_scopes[client["id"]]) == 2
    admin = keycloak.users["tt"][0]
    assert admin["username"] == DEFAULT_USER_NAME
    assert admin["credentials"][0]["temporary"] is True
    assert sorted(role["name"] for role in keycloak.roles[client["id"]]) == sorted(ALL_ROLE_NAMES)
    assert sorted(keycloak.user_roles[admin["id"]]) == sorted(ALL_ROLE_NAMES)


def test_existing_realm_is_left_alone(repository: DbRepository) -> None:
    keycloak = FakeKeycloak()
    keycloak.create_realm({"realm": "tt"})
    service = KeycloakDeploymentService(keycloak, repository, _settings())

    assert service.create_realm_if_not_exists() is False
    assert keycloak.clients["tt"] == []


def test_sync_adds_missing_and_removes_obsolete_roles(repository: DbRepository) -> None:
    keycloak = FakeKeycloak()
    service = KeycloakDeploymentService(keycloak, repository, _settings())
    service.create_realm_if_not_exists()
    client_id = _client_id(keycloak)
    keycloak.delete_client_role("tt", client_id, {"name": "chart-view"})
    keycloak.create_client_role("tt", client_id, {"name": "legacy-role"})
    keycloak.deleted_roles.clear()

    service.sync_client_roles()

    assert sorted(role["name"] for role in keycloak.roles[client_id]) == sorted(ALL_ROLE_NAMES)
    assert keycloak.deleted_roles == ["legacy-role"]


def test_sync_requires_realm_and_client(repository: DbRepository) -> None:
    keycloak = FakeKeycloak()
    service = KeycloakDeploymentService(keycloak, repository, _settings())

    with pytest.raises(LookupError):
        service.sync_client_roles()

    keycloak.create_realm({"realm": "tt"})
    with pytest.raises(LookupError):
        service.sync_client_roles()


def test_delete_realm_if_exists(repository: DbRepository) -> None:
    keycloak = FakeKeycloak()
    keycloak.create_realm({"realm": "tt"})
    service = KeycloakDeploymentService(keycloak, repository, _settings())

    assert service.delete_realm_if_exists() is True
    assert service.delete_realm_if_exists() is False


def test_rows_without_owner_are_assigned_to_default_user(repository: DbRepository, dataset: Dataset) -> None:
    keycloak = FakeKeycloak()
    service = KeycloakDeploymentService(keycloak, repository, _settings())
    service.create_realm_if_not_exists()
    admin_id = uuid.UUID(keycloak.users["tt"][0]["id"])

    assert service.set_user_id_of_related_entities_to_default_user() == 5

    assert set(repository.get(TimeSheet, select=TimeSheet.user_id)) == {admin_id}
    assert set(repository.get(Holiday, select=Holiday.user_id)) == {admin_id}


def test_default_user_must_exist(repository: DbRepository) -> None:
    keycloak = FakeKeycloak()
    keycloak.create_realm({"realm": "tt"})
    service = KeycloakDeploymentService(keycloak, repository, _settings())

    with pytest.raises(LookupError):
        service.set_user_id_of_related_entities_to_default_user()


def test_provisioning_creates_realm_and_assigns_owners(repository: DbRepository, dataset: Dataset) -> None:
    keycloak = FakeKeycloak()

    provision_identity_provider(keycloak, repository, _settings())

    assert "tt" in keycloak.realms
    assert repository.count(TimeSheet, where=TimeSheet.user_id.is_(None)) == 0


def test_provisioning_is_skipped_without_authorization(repository: DbRepository) -> None:
    keycloak = FakeKeycloak()

    provision_identity_provider(keycloak, repository, _settings(feature_authorization=False))

    assert keycloak.realms == {}
