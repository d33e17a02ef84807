"""Provisions the identity provider realm used by the application."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import timedelta

from timetracking.core.config import Settings, get_settings
from timetracking.integrations.keycloak import KeycloakRepository, Representation
from timetracking.models.entities import Holiday, TimeSheet
from timetracking.repositories.db_repository import DbRepository

logger = logging.getLogger(__name__)

DEFAULT_USER_NAME = "admin"
DEFAULT_PASSWORD = "admin"

RESTRICT_TO_CUSTOMER_CLIENT_SCOPE = "restrict-to-customer"
RESTRICT_TO_CUSTOMER_MAPPER = "restrict-to-customer-mapper"
RESTRICT_TO_CUSTOMER_CLAIM = "restrict_to_customer"
RESTRICT_TO_CUSTOMER_ATTRIBUTE = "restrict_to_customer"

ROLE_AREAS = ("administration", "master-data", "time-sheet", "chart", "report")
ROLE_PERMISSIONS = ("view", "manage")
ALL_ROLE_NAMES = tuple(f"{area}-{permission}" for area in ROLE_AREAS for permission in ROLE_PERMISSIONS)

DEFAULT_USER_PROFILE = {
    "attributes": [
        {
            "name": "username",
            "displayName": "${username}",
            "validations": {
                "length": {"min": 1, "max": 255},
                "username-prohibited-characters": {},
                "up-username-not-idn-homograph": {},
            },
            "permissions": {"view": ["admin", "user"], "edit": ["admin", "user"]},
            "multivalued": False,
        },
        {
            "name": "email",
            "displayName": "${email}",
            "validations": {"email": {}, "length": {"max": 255}},
            "annotations": {},
            "permissions": {"view": ["admin", "user"], "edit": ["admin", "user"]},
            "multivalued": False,
        },
        {
            "name": "firstName",
            "displayName": "${firstName}",
            "validations": {"length": {"max": 255}, "person-name-prohibited-characters": {}},
            "annotations": {},
            "permissions": {"view": ["admin", "user"], "edit": ["admin", "user"]},
            "multivalued": False,
        },
        {
            "name": "lastName",
            "displayName": "${lastName}",
            "validations": {"length": {"max": 255}, "person-name-prohibited-characters": {}},
            "annotations": {},
            "permissions": {"view": ["admin", "user"], "edit": ["admin", "user"]},
            "multivalued": False,
        },
    ],
    "groups": [
        {
            "name": "user-metadata",
            "displayHeader": "User metadata",
            "displayDescription": "Attributes, which refer to user metadata",
        }
    ],
}


def _seconds(delta: timedelta) -> int:
    return int(delta.total_seconds())


def build_client_roles(client_id: str) -> list[Representation]:
    return [{"name": name, "containerId": client_id, "clientRole": True} for name in ALL_ROLE_NAMES]


class KeycloakDeploymentService:
    """Idempotent creation of realm, client, scopes, admin user and roles."""

    def __init__(
        self,
        keycloak: KeycloakRepository,
        repository: DbRepository,
        settings: Settings | None = None,
    ) -> None:
        self.keycloak = keycloak
        self.repo = repository
        self.settings = settings or get_settings()

    @property
    def realm(self) -> str:
        return self.settings.keycloak_realm

    @property
    def client_id(self) -> str:
        return self.settings.keycloak_client_id

    def create_realm_if_not_exists(self) -> bool:
        if not self.settings.feature_authorization or not self.settings.keycloak_create_realm:
            return False

        if any(item.get("realm") == self.realm for item in self.keycloak.get_realms()):
            return False

        logger.info("Create Keycloak realm '%s' ...", self.realm)
        product_name = self.settings.product_name
        realm = self._create_realm(product_name)
        client_id = self._create_client(realm, product_name)
        audience_scope_id = self._create_audience_client_scope(realm)
        self.keycloak.add_scope_to_client(realm, client_id, audience_scope_id)
        restrict_scope_id = self._create_restrict_to_customer_client_scope(realm)
        self.keycloak.add_scope_to_client(realm, client_id, restrict_scope_id)
        admin_user_id = self._create_default_admin_user(realm)
        client_roles = self._create_client_roles(realm, client_id)
        self.keycloak.add_client_roles_to_user(realm, admin_user_id, client_id, client_roles)
        logger.info("Keycloak realm '%s' created.", realm)
        return True

    def sync_client_roles(self) -> None:
        if not self.settings.feature_authorization:
            return

        if not any(item.get("realm") == self.realm for item in self.keycloak.get_realms()):
            raise LookupError(f"Keycloak realm '{self.realm}' not found")

        client = next(
            (item for item in self.keycloak.get_clients(self.realm) if item.get("clientId") == self.client_id),
            None,
        )
        if client is None:
            raise LookupError(f"Keycloak client '{self.client_id}' not found")

        saved_roles = self.keycloak.get_client_roles(self.realm, client["id"])
        current_roles = build_client_roles(self.client_id)
        saved_names = {role["name"] for role in saved_roles}
        current_names = {role["name"] for role in current_roles}

        for role in current_roles:
            if role["name"] not in saved_names:
                self.keycloak.create_client_role(self.realm, client["id"], role)
        for role in saved_roles:
            if role["name"] not in current_names:
                self.keycloak.delete_client_role(self.realm, client["id"], role)

    def delete_realm_if_exists(self) -> bool:
        if not any(item.get("realm") == self.realm for item in self.keycloak.get_realms()):
            return False
        self.keycloak.delete_realm(self.realm)
        return True

    def set_user_id_of_related_entities_to_default_user(self) -> int:
        """Assign rows without owner to the default admin user."""

        users = self.keycloak.get_users(self.realm, username=DEFAULT_USER_NAME, exact=True)
        if not users:
            raise LookupError(f"Keycloak user '{DEFAULT_USER_NAME}' not found")

        default_user_id = uuid.UUID(users[0]["id"])
        updated = self.repo.bulk_update(TimeSheet, TimeSheet.user_id.is_(None), {"user_id": default_user_id})
        updated += self.repo.bulk_update(Holiday, Holiday.user_id.is_(None), {"user_id": default_user_id})
        return updated

    def _create_realm(self, product_name: str) -> str:
        realm: Representation = {
            "realm": self.realm,
            "displayName": product_name,
            "enabled": True,
            "editUsernameAllowed": True,
            "rememberMe": True,
            "ssoSessionIdleTimeout": _seconds(timedelta(minutes=30)),
            "ssoSessionMaxLifespan": _seconds(timedelta(hours=10)),
            "ssoSessionIdleTimeoutRememberMe": _seconds(timedelta(days=7)),
            "ssoSessionMaxLifespanRememberMe": _seconds(timedelta(days=30)),
            "offlineSessionIdleTimeout": _seconds(timedelta(days=30)),
            "accessCodeLifespanLogin": _seconds(timedelta(minutes=30)),
            "accessCodeLifespanUserAction": _seconds(timedelta(minutes=5)),
            "oauth2DeviceCodeLifespan": _seconds(timedelta(minutes=10)),
            "oauth2DevicePollingInterval": _seconds(timedelta(seconds=5)),
            "accessTokenLifespan": _seconds(timedelta(minutes=5)),
            "accessTokenLifespanForImplicitFlow": _seconds(timedelta(minutes=15)),
            "accessCodeLifespan": _seconds(timedelta(minutes=1)),
            "actionTokenGeneratedByUserLifespan": _seconds(timedelta(minutes=5)),
            "actionTokenGeneratedByAdminLifespan": _seconds(timedelta(hours=12)),
            "components": {
                "org.keycloak.userprofile.UserProfileProvider": [
                    {
                        "providerId": "declarative-user-profile",
                        "config": {"kc.user.profile.config": [json.dumps(DEFAULT_USER_PROFILE)]},
                    }
                ]
            },
        }
        self.keycloak.create_realm(realm)
        return realm["realm"]

    def _create_client(self, realm: str, product_name: str) -> str:
        self.keycloak.create_client(
            realm,
            {
                "clientId": self.client_id,
                "name": product_name,
                "enabled": True,
                "clientAuthenticatorType": "client-secret",
                "standardFlowEnabled": True,
                "publicClient": True,
                "frontchannelLogout": True,
                "redirectUris": ["*"],
                "webOrigins": ["*"],
                "attributes": {"post.logout.redirect.uris": "*"},
                "fullScopeAllowed": True,
            },
        )
        return self._find_id(self.keycloak.get_clients(realm), "clientId", self.client_id)

    def _create_audience_client_scope(self, realm: str) -> str:
        audience_name = f"{self.client_id}-audience"
        self.keycloak.create_client_scope(
            realm,
            {
                "name": audience_name,
                "protocol": "openid-connect",
                "protocolMappers": [
                    {
                        "id": str(uuid.uuid4()),
                        "name": audience_name,
                        "protocol": "openid-connect",
                        "protocolMapper": "oidc-audience-mapper",
                        "config": {
                            "included.client.audience": self.client_id,
                            "access.token.claim": "true",
                        },
                    }
                ],
            },
        )
        return self._find_id(self.keycloak.get_client_scopes(realm), "name", audience_name)

    def _create_restrict_to_customer_client_scope(self, realm: str) -> str:
        self.keycloak.create_client_scope(
            realm,
            {
                "name": RESTRICT_TO_CUSTOMER_CLIENT_SCOPE,
                "protocol": "openid-connect",
                "protocolMappers": [
                    {
                        "id": str(uuid.uuid4()),
                        "name": RESTRICT_TO_CUSTOMER_MAPPER,
                        "protocol": "openid-connect",
                        "protocolMapper": "oidc-usermodel-attribute-mapper",
                        "config": {
                            "multivalued": "true",
                            "access.token.claim": "true",
                            "id.token.claim": "false",
                            "userinfo.token.claim": "false",
                            "claim.name": RESTRICT_TO_CUSTOMER_CLAIM,
                            "user.attribute": RESTRICT_TO_CUSTOMER_ATTRIBUTE,
                        },
                    }
                ],
            },
        )
        return self._find_id(self.keycloak.get_client_scopes(realm), "name", RESTRICT_TO_CUSTOMER_CLIENT_SCOPE)

    def _create_default_admin_user(self, realm: str) -> str:
        self.keycloak.create_user(
            realm,
            {
                "username": DEFAULT_USER_NAME,
                "requiredActions": [],
                "enabled": True,
                "email": f"{DEFAULT_USER_NAME}@localhost",
                "firstName": DEFAULT_USER_NAME,
                "lastName": DEFAULT_USER_NAME,
                "credentials": [{"type": "password", "value": DEFAULT_PASSWORD, "temporary": True}],
            },
        )
        users = self.keycloak.get_users(realm, username=DEFAULT_USER_NAME, exact=True)
        return self._find_id(users, "username", DEFAULT_USER_NAME)

    def _create_client_roles(self, realm: str, client_id: str) -> list[Representation]:
        roles = build_client_roles(client_id)
        for role in roles:
            self.keycloak.create_client_role(realm, client_id, role)

        names = {role["name"] for role in roles}
        return [role for role in self.keycloak.get_client_roles(realm, client_id) if role["name"] in names]

    @staticmethod
    def _find_id(items: list[Representation], field: str, value: str) -> str:
        for item in items:
            if item.get(field) == value:
                return item["id"]
        raise LookupError(f"Keycloak resource with {field} '{value}' not found after creation")


def provision_identity_provider(keycloak: KeycloakRepository, repository: DbRepository, settings: Settings) -> None:
    """Startup hook: create the realm once, then keep client roles in sync."""

    if not settings.feature_authorization:
        return

    service = KeycloakDeploymentService(keycloak, repository, settings)
    if service.create_realm_if_not_exists():
        updated = service.set_user_id_of_related_entities_to_default_user()
        logger.info("Assigned %s rows without owner to the default user.", updated)
    service.sync_client_roles()
