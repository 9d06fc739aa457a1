"""Explicit user session, role permissions and Cognito sign-in."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

from smartshelf.models.inventory import Profile, Role
from smartshelf.store import BackingStore, StoreError
from smartshelf.validation import PermissionDenied

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    CREATE_PRODUCT = "create_product"
    EDIT_PRODUCT_CORE_FIELDS = "edit_product_core_fields"
    DELETE_PRODUCT = "delete_product"
    RECORD_TRANSACTIONS = "record_transactions"
    REQUEST_STOCK = "request_stock"
    CREATE_PURCHASE_ORDER = "create_purchase_order"
    MANAGE_VENDORS = "manage_vendors"
    MANAGE_USERS = "manage_users"
    VIEW_AUDIT_LOGS = "view_audit_logs"


# Every role appears in every row, so adding a role forces a decision here
_PERMISSIONS: dict[Permission, dict[Role, bool]] = {
    Permission.CREATE_PRODUCT: {Role.ADMIN: True, Role.WAREHOUSE_MANAGER: False, Role.VENDOR: False},
    Permission.EDIT_PRODUCT_CORE_FIELDS: {Role.ADMIN: True, Role.WAREHOUSE_MANAGER: True, Role.VENDOR: False},
    Permission.DELETE_PRODUCT: {Role.ADMIN: True, Role.WAREHOUSE_MANAGER: False, Role.VENDOR: False},
    Permission.RECORD_TRANSACTIONS: {Role.ADMIN: True, Role.WAREHOUSE_MANAGER: True, Role.VENDOR: False},
    Permission.REQUEST_STOCK: {Role.ADMIN: True, Role.WAREHOUSE_MANAGER: True, Role.VENDOR: False},
    Permission.CREATE_PURCHASE_ORDER: {Role.ADMIN: True, Role.WAREHOUSE_MANAGER: True, Role.VENDOR: False},
    Permission.MANAGE_VENDORS: {Role.ADMIN: True, Role.WAREHOUSE_MANAGER: False, Role.VENDOR: False},
    Permission.MANAGE_USERS: {Role.ADMIN: True, Role.WAREHOUSE_MANAGER: False, Role.VENDOR: False},
    Permission.VIEW_AUDIT_LOGS: {Role.ADMIN: True, Role.WAREHOUSE_MANAGER: False, Role.VENDOR: False},
}

# Product columns a vendor may change on its own products
VENDOR_EDITABLE_PRODUCT_FIELDS = frozenset({"name", "description", "price"})


@dataclass
class Session:
    user_id: str
    profile: Profile
    access_token: Optional[str] = None

    @property
    def role(self) -> Role:
        return self.profile.role

    @property
    def vendor_id(self) -> Optional[str]:
        return self.profile.vendor_id

    @property
    def is_vendor(self) -> bool:
        return self.role == Role.VENDOR

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.WAREHOUSE_MANAGER)

    @property
    def display_name(self) -> str:
        if self.profile.full_name:
            return self.profile.full_name
        if self.profile.email:
            return self.profile.email
        return "Vendor" if self.is_vendor else "User"

    def can(self, permission: Permission) -> bool:
        return _PERMISSIONS[permission][self.role]

    def require(self, permission: Permission) -> None:
        if not self.can(permission):
            raise PermissionDenied(
                f"{self.role.label} is not allowed to {permission.value.replace('_', ' ')}"
            )

    def editable_product_fields(self, fields: set[str]) -> set[str]:
        """Subset of `fields` this session may write on a product it can see."""
        if self.can(Permission.EDIT_PRODUCT_CORE_FIELDS):
            return set(fields)
        return set(fields) & VENDOR_EDITABLE_PRODUCT_FIELDS


def can_create_product(session: Session) -> bool:
    return session.can(Permission.CREATE_PRODUCT)


def can_edit_product_core_fields(session: Session) -> bool:
    return session.can(Permission.EDIT_PRODUCT_CORE_FIELDS)


def can_delete_product(session: Session) -> bool:
    return session.can(Permission.DELETE_PRODUCT)


def can_record_transactions(session: Session) -> bool:
    return session.can(Permission.RECORD_TRANSACTIONS)


def can_request_stock(session: Session) -> bool:
    return session.can(Permission.REQUEST_STOCK)


def can_manage_vendors(session: Session) -> bool:
    return session.can(Permission.MANAGE_VENDORS)


def can_manage_users(session: Session) -> bool:
    return session.can(Permission.MANAGE_USERS)


class AuthError(Exception):
    """Sign-in failed (bad credentials, unconfirmed user, Cognito unavailable)."""


class AuthService:
    """Cognito sign-in that resolves the caller's profile row into a Session."""

    def __init__(
        self,
        store: BackingStore,
        client_id: Optional[str],
        cognito_client: Optional[Any] = None,
        region_name: str = "us-west-2",
    ):
        self.store = store
        self.client_id = client_id
        self.cognito = cognito_client or boto3.client("cognito-idp", region_name=region_name)

    def sign_in(self, email: str, password: str) -> Session:
        if not self.client_id:
            raise AuthError("Cognito user pool client id is not configured")
        try:
            response = self.cognito.initiate_auth(
                ClientId=self.client_id,
                AuthFlow="USER_PASSWORD_AUTH",
                AuthParameters={"USERNAME": email, "PASSWORD": password},
            )
            access_token = response["AuthenticationResult"]["AccessToken"]
            user = self.cognito.get_user(AccessToken=access_token)
        except ClientError as e:
            logger.warning("Sign-in failed for %s: %s", email, e)
            raise AuthError(e.response.get("Error", {}).get("Message", str(e))) from e

        attributes = {a["Name"]: a["Value"] for a in user.get("UserAttributes", [])}
        user_id = attributes.get("sub", user.get("Username", ""))
        session = self.load_session(user_id)
        session.access_token = access_token
        logger.info("Signed in %s as %s", email, session.role.value)
        return session

    def load_session(self, user_id: str) -> Session:
        try:
            rows = self.store.select("profiles", filters={"user_id": user_id})
        except StoreError as e:
            raise AuthError(f"Could not load profile: {e}") from e
        if not rows:
            raise PermissionDenied("No profile found for this account")
        return Session(user_id=user_id, profile=Profile.from_row(rows[0]))

    def sign_out(self, session: Session) -> None:
        if not session.access_token:
            return
        try:
            self.cognito.global_sign_out(AccessToken=session.access_token)
        except ClientError as e:
            logger.warning("Sign-out failed for %s: %s", session.user_id, e)
        session.access_token = None
