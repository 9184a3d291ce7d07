from enum import Enum

from backoffice.core.errors import ForbiddenError
from backoffice.models.user import User, UserRole


class Action(str, Enum):
    VIEW_MASTER_CATALOG = "master_catalog:view"
    MANAGE_MASTER_CATALOG = "master_catalog:manage"
    DISTRIBUTE = "distributions:create"
    VIEW_DISTRIBUTIONS = "distributions:view"
    ACCEPT_DISTRIBUTION = "distributions:accept"
    VIEW_PURCHASES = "purchases:view"
    MANAGE_PURCHASES = "purchases:manage"


ROLE_PERMISSIONS: dict[UserRole, set[Action]] = {
    UserRole.MANAGER: {
        Action.VIEW_MASTER_CATALOG,
        Action.MANAGE_MASTER_CATALOG,
        Action.DISTRIBUTE,
        Action.VIEW_DISTRIBUTIONS,
        Action.VIEW_PURCHASES,
        Action.MANAGE_PURCHASES,
    },
    UserRole.WAREHOUSE: {
        Action.VIEW_MASTER_CATALOG,
        Action.MANAGE_MASTER_CATALOG,
        Action.DISTRIBUTE,
        Action.VIEW_DISTRIBUTIONS,
    },
    UserRole.ADMIN: {
        Action.VIEW_DISTRIBUTIONS,
        Action.ACCEPT_DISTRIBUTION,
        Action.VIEW_PURCHASES,
        Action.MANAGE_PURCHASES,
    },
    UserRole.CASHIER: {Action.VIEW_PURCHASES},
}

# Roles whose capabilities only apply inside their assigned store.
STORE_SCOPED_ROLES = frozenset({UserRole.ADMIN, UserRole.CASHIER})


def is_store_scoped(actor: User) -> bool:
    return actor.role in STORE_SCOPED_ROLES


def can(actor: User, action: Action, store_id: int | None = None) -> bool:
    if not actor.is_active:
        return False
    if action not in ROLE_PERMISSIONS.get(actor.role, set()):
        return False
    if is_store_scoped(actor):
        if actor.store_id is None:
            return False
        if store_id is not None and store_id != actor.store_id:
            return False
    return True


def ensure_can(actor: User, action: Action, store_id: int | None = None) -> None:
    if not can(actor, action, store_id):
        if store_id is not None and action in ROLE_PERMISSIONS.get(actor.role, set()):
            raise ForbiddenError("Cross-store access is not allowed")
        raise ForbiddenError(f"Permission required: {action.value}")
