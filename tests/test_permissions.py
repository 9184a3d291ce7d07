from types import SimpleNamespace

import pytest

from backoffice.core.errors import ForbiddenError
from backoffice.core.permissions import Action, can, ensure_can
from backoffice.models.user import UserRole


def actor(role, store_id=None, is_active=True):
    return SimpleNamespace(id=1, role=role, store_id=store_id, is_active=is_active)


@pytest.mark.parametrize(
    "role,action,allowed",
    [
        (UserRole.MANAGER, Action.DISTRIBUTE, True),
        (UserRole.WAREHOUSE, Action.DISTRIBUTE, True),
        (UserRole.WAREHOUSE, Action.MANAGE_MASTER_CATALOG, True),
        (UserRole.WAREHOUSE, Action.MANAGE_PURCHASES, False),
        (UserRole.MANAGER, Action.ACCEPT_DISTRIBUTION, False),
        (UserRole.ADMIN, Action.DISTRIBUTE, False),
        (UserRole.ADMIN, Action.ACCEPT_DISTRIBUTION, True),
        (UserRole.CASHIER, Action.VIEW_PURCHASES, True),
        (UserRole.CASHIER, Action.VIEW_DISTRIBUTIONS, False),
    ],
)
def test_role_capabilities(role, action, allowed):
    assert can(actor(role, store_id=1), action) is allowed


def test_store_scoped_roles_stay_in_their_store():
    admin = actor(UserRole.ADMIN, store_id=1)

    assert can(admin, Action.ACCEPT_DISTRIBUTION, 1)
    assert not can(admin, Action.ACCEPT_DISTRIBUTION, 2)
    assert not can(actor(UserRole.ADMIN), Action.ACCEPT_DISTRIBUTION, 1)


def test_global_roles_ignore_store():
    assert can(actor(UserRole.MANAGER), Action.VIEW_PURCHASES, 5)


def test_inactive_actor_denied():
    assert not can(actor(UserRole.MANAGER, is_active=False), Action.DISTRIBUTE)


def test_ensure_can_messages():
    with pytest.raises(ForbiddenError, match="Cross-store"):
        ensure_can(actor(UserRole.ADMIN, store_id=1), Action.ACCEPT_DISTRIBUTION, 2)
    with pytest.raises(ForbiddenError, match="distributions:create"):
        ensure_can(actor(UserRole.CASHIER, store_id=1), Action.DISTRIBUTE)
