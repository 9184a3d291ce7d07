import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from backoffice.models.audit import AuditLog

logger = logging.getLogger(__name__)

WAREHOUSE_DISTRIBUTION_CREATE = "WAREHOUSE_DISTRIBUTION_CREATE"
WAREHOUSE_DISTRIBUTION_UPDATE = "WAREHOUSE_DISTRIBUTION_UPDATE"
PRODUCT_CREATE = "PRODUCT_CREATE"
CATEGORY_CREATE = "CATEGORY_CREATE"
SUPPLIER_CREATE = "SUPPLIER_CREATE"
PURCHASE_CREATE = "PURCHASE_CREATE"
PURCHASE_UPDATE = "PURCHASE_UPDATE"
PURCHASE_DELETE = "PURCHASE_DELETE"


def _dump(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str, sort_keys=True)


def record_audit(
    db: Session,
    *,
    actor_id: int | None,
    action: str,
    entity: str,
    entity_id: int | None,
    old_value: Any = None,
    new_value: Any = None,
    store_id: int | None = None,
) -> AuditLog:
    """Queue an audit row on the caller's transaction; it commits or rolls back with the mutation."""
    entry = AuditLog(
        actor_user_id=actor_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        store_id=store_id,
        old_value=_dump(old_value),
        new_value=_dump(new_value),
    )
    db.add(entry)
    logger.debug("audit.%s entity=%s id=%s actor=%s", action.lower(), entity, entity_id, actor_id)
    return entry
