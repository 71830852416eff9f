import json
import logging

from fieldtrack.store.base import AUDIT_LOGS, EntityStore
from fieldtrack.utils.timeutil import utcnow_iso
from fieldtrack.workflow.machine import Actor

logger = logging.getLogger(__name__)


def record(store: EntityStore, actor: Actor, action: str, entity_type: str, entity_id: str, **details):
    """Append an audit row. Call inside the transaction that made the change."""
    logger.info("%s %s %s by %s (%s)", action, entity_type, entity_id, actor.user_id, actor.role.value)
    return store.create(AUDIT_LOGS, {
        "actor_id": actor.user_id,
        "actor_role": actor.role.value,
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "details": json.dumps(details, default=str),
        "created_at": utcnow_iso(),
    })
