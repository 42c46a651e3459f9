from typing import Set, List
import logging
from medcontrol.models.connection import ConnectionStatus
from medcontrol.models.user import UserRole

logger = logging.getLogger(__name__)


#------This Function lists accepted master uids for a dependent---------
async def get_accepted_masters(storage, dependent_uid: str) -> List[str]:
    conns = await storage.get_connections_by_dependent(dependent_uid)
    return [c.master_uid for c in conns if c.status == ConnectionStatus.ACCEPTED]


#------This Function lists controllers a master has accepted links to---------
async def get_linked_controllers(storage, master_uid: str) -> List[str]:
    controllers = []
    conns = await storage.get_connections_by_master(master_uid)
    for conn in conns:
        if conn.status != ConnectionStatus.ACCEPTED:
            continue
        linked = await storage.get_user_by_uid(conn.target_uid)
        if linked and linked.role == UserRole.CONTROLLER:
            controllers.append(linked.firebase_uid)
    return controllers


#------This Function resolves who supervises a dependent---------
async def get_supervisor_uids(storage, dependent_uid: str) -> Set[str]:
    # dependent -> master -> controller, never deeper
    masters = await get_accepted_masters(storage, dependent_uid)
    recipients = set(masters)
    for master_uid in masters:
        recipients.update(await get_linked_controllers(storage, master_uid))
    logger.debug(f"Resolved {len(recipients)} supervisor(s) for dependent {dependent_uid}")
    return recipients
