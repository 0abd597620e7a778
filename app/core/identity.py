import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core import connections
from app.core.errors import IdentityNotFound
from app.models.user import User

logger = logging.getLogger(__name__)


def _whitelist_user_fid(db: Session, whitelist_id: int) -> int | None:
    row = db.execute(select(User.user_fid).where(User.id == whitelist_id)).first()
    return row[0] if row is not None else None


def resolve_internal_user(db: Session, external_id: str) -> int:
    """
    Map the id Rook sends us to a user_fid.

    Rook sometimes echoes the numeric whitelist id we handed it during the
    connect flow and sometimes its own generated id, so numeric ids try the
    whitelist first and then fall through to the connection lookup.
    """
    external_id = str(external_id).strip()

    if external_id.isdecimal():
        user_fid = _whitelist_user_fid(db, int(external_id))
        if user_fid is not None:
            logger.debug("Resolved %s as whitelist id -> user_fid=%s", external_id, user_fid)
            return user_fid

    user_fid = connections.find_user_fid(db, external_id)
    if user_fid is None:
        raise IdentityNotFound(external_id)
    return user_fid
