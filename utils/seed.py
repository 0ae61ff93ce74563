import logging

from models import db
from models.user import Role, ROLE_NAMES

logger = logging.getLogger(__name__)


def seed_roles() -> int:
    """Create any missing role rows. Returns how many were added."""
    existing = {r.name for r in Role.query.all()}
    missing = [name for name in ROLE_NAMES if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    db.session.commit()
    if missing:
        logger.info("Seeded roles: %s", ", ".join(missing))
    return len(missing)
