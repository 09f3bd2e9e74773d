from models import db
from models.user import Role
from security.rbac import ADMIN_ROLE, USER_ROLE

DEFAULT_ROLES = [USER_ROLE, ADMIN_ROLE]

def seed_roles():
    existing = {r.name for r in Role.query.all()}
    for name in DEFAULT_ROLES:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()
