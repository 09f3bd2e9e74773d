from datetime import datetime

from flask import Blueprint, request, jsonify, g

from models import db
from models.space import Space
from security.rbac import actor_role, ADMIN_ROLE
from services.availability import get_live_space
from services.errors import Forbidden, ValidationError
from utils.auth_context import login_required
from utils.audit import log_event

spaces_bp = Blueprint("spaces", __name__, url_prefix="/spaces")


@spaces_bp.post("")
@login_required
def create_space():
    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip()
    location = (data.get("location") or "").strip()
    description = (data.get("description") or "").strip() or None
    base_price = data.get("basePrice")

    if not title or not location:
        raise ValidationError("title and location are required")
    if isinstance(base_price, bool) or not isinstance(base_price, int) or base_price <= 0:
        raise ValidationError("basePrice must be a positive integer")

    space = Space(
        owner_user_id=g.user.id,
        title=title,
        location=location,
        description=description,
        base_price=base_price,
    )
    db.session.add(space)
    db.session.commit()

    log_event("SPACE_CREATE", user_id=g.user.id, entity="space", entity_id=space.id)
    return jsonify(space.to_dict()), 201


@spaces_bp.get("")
def list_spaces():
    text = (request.args.get("q") or "").strip()

    q = Space.live()
    if text:
        like = f"%{text}%"
        q = q.filter(db.or_(Space.title.ilike(like), Space.location.ilike(like)))

    rows = q.order_by(Space.created_at.desc()).limit(200).all()
    return jsonify([s.to_dict() for s in rows]), 200


@spaces_bp.get("/me")
@login_required
def my_spaces():
    rows = (
        Space.query
        .filter(Space.owner_user_id == g.user.id, Space.deleted_at.is_(None))
        .order_by(Space.created_at.desc())
        .all()
    )
    return jsonify([s.to_dict() for s in rows]), 200


@spaces_bp.get("/<int:space_id>")
def get_space(space_id: int):
    return jsonify(get_live_space(space_id).to_dict()), 200


@spaces_bp.delete("/<int:space_id>")
@login_required
def delete_space(space_id: int):
    space = get_live_space(space_id)
    if space.owner_user_id != g.user.id and actor_role(g.user) != ADMIN_ROLE:
        raise Forbidden("Only the space owner can delete this space")

    space.deleted_at = datetime.utcnow()
    db.session.commit()

    log_event("SPACE_DELETE", user_id=g.user.id, entity="space", entity_id=space_id)
    return jsonify(message="Space deleted"), 200
