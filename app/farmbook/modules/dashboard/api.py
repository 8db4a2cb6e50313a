from flask import Blueprint

from app.farmbook.api import ok
from app.farmbook.db import db_session
from app.farmbook.modules.dashboard.service import dashboard_stats
from app.farmbook.rbac import READ, require_farm_access

bp = Blueprint("dashboard", __name__)


@bp.get("/<int:farm_id>/dashboard")
@require_farm_access(READ)
def dashboard(farm_id: int):
    s = db_session()
    return ok(dashboard_stats(s, farm_id))
