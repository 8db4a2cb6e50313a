from __future__ import annotations

import io
from datetime import date

from flask import Blueprint, request, send_file

from app.farmbook.audit import record_event
from app.farmbook.db import db_session
from app.farmbook.errors import ValidationError, field_error
from app.farmbook.modules.exports.service import EXPORT_TYPES, EXPORTERS
from app.farmbook.rbac import EXPORT, current_user, require_farm_access

bp = Blueprint("exports", __name__)


@bp.get("/<int:farm_id>/export")
@require_farm_access(EXPORT)
def farm_export(farm_id: int):
    s = db_session()
    u = current_user()
    export_type = (request.args.get("type") or "").strip()
    if export_type not in EXPORT_TYPES:
        raise ValidationError(
            details=[field_error("type", f"Type must be one of: {', '.join(EXPORT_TYPES)}", "INVALID_TYPE")]
        )

    text, row_count = EXPORTERS[export_type](s, farm_id)

    record_event(
        s,
        actor=u,
        action=f"{export_type}.export",
        entity_type="Farm",
        entity_id=str(farm_id),
        farm_id=farm_id,
        metadata={"row_count": row_count},
    )
    s.commit()

    filename = f"{export_type}_{farm_id}_{date.today().strftime('%Y%m%d')}.csv"
    return send_file(
        io.BytesIO(text.encode("utf-8")),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )
