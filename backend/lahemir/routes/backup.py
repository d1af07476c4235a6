# Overview: Flask API routes for backup download and restore.

from flask import Blueprint, Response, request

from ..decorators import api_route, ok, require_auth, require_role
from ..errors import InvalidBackupFormat
from ..models import ROLE_ADMIN
from ..services.container import get_services
from ..time_utils import utcnow

backup_bp = Blueprint("backup", __name__, url_prefix="/api/backup")


@backup_bp.get("")
@api_route("Failed to create backup")
@require_auth
@require_role(ROLE_ADMIN)
def export_backup():
    filename = f"lahemir-backup-{utcnow().strftime('%Y-%m-%d')}.json"
    return Response(
        get_services().backup.dumps(),
        mimetype="application/json",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@backup_bp.post("/restore")
@api_route("Failed to restore backup")
@require_auth
@require_role(ROLE_ADMIN)
def restore_backup():
    """
    Replace all data with a backup document.

    Accepts the document either as the JSON body or as an uploaded "file".
    """
    upload = request.files.get("file")
    if upload is not None:
        document = upload.read()
    else:
        document = request.get_json(silent=True)
        if document is None:
            raise InvalidBackupFormat("Backup file is not valid JSON.")

    summary = get_services().backup.restore_backup(document)
    return ok({"restored": summary}, "Data restored successfully.")
