# Overview: Flask API routes for sales import and backups; parses input and returns JSON responses.

"""
Excel sale import, import rollback and JSON backups.

Uploads are limited by MAX_CONTENT_LENGTH (10 MB by default).
"""

from io import BytesIO

from flask import Blueprint, request, jsonify, g, current_app, send_file

from ..responses import error_response
from ..services import backup_service, import_service
from ..services.backup_service import BackupError, BackupNotFoundError
from ..services.import_service import SalesImportError
from ..decorators import require_auth, require_permission


sales_import_bp = Blueprint("sales_import", __name__, url_prefix="/api/sales-import")


def _form_flag(name: str, alias: str, default: bool) -> bool:
    raw = request.form.get(name, request.form.get(alias))
    if raw is None:
        return default
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# IMPORT
# =============================================================================

@sales_import_bp.post("/upload")
@require_auth
@require_permission("canImportSales")
def upload_route():
    """
    Multipart upload.

    Form fields:
    - salesFile: the .xlsx workbook
    - dryRun: default true, validate only
    - overwriteExisting: default false, update sales with the same contract no
    """
    file = request.files.get("salesFile")
    if file is None or not file.filename:
        return error_response("No Excel file uploaded (salesFile)", 400)

    dry_run = _form_flag("dryRun", "dry_run", True)
    overwrite = _form_flag("overwriteExisting", "overwrite_existing", False)
    try:
        results = import_service.import_sales(
            BytesIO(file.read()), file.filename, g.current_user, dry_run=dry_run, overwrite=overwrite
        )
    except SalesImportError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to import sales")
        return error_response("Internal server error", 500)

    return jsonify({
        "success": results.pop("success"),
        "message": results.pop("message"),
        "results": results,
    })


@sales_import_bp.delete("/rollback")
@require_auth
@require_permission("canImportSales")
def rollback_route():
    """Body: {hours} or {start_date, end_date} in Turkey time, plus confirm: true."""
    data = request.get_json(silent=True) or {}
    try:
        result = import_service.rollback(data, g.current_user)
    except (SalesImportError, BackupError) as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to roll back imported sales")
        return error_response("Internal server error", 500)

    return jsonify({
        "success": True,
        "message": f"{result['deleted_count']} imported sales rolled back",
        **result,
    })


@sales_import_bp.get("/template")
@require_auth
@require_permission("canImportSales")
def template_route():
    return send_file(
        import_service.build_template(),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=import_service.TEMPLATE_FILENAME,
    )


# =============================================================================
# BACKUPS
# =============================================================================

@sales_import_bp.get("/backups")
@require_auth
@require_permission("canManageBackups")
def list_backups_route():
    backups = backup_service.list_backups(request.args.get("type"))
    return jsonify({"backups": [b.to_dict() for b in backups], "count": len(backups)})


@sales_import_bp.post("/create-backup")
@require_auth
@require_permission("canManageBackups")
def create_backup_route():
    data = request.get_json(silent=True) or {}
    try:
        backup = backup_service.create_manual_backup(data.get("type"), data.get("description"), g.current_user.id)
    except BackupError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to create backup")
        return error_response("Internal server error", 500)

    return jsonify({"message": "Backup created", "backup": backup.to_dict()}), 201


@sales_import_bp.post("/restore/<path:filename>")
@require_auth
@require_permission("canManageBackups")
def restore_backup_route(filename: str):
    data = request.get_json(silent=True) or {}
    try:
        result = backup_service.restore_backup(filename, data.get("confirm_restore") is True, g.current_user.id)
    except BackupNotFoundError as e:
        return error_response(str(e), 404)
    except BackupError as e:
        return error_response(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to restore backup")
        return error_response("Internal server error", 500)

    return jsonify({"message": "Backup restored", **result})


@sales_import_bp.get("/download/<path:filename>")
@require_auth
@require_permission("canManageBackups")
def download_backup_route(filename: str):
    try:
        name, payload = backup_service.download_payload(filename)
    except BackupNotFoundError as e:
        return error_response(str(e), 404)
    except BackupError as e:
        return error_response(str(e), 400)

    return send_file(
        BytesIO(payload),
        mimetype="application/json",
        as_attachment=True,
        download_name=name,
    )


@sales_import_bp.delete("/backup/<path:filename>")
@require_auth
@require_permission("canManageBackups")
def delete_backup_route(filename: str):
    try:
        backup_service.soft_delete(filename, g.current_user.id)
    except BackupNotFoundError as e:
        return error_response(str(e), 404)
    except BackupError as e:
        return error_response(str(e), 400)

    return jsonify({"message": "Backup deleted"})
