"""
Document Blueprint — documents, versions, tags and folders.

Routes:
  POST   /documents                                  – create document
  GET    /documents                                  – list visible documents
  GET    /documents/<id>                             – document with versions
  PUT    /documents/<id>                             – edit title / description (draft)
  DELETE /documents/<id>                             – soft delete
  POST   /documents/<id>/versions                    – upload a version (multipart "file")
  GET    /documents/<id>/versions/<n>/content        – download a version
  POST   /documents/<id>/tags/<tag_id>               – tag
  DELETE /documents/<id>/tags/<tag_id>               – untag
  POST   /documents/<id>/revert-to-draft             – rejected → draft
  GET    /documents/<id>/history                     – audit trail
  POST   /tags | GET /tags                           – global tags
  POST   /folders | GET /folders/tree                – caller's folders
"""

from flask import Blueprint, Response, jsonify, request

from portfolio.blueprints import json_body, page_response, paginate, parse_int_field
from portfolio.services import document_service
from portfolio.services.current_user import current_user, require_auth
from portfolio.utils.errors import E, api_error

document_bp = Blueprint("document_bp", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# DOCUMENTS
# ═════════════════════════════════════════════════════════════════════════════

@document_bp.route("/documents", methods=["POST"])
@require_auth
def create_document():
    """Body: { title, description?, folder_id? }"""
    data = json_body()
    doc = document_service.create_document(
        current_user(),
        data.get("title"),
        description=data.get("description"),
        folder_id=parse_int_field(data.get("folder_id"), "folder_id", required=False),
    )
    return jsonify(doc.to_dict()), 201


@document_bp.route("/documents", methods=["GET"])
@require_auth
def list_documents():
    docs = document_service.list_documents(
        current_user(),
        status=request.args.get("status") or None,
        folder_id=request.args.get("folder_id", type=int),
        owner_id=request.args.get("owner_id", type=int),
    )
    items, total = paginate(docs)
    return jsonify(page_response(items, total)), 200


@document_bp.route("/documents/<int:document_id>", methods=["GET"])
@require_auth
def get_document(document_id):
    doc = document_service.get_document_for_view(document_id, current_user())
    return jsonify(doc.to_dict(include_versions=True)), 200


@document_bp.route("/documents/<int:document_id>", methods=["PUT"])
@require_auth
def update_document(document_id):
    data = json_body()
    doc = document_service.update_document(
        document_id, current_user(), data.get("title"), data.get("description"),
    )
    return jsonify(doc.to_dict()), 200


@document_bp.route("/documents/<int:document_id>", methods=["DELETE"])
@require_auth
def delete_document(document_id):
    document_service.delete_document(document_id, current_user())
    return "", 204


@document_bp.route("/documents/<int:document_id>/revert-to-draft", methods=["POST"])
@require_auth
def revert_to_draft(document_id):
    doc = document_service.revert_to_draft(document_id, current_user())
    return jsonify(doc.to_dict()), 200


@document_bp.route("/documents/<int:document_id>/history", methods=["GET"])
@require_auth
def document_history(document_id):
    logs = document_service.get_document_history(document_id, current_user())
    return jsonify([entry.to_dict() for entry in logs]), 200


# ═════════════════════════════════════════════════════════════════════════════
# VERSIONS
# ═════════════════════════════════════════════════════════════════════════════

@document_bp.route("/documents/<int:document_id>/versions", methods=["POST"])
@require_auth
def upload_version(document_id):
    """Multipart upload; the part's filename and mimetype describe the version."""
    upload = request.files.get("file")
    if upload is None:
        return api_error(E.VALIDATION_REQUIRED, "A 'file' part is required")
    version = document_service.upload_version(
        document_id,
        current_user(),
        file_name=upload.filename,
        mime_type=request.form.get("mime_type") or upload.mimetype,
        content=upload.read(),
    )
    return jsonify(version.to_dict()), 201


@document_bp.route("/documents/<int:document_id>/versions/<int:version_number>/content", methods=["GET"])
@require_auth
def download_version(document_id, version_number):
    version, content = document_service.get_version_content(document_id, version_number, current_user())
    return Response(
        content,
        mimetype=version.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{version.file_name}"'},
    )


# ═════════════════════════════════════════════════════════════════════════════
# TAGS
# ═════════════════════════════════════════════════════════════════════════════

@document_bp.route("/tags", methods=["POST"])
@require_auth
def create_tag():
    data = json_body()
    tag = document_service.create_tag(data.get("name"), data.get("color"))
    return jsonify(tag.to_dict()), 201


@document_bp.route("/tags", methods=["GET"])
@require_auth
def list_tags():
    return jsonify([t.to_dict() for t in document_service.list_tags()]), 200


@document_bp.route("/documents/<int:document_id>/tags/<int:tag_id>", methods=["POST"])
@require_auth
def add_tag(document_id, tag_id):
    doc = document_service.add_tag(document_id, tag_id, current_user())
    return jsonify(doc.to_dict()), 200


@document_bp.route("/documents/<int:document_id>/tags/<int:tag_id>", methods=["DELETE"])
@require_auth
def remove_tag(document_id, tag_id):
    doc = document_service.remove_tag(document_id, tag_id, current_user())
    return jsonify(doc.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════════
# FOLDERS
# ═════════════════════════════════════════════════════════════════════════════

@document_bp.route("/folders", methods=["POST"])
@require_auth
def create_folder():
    data = json_body()
    folder = document_service.create_folder(
        current_user(),
        data.get("name"),
        parent_id=parse_int_field(data.get("parent_id"), "parent_id", required=False),
    )
    return jsonify(folder.to_dict()), 201


@document_bp.route("/folders/tree", methods=["GET"])
@require_auth
def folder_tree():
    return jsonify(document_service.get_folder_tree(current_user())), 200
