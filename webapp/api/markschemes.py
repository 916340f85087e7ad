"""
Mark scheme endpoints: structure and activate a scheme, read the active one,
and per-question statistics for a paper.
"""

from flask import Blueprint, current_app, jsonify, request

from chemgrader.exceptions.application_errors import NotFoundError, ValidationError
from chemgrader.models.api_responses import APIResponse
from chemgrader.models.documents import Document
from chemgrader.models.markscheme import MetadataHints

markschemes_bp = Blueprint("markschemes", __name__, url_prefix="/api/papers")

HINT_FIELDS = ("totalMarks", "totalQuestions", "totalSubparts")


def _services():
    return current_app.extensions["chemgrader"]


@markschemes_bp.route("/<paper_id>/markscheme", methods=["POST"])
def upload_markscheme(paper_id):
    """Structure a mark scheme from JSON ``{text, hints}`` or a multipart ``file``."""
    service = _services()["markschemes"]

    upload = request.files.get("file")
    if upload is not None and upload.filename:
        hints = MetadataHints.from_dict({key: request.form.get(key) for key in HINT_FIELDS})
        document = Document(filename=upload.filename, content=upload.read(),
                            mime_type=upload.mimetype or None)
        result = service.structure_document(document, hints, paper_id=paper_id)
    else:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict) or not payload.get("text"):
            raise ValidationError("Provide a mark scheme file or JSON with 'text'", field="text")
        hints = MetadataHints.from_dict(payload.get("hints"))
        result = service.structure(payload["text"], hints, paper_id=paper_id)

    record = service.activate(paper_id, result)
    warnings = [warning.message for warning in result.warnings]
    response = APIResponse.success(
        data={**record.to_dict(), "warnings": [w.to_dict() for w in result.warnings]},
        message=f"Mark scheme v{record.version} activated for paper {paper_id}",
        warnings=warnings,
    )
    return jsonify(response.to_dict()), 201


@markschemes_bp.route("/<paper_id>/markscheme", methods=["GET"])
def get_markscheme(paper_id):
    mark_scheme = _services()["markschemes"].get_active(paper_id)
    if mark_scheme is None:
        raise NotFoundError(
            f"No active mark scheme for paper {paper_id}",
            resource_type="mark_scheme", resource_id=paper_id,
        )
    return jsonify(APIResponse.success(data=mark_scheme.to_dict()).to_dict())


@markschemes_bp.route("/<paper_id>/statistics", methods=["GET"])
def paper_statistics(paper_id):
    statistics = _services()["pipeline"].question_statistics(paper_id)
    return jsonify(APIResponse.success(data={"paper_id": paper_id, "questions": statistics}).to_dict())
