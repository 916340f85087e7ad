"""
Submission endpoints: upload an answer sheet, poll its status, read results.
"""

from flask import Blueprint, current_app, jsonify, request

from chemgrader.exceptions.application_errors import ValidationError
from chemgrader.models.api_responses import APIResponse
from chemgrader.models.documents import Document

submissions_bp = Blueprint("submissions", __name__, url_prefix="/api/submissions")


def _pipeline():
    return current_app.extensions["chemgrader"]["pipeline"]


@submissions_bp.route("", methods=["POST"])
def create_submission():
    """Accept a multipart upload (``file``, ``paper_id``, ``user_id``)."""
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded", field="file")

    document = Document(
        filename=upload.filename,
        content=upload.read(),
        mime_type=upload.mimetype or None,
    )
    submission = _pipeline().submit(
        document,
        paper_id=request.form.get("paper_id", "").strip(),
        user_id=request.form.get("user_id", "").strip(),
    )
    response = APIResponse.pending(
        data={"submission_id": submission.id, "status": submission.status.value},
        message="Submission received and queued for marking",
    )
    return jsonify(response.to_dict()), 202


@submissions_bp.route("/<submission_id>/status", methods=["GET"])
def submission_status(submission_id):
    status = _pipeline().get_status(submission_id)
    return jsonify(APIResponse.success(data=status.to_dict(), message=status.message).to_dict())


@submissions_bp.route("/<submission_id>/results", methods=["GET"])
def submission_results(submission_id):
    results = _pipeline().get_results(submission_id)
    if results.available:
        response = APIResponse.success(data=results.to_dict(), message=results.message)
    else:
        response = APIResponse.pending(data=results.to_dict(), message=results.message)
    return jsonify(response.to_dict())
