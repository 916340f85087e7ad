"""
API Error Handling

Every error leaves the API in the standard ``APIResponse`` envelope.
Application errors keep their own HTTP status and error code.
"""

from typing import Tuple

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from chemgrader.exceptions.application_errors import ApplicationError
from chemgrader.models.api_responses import APIResponse, ErrorCode
from utils.logger import logger

HTTP_ERROR_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.VALIDATION_ERROR,
    413: ErrorCode.VALIDATION_ERROR,
}


def handle_application_error(error: ApplicationError) -> Tuple:
    if error.http_status >= 500:
        logger.error(f"API error {error.error_id} on {request.path}: {error.message}")
    else:
        logger.info(f"API request to {request.path} rejected: {error.message}")

    response = APIResponse.error(
        message=error.message,
        code=error.error_code,
        field=error.field,
        details=error.details or None,
    )
    return jsonify(response.to_dict()), error.http_status


def handle_file_too_large(error: RequestEntityTooLarge) -> Tuple:
    response = APIResponse.error(
        message="Uploaded file is too large", code=ErrorCode.VALIDATION_ERROR, field="file"
    )
    return jsonify(response.to_dict()), 413


def handle_http_error(error: HTTPException) -> Tuple:
    response = APIResponse.error(
        message=error.description or error.name,
        code=HTTP_ERROR_CODES.get(error.code, ErrorCode.INTERNAL_ERROR),
    )
    return jsonify(response.to_dict()), error.code


def handle_unexpected_error(error: Exception) -> Tuple:
    logger.exception(f"Unhandled error on {request.path}: {error}")
    response = APIResponse.error(
        message="An unexpected error occurred. Please try again later.",
        code=ErrorCode.INTERNAL_ERROR,
    )
    return jsonify(response.to_dict()), 500


def register_error_handlers(app: Flask) -> None:
    app.register_error_handler(ApplicationError, handle_application_error)
    app.register_error_handler(RequestEntityTooLarge, handle_file_too_large)
    app.register_error_handler(HTTPException, handle_http_error)
    app.register_error_handler(Exception, handle_unexpected_error)
