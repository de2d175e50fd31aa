"""API error taxonomy and the JSON error handlers that render it."""
from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from .models import db


class ApiError(Exception):
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None, details=None, fields=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details
        self.fields = fields

    def to_dict(self):
        payload = {'message': self.message, 'error': type(self).__name__}
        if self.details:
            payload['details'] = self.details
        if self.fields:
            payload['fields'] = list(self.fields)
        return payload


class ValidationError(ApiError):
    status_code = 400
    default_message = 'Invalid request'


class NotFound(ApiError):
    status_code = 404
    default_message = 'Not found'


class Conflict(ApiError):
    status_code = 409
    default_message = 'Unique constraint failed'


class Unauthorized(ApiError):
    status_code = 401
    default_message = 'Authentication required'


class InvalidCredentials(Unauthorized):
    default_message = 'Invalid credentials'


class InvalidToken(Unauthorized):
    default_message = 'Invalid or expired token'


class UnsupportedMediaType(ApiError):
    status_code = 415
    default_message = 'Unsupported file type. Only JPEG, PNG, GIF, WEBP images and PDF documents are allowed.'


class PayloadTooLarge(ApiError):
    status_code = 413
    default_message = 'File is too large'


class Internal(ApiError):
    status_code = 500


def conflict_from_integrity_error(error, details):
    """Translate a unique-constraint IntegrityError into a Conflict with a field hint."""
    raw = str(getattr(error, 'orig', error) or '')
    fields = []
    lowered = raw.lower()
    for candidate in ('slug', 'email', 'language'):
        if candidate in lowered:
            fields.append(candidate)
    return Conflict('Unique constraint failed', details=details, fields=fields or None)


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if error.status_code >= 500:
            db.session.rollback()
            current_app.logger.error('API error: %s', error.message)
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        return response

    @app.errorhandler(RequestEntityTooLarge)
    def handle_request_too_large(error):
        response = jsonify(PayloadTooLarge('Request body is too large').to_dict())
        response.status_code = 413
        return response

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        response = jsonify({
            'message': error.description or error.name,
            'error': error.name.replace(' ', ''),
        })
        response.status_code = error.code or 500
        return response

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        current_app.logger.exception('Unhandled error while serving request.')
        response = jsonify({'message': 'Internal server error', 'error': 'Internal'})
        response.status_code = 500
        return response
