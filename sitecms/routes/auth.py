from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from .. import auth as accounts

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/login', methods=['POST'])
def login():
    payload = request.get_json(silent=True) or {}
    result = accounts.login(payload.get('email'), payload.get('password'))
    response = jsonify(result)
    # Mirrors the access token for the server-side /admin guard.
    response.set_cookie(
        current_app.config['ACCESS_TOKEN_COOKIE_NAME'],
        result['accessToken'],
        max_age=int(current_app.config['JWT_ACCESS_TOKEN_EXPIRES'].total_seconds()),
        httponly=True,
        secure=bool(current_app.config.get('SESSION_COOKIE_SECURE')),
        samesite='Lax',
    )
    return response


@auth_bp.route('/refresh-token', methods=['POST'])
def refresh_token():
    payload = request.get_json(silent=True) or {}
    return jsonify(accounts.refresh(payload.get('refreshToken')))


@auth_bp.route('/register', methods=['POST'])
@login_required
def register():
    return jsonify(accounts.register(request.get_json(silent=True))), 201
