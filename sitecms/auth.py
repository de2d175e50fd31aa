"""Administrator authentication: credential checks, JWT issuance and the bearer loader."""
from flask import current_app, jsonify
from flask_jwt_extended import JWTManager, create_access_token, create_refresh_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from flask_login import LoginManager
from jwt.exceptions import PyJWTError
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import (
    Conflict,
    InvalidCredentials,
    InvalidToken,
    Unauthorized,
    ValidationError,
    conflict_from_integrity_error,
)
from .models import db, User, normalize_user_role
from .utils import clean_text, is_valid_email

login_manager = LoginManager()
jwt = JWTManager()

AUTH_DUMMY_HASH = generate_password_hash('sitecms::dummy-auth-check')
PASSWORD_MIN_LENGTH = 8
TOKEN_TYPE_ACCESS = 'access'
TOKEN_TYPE_REFRESH = 'refresh'


@login_manager.user_loader
def load_user(user_id):
    try:
        parsed_id = int(user_id)
    except (TypeError, ValueError):
        return None
    return db.session.get(User, parsed_id)


@login_manager.request_loader
def load_user_from_request(request):
    scheme, _, token = (request.headers.get('Authorization') or '').partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    try:
        return user_from_token(token.strip(), TOKEN_TYPE_ACCESS)
    except InvalidToken:
        return None


@login_manager.unauthorized_handler
def unauthorized():
    response = jsonify(Unauthorized().to_dict())
    response.status_code = 401
    return response


def user_from_token(token, expected_type):
    """Decode a signed token and return its user, or raise InvalidToken."""
    try:
        claims = decode_token(token)
    except (JWTExtendedException, PyJWTError) as error:
        raise InvalidToken() from error
    if claims.get('type') != expected_type:
        raise InvalidToken()
    try:
        user_id = int(claims.get('sub'))
    except (TypeError, ValueError) as error:
        raise InvalidToken() from error
    user = db.session.get(User, user_id)
    if user is None:
        raise InvalidToken()
    return user


def issue_access_token(user):
    return create_access_token(identity=str(user.id), additional_claims={'role': normalize_user_role(user.role)})


def login(email, password):
    email = clean_text(email, 120).lower()
    password = password or ''
    if not email or not password:
        raise ValidationError('Email and password are required', fields=['email', 'password'])

    user = User.query.filter_by(email=email).first()
    if user is None:
        # Keep response timing closer for unknown emails.
        check_password_hash(AUTH_DUMMY_HASH, password)
        current_app.logger.warning('Failed admin login for unknown email.')
        raise InvalidCredentials()
    if not user.check_password(password):
        current_app.logger.warning('Failed admin login for user %s.', user.id)
        raise InvalidCredentials()

    current_app.logger.info('Admin user %s logged in.', user.id)
    return {
        'user': user.to_dict(),
        'accessToken': issue_access_token(user),
        'refreshToken': create_refresh_token(identity=str(user.id)),
    }


def refresh(refresh_token):
    if not isinstance(refresh_token, str) or not refresh_token.strip():
        raise ValidationError('Refresh token is required', fields=['refreshToken'])
    user = user_from_token(refresh_token.strip(), TOKEN_TYPE_REFRESH)
    return {'accessToken': issue_access_token(user)}


def register(payload):
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    email = clean_text(payload.get('email'), 120).lower()
    password = payload.get('password') or ''
    name = clean_text(payload.get('name'), 200)
    if not email or not password or not name:
        raise ValidationError('Email, password, and name are required', fields=['email', 'password', 'name'])
    if not is_valid_email(email):
        raise ValidationError('Email address is not valid', fields=['email'])
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f'Password must be at least {PASSWORD_MIN_LENGTH} characters long',
            fields=['password'],
        )
    if User.query.filter_by(email=email).first() is not None:
        raise Conflict('User with this email already exists', fields=['email'])

    user = User(email=email, name=name, role=normalize_user_role(payload.get('role')))
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as error:
        db.session.rollback()
        raise conflict_from_integrity_error(error, 'User could not be created') from error
    current_app.logger.info('Admin user %s registered.', user.id)
    return user.to_dict()
