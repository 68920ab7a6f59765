"""
Authentication Routes for TaskHive Backend
Handles email signup/login, profile self-service and JWT verification.
"""

from flask import Blueprint, request, jsonify, current_app, g
import jwt
import datetime
import logging
from functools import wraps

from errors import AccountSuspended, NotAuthorized
from models import db, User, Role, WorkerStatus, insert_ignore
from extensions import limiter
import platform_settings

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

logger = logging.getLogger(__name__)

SIGNUP_ROLES = (Role.CUSTOMER, Role.WORKER)


# MARK: - Helper Functions

def _jwt_secret():
    return current_app.config['JWT_SECRET']


def generate_token(user):
    """Generate JWT token carrying the profile claims used by /session."""
    payload = {
        'user_id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role,
        'exp': datetime.datetime.now(datetime.timezone.utc)
        + datetime.timedelta(days=current_app.config.get('JWT_EXPIRES_DAYS', 30)),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm='HS256')


def decode_token(token):
    """Return the token's claims, or None when missing, expired or forged."""
    if not token:
        return None
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def verify_token(token):
    """Verify JWT token and return user_id"""
    claims = decode_token(token)
    return claims.get('user_id') if claims else None


def _bearer_token():
    return request.headers.get('Authorization', '').replace('Bearer ', '')


def require_auth(f):
    """Decorator to require an authenticated, non-suspended profile.

    The profile is loaded once into ``g.current_user``; the view receives
    ``user_id`` as a keyword argument.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = verify_token(_bearer_token())
        if not user_id:
            return jsonify({'error': 'Unauthorized'}), 401
        user = db.session.get(User, user_id)
        if not user:
            return jsonify({'error': 'Unauthorized'}), 401
        if user.is_suspended:
            return jsonify(AccountSuspended().to_dict()), 403
        g.current_user = user
        return f(user_id=user_id, *args, **kwargs)
    return decorated_function


def require_role(*roles):
    """Decorator factory: require_auth plus a role check."""
    def decorator(f):
        @wraps(f)
        @require_auth
        def decorated_function(user_id, *args, **kwargs):
            if g.current_user.role not in roles:
                return jsonify(NotAuthorized().to_dict()), 403
            return f(user_id=user_id, *args, **kwargs)
        return decorated_function
    return decorator


def current_user():
    return g.current_user


def ensure_profile(user_id, email=None, name=None, role=Role.CUSTOMER):
    """Create the profile row for a valid identity if it is missing.

    Idempotent: concurrent calls for the same id insert at most one row.
    """
    if role not in SIGNUP_ROLES:
        role = Role.CUSTOMER
    values = {
        'id': user_id,
        'email': email,
        'name': name or (email.split('@')[0] if email else None),
        'role': role,
        'worker_status': WorkerStatus.UNVERIFIED if role == Role.WORKER else None,
        'skills': [],
        'verification_docs': [],
        'is_online': False,
    }
    if insert_ignore(User, values):
        logger.info("Created missing profile for %s", user_id)
    db.session.commit()
    return db.session.get(User, user_id)


# MARK: - Email Authentication Routes

@auth_bp.route('/signup', methods=['POST'])
@limiter.limit("3 per minute")
def signup():
    """Create new customer or worker account with email/password"""
    data = request.get_json(force=True, silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    name = (data.get('name') or '').strip() or None
    role = data.get('role') or Role.CUSTOMER

    if not email or not password:
        return jsonify({'error': 'Email and password required'}), 400
    if len(password) < 6:
        return jsonify({'error': 'Password must be at least 6 characters'}), 400
    if role not in SIGNUP_ROLES:
        return jsonify({'error': 'role must be customer or worker'}), 400

    if not platform_settings.get_settings().allow_registration:
        return jsonify({'error': 'Registration is currently disabled', 'code': 'registration_closed'}), 403

    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 409

    new_user = User(
        email=email,
        name=name,
        phone=(data.get('phone') or '').strip() or None,
        role=role,
    )
    new_user.set_password(password)
    if role == Role.WORKER:
        new_user.worker_status = WorkerStatus.UNVERIFIED
        new_user.skills = []
        new_user.verification_docs = []
        new_user.is_online = False
    db.session.add(new_user)
    db.session.commit()
    logger.info("New %s registered: %s", role, new_user.id)

    return jsonify({
        'success': True,
        'token': generate_token(new_user),
        'user': new_user.to_dict(include_private=True),
    }), 201


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("5 per minute")
def login():
    """Login with email and password"""
    data = request.get_json(force=True, silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')

    if not email or not password:
        return jsonify({'error': 'Email and password required'}), 400

    db_user = User.query.filter_by(email=email).first()
    if not db_user or not db_user.check_password(password):
        return jsonify({'error': 'Invalid email or password'}), 401
    if db_user.is_suspended:
        return jsonify(AccountSuspended().to_dict()), 403

    return jsonify({
        'success': True,
        'token': generate_token(db_user),
        'user': db_user.to_dict(include_private=True),
    })


@auth_bp.route('/session', methods=['POST'])
def ensure_session():
    """Ensure a profile exists for the bearer token's identity and return it."""
    claims = decode_token(_bearer_token())
    if not claims or not claims.get('user_id'):
        return jsonify({'error': 'Unauthorized'}), 401

    user = ensure_profile(
        claims['user_id'],
        email=claims.get('email'),
        name=claims.get('name'),
        role=claims.get('role') or Role.CUSTOMER,
    )
    if user is None:
        # Identity collides with an existing profile (e.g. email taken)
        return jsonify({'error': 'Profile could not be created'}), 409
    if user.is_suspended:
        return jsonify(AccountSuspended().to_dict()), 403
    return jsonify({'success': True, 'user': user.to_dict(include_private=True)})


@auth_bp.route('/me', methods=['GET'])
@require_auth
def get_current_user(user_id):
    """Get current authenticated user profile"""
    return jsonify({'success': True, 'user': current_user().to_dict(include_private=True)})


@auth_bp.route('/me', methods=['PUT'])
@require_auth
def update_profile(user_id):
    """Update current user profile (name, phone). Role never changes."""
    db_user = current_user()
    data = request.get_json(force=True, silent=True) or {}

    if 'role' in data and data['role'] != db_user.role:
        return jsonify({'error': 'Role cannot be changed'}), 400

    if 'name' in data and data['name'] is not None:
        db_user.name = data['name'].strip() or db_user.name

    if 'phone' in data and data['phone'] is not None:
        db_user.phone = data['phone'].strip() or None

    db.session.commit()
    return jsonify({'success': True, 'user': db_user.to_dict(include_private=True)})
