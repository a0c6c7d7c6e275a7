import hmac
import os
import threading
import time
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import jsonify, request

from core.config import is_development
from core.logger import logger

JWT_ALGORITHM = 'HS256'
JWT_EXPIRATION_HOURS = 24  # Token expires after 24 hours

# Rate limiting: track failed login attempts
login_attempts = {}  # {ip: {count: int, reset_time: float}}
_login_attempts_lock = threading.Lock()
MAX_LOGIN_ATTEMPTS = 5
LOGIN_WINDOW_SECONDS = 300  # 5 minutes

_dev_secret = None


def get_jwt_secret():
    """JWT signing key; required in production, random per process in development"""
    global _dev_secret
    secret = os.getenv('JWT_SECRET_KEY')
    if secret:
        return secret
    if not is_development():
        raise ValueError("JWT_SECRET_KEY environment variable must be set in production")
    if _dev_secret is None:
        _dev_secret = os.urandom(32).hex()
        logger.warning("JWT_SECRET_KEY not set. Using random key for development. Set JWT_SECRET_KEY in production!")
    return _dev_secret


def get_admin_password():
    """Get admin password from environment variable"""
    return os.getenv('ADMIN_PASSWORD') or ''


def verify_password(password):
    """Verify if provided password matches admin password"""
    expected = get_admin_password()
    return bool(expected) and hmac.compare_digest(str(password).encode('utf-8'), expected.encode('utf-8'))


def get_client_ip():
    """Get client IP address for rate limiting"""
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    return request.remote_addr or 'unknown'


def check_rate_limit():
    """True while the client IP is under the failed-login limit for the current window"""
    ip = get_client_ip()
    now = time.time()

    with _login_attempts_lock:
        attempt_data = login_attempts.get(ip)
        if attempt_data is None or now > attempt_data['reset_time']:
            login_attempts[ip] = {'count': 0, 'reset_time': now + LOGIN_WINDOW_SECONDS}
            return True
        return attempt_data['count'] < MAX_LOGIN_ATTEMPTS


def record_failed_login():
    """Record a failed login attempt"""
    ip = get_client_ip()
    now = time.time()

    with _login_attempts_lock:
        attempt_data = login_attempts.setdefault(
            ip, {'count': 0, 'reset_time': now + LOGIN_WINDOW_SECONDS}
        )
        attempt_data['count'] += 1


def clear_login_attempts(ip):
    """Clear login attempts for an IP after successful login"""
    with _login_attempts_lock:
        login_attempts.pop(ip, None)


def create_jwt_token(user_id='admin', role='admin'):
    """Create a JWT token for an authenticated transport office user"""
    now = datetime.now(timezone.utc)
    payload = {
        'user_id': user_id,
        'role': role,
        'iat': now,
        'exp': now + timedelta(hours=JWT_EXPIRATION_HOURS)
    }
    return jwt.encode(payload, get_jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_jwt_token(token):
    """Verify and decode a JWT token"""
    try:
        return jwt.decode(token, get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def require_auth(f):
    """Decorator to require authentication using JWT"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get('Authorization')

        if not auth_header:
            return jsonify({'success': False, 'error': 'Authorization header required'}), 401

        # Expecting "Bearer <token>" format
        parts = auth_header.split(' ')
        if len(parts) != 2 or parts[0] != 'Bearer':
            return jsonify({'success': False, 'error': 'Invalid authorization format. Expected "Bearer <token>"'}), 401

        payload = verify_jwt_token(parts[1])
        if not payload:
            return jsonify({'success': False, 'error': 'Invalid or expired token'}), 401

        return f(*args, **kwargs)

    return decorated_function
