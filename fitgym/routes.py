# Decorators shared by the blueprints

from functools import wraps
from flask import current_app, abort, jsonify, request
from flask_login import current_user
from fitgym.audit import audit_log_security_event
from fitgym.utils import wants_json


def role_required(*required_roles):
    """
    Decorator to require specific roles.
    Usage: @role_required('Membership Staff')
    Can be used in addition to @login_required.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return current_app.login_manager.unauthorized()

            # Admin users bypass role checks
            if current_user.is_admin:
                return f(*args, **kwargs)

            user_roles = [role.name for role in current_user.roles]
            if not any(role in user_roles for role in required_roles):
                current_app.logger.warning(
                    f"Access denied for member {current_user.email} with roles {user_roles} "
                    f"to resource requiring {required_roles}")
                audit_log_security_event('ACCESS_DENIED',
                                         f'Member {current_user.email} with roles {user_roles} attempted to '
                                         f'access resource requiring roles {required_roles}')

                if wants_json(request):
                    return jsonify({
                        'success': False,
                        'error': f'Access denied. Required roles: {", ".join(required_roles)}'
                    }), 403
                abort(403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator
