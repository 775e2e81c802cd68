# decorators.py

from functools import wraps
from flask import jsonify
from flask_login import current_user, login_required  # noqa: F401  (re-exportado para las rutas)


def admin_required(f):
    """Restringe la vista a usuarios con el rol 'admin'."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'no_autenticado', 'message': 'Autenticación requerida.'}), 401
        if not current_user.is_admin():
            return jsonify({'error': 'prohibido', 'message': 'No tienes permisos para esta acción.'}), 403
        return f(*args, **kwargs)
    return decorated_function


def permission_required(endpoint_name):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'error': 'no_autenticado', 'message': 'Autenticación requerida.'}), 401

            # Los administradores tienen todos los permisos
            if current_user.is_admin():
                return f(*args, **kwargs)

            # Construye los permisos del usuario
            user_permissions = {permission.endpoint for role in current_user.roles for permission in role.permissions}

            if endpoint_name not in user_permissions:
                return jsonify({
                    'error': 'prohibido',
                    'message': 'No tienes los permisos necesarios para esta acción.'
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
