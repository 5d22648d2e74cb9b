from functools import wraps

from flask import jsonify
from flask_login import current_user


def require_roles(*allowed_roles):
    """Valida que el usuario autenticado tenga uno de los roles permitidos.

    Usar debajo de @login_required.
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if getattr(current_user, "role", None) not in allowed_roles:
                return jsonify({"ok": False, "error": "No tienes permisos para acceder a esta sección."}), 403
            return fn(*args, **kwargs)

        return wrapper

    return decorator
