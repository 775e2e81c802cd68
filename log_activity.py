from extensions import db
from models import ActivityLog, ahora
from flask_login import current_user


def usuario_actual_id():
    """Id del operador autenticado, o None en rutas públicas (firma externa)."""
    try:
        return current_user.id if current_user and current_user.is_authenticated else None
    except AttributeError:
        # Fuera de una petición no hay current_user
        return None


def log_activity(action, category=None, details=None, resource_id=None):
    """
    Registra una entrada en la bitácora de actividad.

    Se agrega a la transacción en curso: si la operación hace rollback, la
    entrada desaparece con ella. El commit lo hace quien llama.
    """
    # Limitar longitudes para evitar truncamiento
    if resource_id and len(str(resource_id)) > 50:
        resource_id = str(resource_id)[:50]

    if details and len(str(details)) > 500:
        details = str(details)[:500]

    if category and len(str(category)) > 100:
        category = str(category)[:100]

    if action and len(str(action)) > 255:
        action = str(action)[:255]

    log_entry = ActivityLog(
        user_id=usuario_actual_id(),
        action=action,
        category=category,
        details=details,
        resource_id=str(resource_id) if resource_id is not None else None,
        timestamp=ahora()
    )
    db.session.add(log_entry)
    return log_entry
