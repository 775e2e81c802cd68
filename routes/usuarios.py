# usuarios.py
# Administración de operadores, roles y permisos, y consulta de la bitácora.

from datetime import timedelta

from flask import Blueprint, request, jsonify
from sqlalchemy import or_

from extensions import db
from models import User, Role, Permission, ActivityLog
from decorators import login_required, admin_required, permission_required
from errors import ValidationError, ConflictError, NotFoundError
from helpers import payload, parse_fecha
from log_activity import log_activity

usuarios_bp = Blueprint('usuarios', __name__, url_prefix='/admin')


def _roles_por_nombre(nombres):
    if not isinstance(nombres, list):
        raise ValidationError("'roles' debe ser una lista de nombres.")
    roles = Role.query.filter(Role.name.in_(nombres)).all() if nombres else []
    faltantes = set(nombres) - {r.name for r in roles}
    if faltantes:
        raise NotFoundError(f"Roles inexistentes: {', '.join(sorted(faltantes))}.")
    return roles


@usuarios_bp.route('/users', methods=['GET'])
@login_required
@admin_required
def list_users():
    users = User.query.order_by(User.username).all()
    return jsonify({"usuarios": [u.to_dict() for u in users]})


@usuarios_bp.route('/users', methods=['POST'])
@login_required
@admin_required
def create_user():
    datos = payload()
    username = (datos.get('username') or '').strip()
    password = datos.get('password') or ''
    if not username or not password:
        raise ValidationError('Usuario y contraseña son requeridos.')
    if User.query.filter_by(username=username).first():
        raise ConflictError(f"El usuario '{username}' ya existe.")

    try:
        user = User(username=username)
        user.set_password(password)
        user.roles = _roles_por_nombre(datos.get('roles', []))
        db.session.add(user)
        db.session.flush()
        log_activity(action="Creación de Usuario", category="Usuarios", resource_id=user.id,
                     details=f"Usuario: {username}. Roles: {', '.join(r.name for r in user.roles) or 'ninguno'}")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify({"message": "Usuario creado exitosamente.", "usuario": user.to_dict()}), 201


@usuarios_bp.route('/users/<int:user_id>/roles', methods=['PUT'])
@login_required
@admin_required
def set_user_roles(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"El usuario {user_id} no existe.")
    try:
        user.roles = _roles_por_nombre(payload().get('roles', []))
        log_activity(action="Edición de roles de usuario", category="Usuarios", resource_id=user.id,
                     details=', '.join(r.name for r in user.roles) or 'sin roles')
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify({"message": "Roles actualizados.", "usuario": user.to_dict()})


@usuarios_bp.route('/roles', methods=['GET'])
@login_required
@admin_required
def list_roles():
    return jsonify({"roles": [r.to_dict() for r in Role.query.order_by(Role.name).all()]})


@usuarios_bp.route('/roles', methods=['POST'])
@login_required
@admin_required
def create_role():
    """Crea un rol. 'permisos' es la lista de endpoints (p. ej. 'documentos.crear_documento')."""
    datos = payload()
    name = (datos.get('name') or '').strip()
    if not name:
        raise ValidationError('El nombre del rol es requerido.')
    if Role.query.filter_by(name=name).first():
        raise ConflictError(f"El rol '{name}' ya existe.")

    permisos = datos.get('permisos', [])
    if not isinstance(permisos, list):
        raise ValidationError("'permisos' debe ser una lista.")
    try:
        role = Role(name=name, description=datos.get('description'))
        for endpoint in permisos:
            permiso = Permission.query.filter_by(endpoint=endpoint).first()
            if permiso is None:
                permiso = Permission(endpoint=endpoint)
                db.session.add(permiso)
            role.permissions.append(permiso)
        db.session.add(role)
        db.session.flush()
        log_activity(action="Creación de Rol", category="Roles", resource_id=role.id,
                     details=f"Se agregó el nuevo rol: {name}")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify({"message": "Rol creado exitosamente.", "rol": role.to_dict()}), 201


@usuarios_bp.route('/activity-log', methods=['GET'])
@login_required
@permission_required('usuarios.view_activity_log')
def view_activity_log():
    query = ActivityLog.query

    user_id = request.args.get('user_id', type=int)
    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)
    category = request.args.get('category')
    if category:
        query = query.filter(ActivityLog.category == category)
    resource_id = request.args.get('resource_id')
    if resource_id:
        query = query.filter(ActivityLog.resource_id == resource_id)

    start_date = parse_fecha(request.args.get('start_date'), 'start_date')
    if start_date:
        query = query.filter(ActivityLog.timestamp >= start_date)
    end_date = parse_fecha(request.args.get('end_date'), 'end_date')
    if end_date:
        # Incluye todo el día final
        query = query.filter(ActivityLog.timestamp < end_date + timedelta(days=1))

    search_term = request.args.get('search_term')
    if search_term:
        like_term = f"%{search_term}%"
        query = query.filter(or_(ActivityLog.action.like(like_term), ActivityLog.details.like(like_term)))

    page = request.args.get('page', 1, type=int)
    logs = query.order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc()).paginate(
        page=page, per_page=50, error_out=False)
    return jsonify({
        "registros": [log.to_dict() for log in logs.items],
        "total": logs.total,
        "pagina": logs.page,
        "paginas": logs.pages
    })
