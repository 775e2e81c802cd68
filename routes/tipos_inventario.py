# tipos_inventario.py
# Catálogo de tipos de inventario. Un tipo desactivado deja de aceptar
# artículos y actas nuevas pero conserva las que ya lo usan.

from flask import Blueprint, request, jsonify

from extensions import db
from models import TipoInventario, Articulo
from decorators import login_required, permission_required
from errors import InventoryTypeNotFound, ValidationError, ConflictError
from forms import TipoInventarioForm, EditarTipoInventarioForm
from helpers import validar_formulario, parse_bool, payload
from log_activity import log_activity

tipos_inventario_bp = Blueprint('tipos_inventario', __name__)


def _tipo_o_404(tipo_id):
    tipo = db.session.get(TipoInventario, tipo_id)
    if tipo is None:
        raise InventoryTypeNotFound(f"El tipo de inventario {tipo_id} no existe.")
    return tipo


def _con_conteo(tipo):
    data = tipo.to_dict()
    data['total_articulos'] = Articulo.query.filter_by(id_tipo_inventario=tipo.id, activo=True).count()
    return data


@tipos_inventario_bp.route('/inventory-types', methods=['GET'])
@login_required
@permission_required('tipos_inventario.listar_tipos')
def listar_tipos():
    query = TipoInventario.query
    if not parse_bool(request.args.get('incluir_inactivos', 'false')):
        query = query.filter(TipoInventario.activo.is_(True))
    tipos = query.order_by(TipoInventario.orden, TipoInventario.nombre).all()
    return jsonify({"tipos": [t.to_dict() for t in tipos], "total": len(tipos)})


@tipos_inventario_bp.route('/inventory-types/<int:tipo_id>', methods=['GET'])
@login_required
@permission_required('tipos_inventario.ver_tipo')
def ver_tipo(tipo_id):
    return jsonify({"tipo": _con_conteo(_tipo_o_404(tipo_id))})


@tipos_inventario_bp.route('/inventory-types/code/<codigo>', methods=['GET'])
@login_required
@permission_required('tipos_inventario.ver_tipo')
def ver_tipo_por_codigo(codigo):
    tipo = TipoInventario.query.filter_by(codigo=codigo.lower()).first()
    if tipo is None:
        raise InventoryTypeNotFound(f"No existe el tipo de inventario '{codigo}'.")
    return jsonify({"tipo": _con_conteo(tipo)})


@tipos_inventario_bp.route('/inventory-types', methods=['POST'])
@login_required
@permission_required('tipos_inventario.crear_tipo')
def crear_tipo():
    form = validar_formulario(TipoInventarioForm)
    nombre = form.nombre.data.strip()
    codigo = form.codigo.data
    if TipoInventario.query.filter_by(codigo=codigo).first():
        raise ConflictError(f"Ya existe un tipo de inventario con el código '{codigo}'.")
    if TipoInventario.query.filter_by(nombre=nombre).first():
        raise ConflictError(f"Ya existe un tipo de inventario llamado '{nombre}'.")

    try:
        tipo = TipoInventario(
            nombre=nombre,
            codigo=codigo,
            descripcion=form.descripcion.data or None,
            icono=form.icono.data or 'fa-box',
            color=form.color.data or '#6c757d',
            orden=form.orden.data if form.orden.data is not None else 99,
            activo=True
        )
        db.session.add(tipo)
        db.session.flush()
        log_activity(action="Creación de tipo de inventario", category='Inventario', resource_id=tipo.id,
                     details=f"{codigo}: {nombre}")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify({"message": f"Tipo de inventario '{nombre}' creado.", "tipo": tipo.to_dict()}), 201


@tipos_inventario_bp.route('/inventory-types/<int:tipo_id>', methods=['PUT'])
@login_required
@permission_required('tipos_inventario.editar_tipo')
def editar_tipo(tipo_id):
    form = validar_formulario(EditarTipoInventarioForm)
    tipo = _tipo_o_404(tipo_id)
    datos = payload()
    enviados = set(datos)

    if 'codigo' in enviados and datos['codigo'] != tipo.codigo:
        raise ValidationError('El código de un tipo de inventario no se puede modificar.')

    cambios = []
    try:
        for campo in ('nombre', 'descripcion', 'icono', 'color', 'orden'):
            if campo not in enviados:
                continue
            nuevo = getattr(form, campo).data
            if campo == 'orden' and nuevo is None:
                continue
            if campo == 'nombre':
                nuevo = (nuevo or '').strip()
                if not nuevo:
                    raise ValidationError('El nombre no puede quedar vacío.')
                otro = TipoInventario.query.filter(TipoInventario.nombre == nuevo,
                                                   TipoInventario.id != tipo.id).first()
                if otro is not None:
                    raise ConflictError(f"Ya existe un tipo de inventario llamado '{nuevo}'.")
            if getattr(tipo, campo) != nuevo:
                setattr(tipo, campo, nuevo)
                cambios.append(campo)
        if 'activo' in enviados:
            activo = parse_bool(str(datos['activo']))
            if tipo.activo != activo:
                tipo.activo = activo
                cambios.append('activo')
        log_activity(action="Edición de tipo de inventario", category='Inventario', resource_id=tipo.id,
                     details=f"{tipo.codigo}. Campos: {', '.join(cambios) or 'ninguno'}")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify({"message": "Tipo de inventario actualizado.", "tipo": tipo.to_dict(), "cambios": cambios})
