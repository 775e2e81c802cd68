# articulos.py

from io import BytesIO

import pandas as pd
from flask import Blueprint, request, jsonify, current_app, send_file
from sqlalchemy import or_

from extensions import db
from models import Articulo, Movimiento, TIPOS_ARTICULO, TIPOS_REGISTRO
from decorators import login_required, permission_required
from errors import ItemNotFound, ValidationError, ConflictError
from forms import ArticuloForm, EditarArticuloForm, MovimientoForm, AjusteForm, EstadoForm
from helpers import validar_formulario, parse_bool
from log_activity import log_activity, usuario_actual_id
from outbox import Outbox
import ledger
import tipos_inventario

articulos_bp = Blueprint('articulos', __name__)

# Mapeo de columnas del Excel de carga masiva a los campos del artículo
COLUMN_MAPPING = {
    "TIPO": "tipo",
    "REGISTRO": "tipo_registro",
    "NOMBRE": "nombre",
    "DESCRIPCION": "descripcion",
    "CATEGORIA": "categoria",
    "TIPO INVENTARIO": "tipo_inventario",
    "MARCA": "marca",
    "MODELO": "modelo",
    "SERIAL": "serial",
    "UBICACION": "ubicacion",
    "UNIDAD": "unidad_medida",
    "STOCK": "stock_actual",
    "STOCK MINIMO": "stock_minimo",
}

EXPORT_COLUMNS = ['id', 'tipo', 'tipo_registro', 'nombre', 'tipo_inventario', 'categoria', 'marca', 'modelo',
                  'serial', 'ubicacion', 'estado', 'stock_actual', 'stock_minimo', 'unidad_medida', 'activo']


def _articulo_o_404(articulo_id):
    articulo = db.session.get(Articulo, articulo_id)
    if articulo is None:
        raise ItemNotFound(f"El artículo {articulo_id} no existe.")
    return articulo


def _despachar(outbox):
    return outbox.dispatch(current_app.extensions['event_bus'], current_app.extensions['notifier'])


def _aplicar(articulo_id, accion, detalle, operacion):
    """Ejecuta una operación de inventario en su propia transacción y notifica tras el commit."""
    outbox = Outbox()
    try:
        movimiento = operacion(outbox)
        log_activity(action=f"{accion} de artículo", category='Inventario', resource_id=articulo_id, details=detalle)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    reporte = _despachar(outbox)
    articulo = _articulo_o_404(articulo_id)
    return jsonify({
        "message": f"{accion} registrada para '{articulo.nombre}'.",
        "articulo": articulo.to_dict(),
        "movimiento": movimiento.to_dict(),
        "notificaciones": reporte
    })


def _tipo_inventario(codigo):
    """Tipo activo del catálogo para un código opcional."""
    codigo = (codigo or '').strip().lower()
    return tipos_inventario.obtener_activo(codigo) if codigo else None


def _nuevo_articulo(datos):
    """Construye un Articulo validando las reglas de registro individual/stock."""
    tipo_registro = datos.get('tipo_registro') or 'individual'
    articulo = Articulo(
        tipo=datos['tipo'],
        tipo_registro=tipo_registro,
        nombre=datos['nombre'],
        descripcion=datos.get('descripcion') or None,
        categoria=datos.get('categoria') or None,
        tipo_inventario=_tipo_inventario(datos.get('tipo_inventario')),
        marca=datos.get('marca') or None,
        modelo=datos.get('modelo') or None,
        serial=datos.get('serial') or None,
        ubicacion=datos.get('ubicacion') or None,
        unidad_medida=datos.get('unidad_medida') or 'unidad',
        estado='disponible',
        stock_minimo=datos.get('stock_minimo') or 0,
        activo=True,
        usuario_id_registro=usuario_actual_id()
    )
    if tipo_registro == 'individual':
        if articulo.tipo == 'consumible':
            raise ValidationError('Los consumibles se registran por stock.')
        # Un artículo con serial es una sola unidad; su cantidad no se mueve
        articulo.stock_actual = 1
        articulo.stock_minimo = 0
    else:
        articulo.stock_actual = datos.get('stock_actual') or 0

    if articulo.serial and Articulo.query.filter_by(serial=articulo.serial).first():
        raise ConflictError(f"Ya existe un artículo con el serial {articulo.serial}.")
    return articulo


@articulos_bp.route('/items', methods=['POST'])
@login_required
@permission_required('articulos.crear_articulo')
def crear_articulo():
    form = validar_formulario(ArticuloForm)
    outbox = Outbox()
    try:
        articulo = _nuevo_articulo(form.data)
        db.session.add(articulo)
        db.session.flush()
        ledger.register_intake(articulo, outbox)
        log_activity(action="Alta de artículo", category='Inventario', resource_id=articulo.id,
                     details=f"{articulo.tipo}: {articulo.nombre}")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    reporte = _despachar(outbox)
    return jsonify({
        "message": f"Artículo '{articulo.nombre}' registrado.",
        "articulo": articulo.to_dict(),
        "notificaciones": reporte
    }), 201


@articulos_bp.route('/items', methods=['GET'])
@login_required
@permission_required('articulos.listar_articulos')
def listar_articulos():
    query = Articulo.query

    if not parse_bool(request.args.get('incluir_inactivos', 'false')):
        query = query.filter(Articulo.activo.is_(True))
    for campo in ('tipo', 'tipo_registro', 'estado', 'categoria'):
        valor = request.args.get(campo)
        if valor:
            query = query.filter(getattr(Articulo, campo) == valor)
    tipo_inventario = request.args.get('tipo_inventario')
    if tipo_inventario:
        query = query.filter(Articulo.tipo_inventario.has(codigo=tipo_inventario))

    if parse_bool(request.args.get('solo_disponibles', 'false')):
        query = query.filter(or_(
            (Articulo.tipo_registro == 'individual') & (Articulo.estado == 'disponible'),
            (Articulo.tipo_registro == 'stock') & (Articulo.stock_actual > 0)
        ))

    busqueda = request.args.get('busqueda', '').strip()
    if busqueda:
        searchable_fields = [Articulo.nombre, Articulo.marca, Articulo.modelo, Articulo.serial, Articulo.descripcion]
        for term in busqueda.split():
            query = query.filter(or_(*[field.ilike(f'%{term}%') for field in searchable_fields]))

    pagina = request.args.get('page', 1, type=int)
    por_pagina = min(request.args.get('per_page', 50, type=int), 200)
    resultado = query.order_by(Articulo.nombre, Articulo.id).paginate(page=pagina, per_page=por_pagina, error_out=False)
    return jsonify({
        "articulos": [a.to_dict() for a in resultado.items],
        "total": resultado.total,
        "pagina": resultado.page,
        "paginas": resultado.pages
    })


@articulos_bp.route('/items/alerts', methods=['GET'])
@login_required
@permission_required('articulos.alertas_stock')
def alertas_stock():
    """Artículos de stock en o por debajo de su mínimo."""
    articulos = Articulo.query.filter(
        Articulo.activo.is_(True),
        Articulo.tipo_registro == 'stock',
        Articulo.stock_actual <= Articulo.stock_minimo
    ).order_by(Articulo.stock_actual).all()
    return jsonify({"alertas": [a.to_dict() for a in articulos], "total": len(articulos)})


@articulos_bp.route('/items/export', methods=['GET'])
@login_required
@permission_required('articulos.exportar_articulos')
def exportar_articulos():
    query = Articulo.query.order_by(Articulo.tipo, Articulo.nombre)
    tipo = request.args.get('tipo')
    if tipo:
        query = query.filter(Articulo.tipo == tipo)

    data = [{col: a.to_dict()[col] for col in EXPORT_COLUMNS} for a in query.all()]
    df = pd.DataFrame(data, columns=EXPORT_COLUMNS)
    output = BytesIO()
    df.to_excel(output, index=False, sheet_name='Inventario')
    output.seek(0)

    return send_file(
        output,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        as_attachment=True,
        download_name='inventario.xlsx'
    )


@articulos_bp.route('/items/import', methods=['POST'])
@login_required
@permission_required('articulos.importar_articulos')
def importar_articulos():
    """
    Carga masiva desde Excel. Cada fila válida se registra con su movimiento
    de ingreso; las filas con error se devuelven con el motivo y no detienen
    la carga.
    """
    file = request.files.get('file')
    if not file or not file.filename:
        raise ValidationError('Debe adjuntar un archivo Excel.')

    try:
        df = pd.read_excel(file)
    except Exception as e:
        current_app.logger.warning(f"Excel de artículos ilegible: {e}")
        raise ValidationError('No se pudo leer el archivo Excel.')

    excel_headers_map = {str(col).upper().strip(): str(col) for col in df.columns}
    outbox = Outbox()
    insertados, errores = 0, []

    for index, row in df.iterrows():
        datos = {}
        for excel_col, campo in COLUMN_MAPPING.items():
            original = excel_headers_map.get(excel_col)
            valor = row[original] if original is not None else None
            datos[campo] = None if valor is None or pd.isna(valor) else valor

        try:
            for campo in ('tipo', 'tipo_registro', 'nombre', 'categoria', 'tipo_inventario', 'marca', 'modelo',
                          'serial', 'ubicacion', 'unidad_medida', 'descripcion'):
                if datos[campo] is not None:
                    datos[campo] = str(datos[campo]).strip()
            for campo in ('stock_actual', 'stock_minimo'):
                datos[campo] = int(datos[campo]) if datos[campo] is not None else 0
            if datos['tipo'] not in TIPOS_ARTICULO:
                raise ValidationError(f"Tipo inválido: {datos['tipo']}.")
            if (datos['tipo_registro'] or 'individual') not in TIPOS_REGISTRO:
                raise ValidationError(f"Registro inválido: {datos['tipo_registro']}.")
            if not datos['nombre']:
                raise ValidationError('El nombre es obligatorio.')
            if datos['stock_actual'] < 0 or datos['stock_minimo'] < 0:
                raise ValidationError('Las cantidades no pueden ser negativas.')

            articulo = _nuevo_articulo(datos)
            db.session.add(articulo)
            db.session.flush()
            ledger.register_intake(articulo, outbox, motivo='Carga masiva desde Excel')
            insertados += 1
        except (ValidationError, ConflictError, ValueError) as e:
            errores.append({"fila": int(index) + 2, "error": getattr(e, 'message', str(e))})

    try:
        log_activity(action="Importación de artículos desde Excel", category='Inventario',
                     details=f"Archivo: {file.filename}. Insertados: {insertados}. Errores: {len(errores)}")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    reporte = _despachar(outbox)
    return jsonify({
        "message": f"Importación terminada: {insertados} artículos registrados.",
        "insertados": insertados,
        "errores": errores,
        "notificaciones": reporte
    })


@articulos_bp.route('/items/<int:articulo_id>', methods=['GET'])
@login_required
@permission_required('articulos.ver_articulo')
def ver_articulo(articulo_id):
    articulo = _articulo_o_404(articulo_id)
    data = articulo.to_dict()
    data['ultimos_movimientos'] = [m.to_dict() for m in articulo.movimientos.limit(10).all()]
    return jsonify({"articulo": data})


@articulos_bp.route('/items/<int:articulo_id>', methods=['PUT'])
@login_required
@permission_required('articulos.editar_articulo')
def editar_articulo(articulo_id):
    """Actualiza datos descriptivos. Estado y cantidades solo cambian con movimientos."""
    form = validar_formulario(EditarArticuloForm)
    articulo = _articulo_o_404(articulo_id)
    enviados = set(request.get_json(silent=True) or request.form)
    cambios = []
    try:
        for campo in ('nombre', 'descripcion', 'categoria', 'marca', 'modelo', 'ubicacion',
                      'unidad_medida', 'stock_minimo'):
            if campo in enviados:
                nuevo = getattr(form, campo).data
                if campo == 'nombre' and not nuevo:
                    raise ValidationError('El nombre no puede quedar vacío.')
                if getattr(articulo, campo) != nuevo:
                    setattr(articulo, campo, nuevo)
                    cambios.append(campo)
        if 'tipo_inventario' in enviados:
            nuevo = _tipo_inventario(form.tipo_inventario.data)
            if articulo.tipo_inventario is not nuevo:
                articulo.tipo_inventario = nuevo
                cambios.append('tipo_inventario')
        log_activity(action="Edición de artículo", category='Inventario', resource_id=articulo.id,
                     details=f"Campos: {', '.join(cambios) or 'ninguno'}")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify({"message": "Artículo actualizado.", "articulo": articulo.to_dict(), "cambios": cambios})


@articulos_bp.route('/items/<int:articulo_id>', methods=['DELETE'])
@login_required
@permission_required('articulos.desactivar_articulo')
def desactivar_articulo(articulo_id):
    """Desactiva el artículo. Nunca se borra: conserva su historial."""
    articulo = _articulo_o_404(articulo_id)
    if articulo.estado in ledger.ESTADOS_DE_ACTA:
        raise ConflictError(f"El artículo '{articulo.nombre}' está {articulo.estado} en un acta.")
    try:
        articulo.activo = False
        log_activity(action="Desactivación de artículo", category='Inventario', resource_id=articulo.id,
                     details=articulo.nombre)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify({"message": f"Artículo '{articulo.nombre}' desactivado.", "articulo": articulo.to_dict()})


@articulos_bp.route('/items/<int:articulo_id>/restock', methods=['POST'])
@login_required
@permission_required('articulos.agregar_stock')
def agregar_stock(articulo_id):
    form = validar_formulario(MovimientoForm)
    if not form.cantidad.data:
        raise ValidationError('La cantidad es obligatoria.')
    return _aplicar(articulo_id, 'Reposición', f"+{form.cantidad.data}: {form.motivo.data}",
                    lambda outbox: ledger.restock(articulo_id, form.cantidad.data, form.motivo.data, outbox=outbox))


@articulos_bp.route('/items/<int:articulo_id>/withdraw', methods=['POST'])
@login_required
@permission_required('articulos.retirar_stock')
def retirar_stock(articulo_id):
    form = validar_formulario(MovimientoForm)
    if not form.cantidad.data:
        raise ValidationError('La cantidad es obligatoria.')
    return _aplicar(articulo_id, 'Salida', f"-{form.cantidad.data}: {form.motivo.data}",
                    lambda outbox: ledger.withdraw(articulo_id, form.cantidad.data, form.motivo.data, outbox=outbox))


@articulos_bp.route('/items/<int:articulo_id>/adjust', methods=['POST'])
@login_required
@permission_required('articulos.ajustar_stock')
def ajustar_stock(articulo_id):
    form = validar_formulario(AjusteForm)
    return _aplicar(articulo_id, 'Ajuste', f"={form.cantidad.data}: {form.motivo.data}",
                    lambda outbox: ledger.adjust(articulo_id, form.cantidad.data, form.motivo.data, outbox=outbox))


@articulos_bp.route('/items/<int:articulo_id>/status', methods=['POST'])
@login_required
@permission_required('articulos.cambiar_estado')
def cambiar_estado(articulo_id):
    form = validar_formulario(EstadoForm)
    return _aplicar(articulo_id, 'Cambio de estado', f"{form.estado.data}: {form.motivo.data}",
                    lambda outbox: ledger.set_status(articulo_id, form.estado.data, form.motivo.data, outbox=outbox))


@articulos_bp.route('/items/<int:articulo_id>/write-off', methods=['POST'])
@login_required
@permission_required('articulos.dar_de_baja')
def dar_de_baja(articulo_id):
    form = validar_formulario(MovimientoForm)
    return _aplicar(articulo_id, 'Baja', form.motivo.data,
                    lambda outbox: ledger.write_off(articulo_id, form.motivo.data, cantidad=form.cantidad.data,
                                                    outbox=outbox))


@articulos_bp.route('/items/<int:articulo_id>/movements', methods=['GET'])
@login_required
@permission_required('articulos.historial_movimientos')
def historial_movimientos(articulo_id):
    _articulo_o_404(articulo_id)
    query = Movimiento.query.filter_by(id_articulo=articulo_id)
    tipo = request.args.get('tipo')
    if tipo:
        query = query.filter(Movimiento.tipo == tipo)
    movimientos = query.order_by(Movimiento.fecha.desc(), Movimiento.id.desc()).all()
    return jsonify({"movimientos": [m.to_dict() for m in movimientos], "total": len(movimientos)})
