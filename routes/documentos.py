# documentos.py

from datetime import timedelta

from flask import Blueprint, request, jsonify
from sqlalchemy import or_, func

from extensions import db
from models import Acta, DetalleActa, ahora
from decorators import login_required, permission_required
from errors import DocumentNotFound, ValidationError
from forms import ActaForm, SolicitudFirmaForm, CancelacionForm
from helpers import validar_formulario, lista_json, archivos_por_prefijo, payload, parse_fecha, parse_bool
from workflow import Orchestrator
import documents

documentos_bp = Blueprint('documentos', __name__)

ESTADOS_VIGENTES = ('activa', 'devuelta_parcial')


def _orquestador():
    return Orchestrator.desde_app()


def _acta_o_404(acta_id):
    acta = db.session.get(Acta, acta_id)
    if acta is None:
        raise DocumentNotFound(f"El acta {acta_id} no existe.")
    return acta


def _resumen_token(orquestador, acta, token):
    if token is None:
        return None
    return {
        'correo': token.correo_destinatario,
        'enlace': orquestador.enlace_firma(acta, token),
        'fecha_envio': token.fecha_envio.isoformat(),
        'fecha_expiracion': token.fecha_expiracion.isoformat() if token.fecha_expiracion else None,
    }


def _filtro_vencidas(query):
    return query.filter(
        Acta.tipo == 'entrega',
        Acta.estado.in_(ESTADOS_VIGENTES),
        Acta.fecha_devolucion_esperada.isnot(None),
        Acta.fecha_devolucion_esperada < ahora().date()
    )


@documentos_bp.route('/documents', methods=['POST'])
@login_required
@permission_required('documentos.crear_documento')
def crear_documento():
    """
    Crea un acta de entrega, devolución o consumibles. Acepta JSON o
    multipart; en multipart 'lineas' va como texto JSON y las fotos de cada
    artículo como archivos 'fotos_<id_articulo>'.
    """
    form = validar_formulario(ActaForm)
    encabezado = {campo: getattr(form, campo).data or None for campo in documents.CAMPOS_ENCABEZADO}
    solicitar_firma = parse_bool(payload().get('solicitar_firma', True))

    orquestador = _orquestador()
    acta, token, reporte = orquestador.create(
        form.tipo.data,
        encabezado,
        lista_json('lineas'),
        categoria=form.categoria.data or None,
        fotos=archivos_por_prefijo('fotos_'),
        solicitar_firma=solicitar_firma
    )
    return jsonify({
        "message": f"Acta {acta.numero_acta} creada correctamente.",
        "acta": acta.to_dict(),
        "firma": _resumen_token(orquestador, acta, token),
        "notificaciones": reporte
    }), 201


@documentos_bp.route('/documents', methods=['GET'])
@login_required
@permission_required('documentos.listar_documentos')
def listar_documentos():
    query = Acta.query

    tipo = request.args.get('tipo')
    if tipo:
        query = query.filter(Acta.tipo == tipo)

    estado = request.args.get('estado')
    if estado:
        query = query.filter(Acta.estado.in_(estado.split(',')))

    busqueda = request.args.get('busqueda', '').strip()
    if busqueda:
        patron = f"%{busqueda}%"
        query = query.filter(or_(
            Acta.numero_acta.ilike(patron),
            Acta.nombre_receptor.ilike(patron),
            Acta.cargo_receptor.ilike(patron),
            Acta.cedula_receptor.ilike(patron)
        ))

    desde = parse_fecha(request.args.get('desde'), 'desde')
    if desde:
        query = query.filter(Acta.fecha_creacion >= desde)
    hasta = parse_fecha(request.args.get('hasta'), 'hasta')
    if hasta:
        query = query.filter(Acta.fecha_creacion < hasta + timedelta(days=1))

    if parse_bool(request.args.get('vencidas', 'false')):
        query = _filtro_vencidas(query)

    pagina = request.args.get('page', 1, type=int)
    por_pagina = min(request.args.get('per_page', 20, type=int), 100)
    resultado = query.order_by(Acta.fecha_creacion.desc(), Acta.id.desc()).paginate(
        page=pagina, per_page=por_pagina, error_out=False)

    return jsonify({
        "actas": [acta.to_dict(incluir_detalles=False) for acta in resultado.items],
        "total": resultado.total,
        "pagina": resultado.page,
        "paginas": resultado.pages
    })


@documentos_bp.route('/documents/active', methods=['GET'])
@login_required
@permission_required('documentos.actas_activas')
def actas_activas():
    """Entregas firmadas con artículos aún en poder del receptor."""
    actas = Acta.query.filter(Acta.tipo == 'entrega', Acta.estado.in_(ESTADOS_VIGENTES)) \
        .order_by(Acta.fecha_firma.desc()).all()
    return jsonify({"actas": [acta.to_dict() for acta in actas]})


@documentos_bp.route('/documents/stats', methods=['GET'])
@login_required
@permission_required('documentos.estadisticas')
def estadisticas():
    conteos = db.session.query(Acta.tipo, Acta.estado, func.count(Acta.id)) \
        .group_by(Acta.tipo, Acta.estado).all()

    por_tipo = {}
    for tipo, estado, total in conteos:
        por_tipo.setdefault(tipo, {'total': 0})
        por_tipo[tipo][estado] = total
        por_tipo[tipo]['total'] += total

    return jsonify({
        "por_tipo": por_tipo,
        "total": sum(total for _, _, total in conteos),
        "pendientes_firma": sum(total for _, estado, total in conteos if estado == 'pendiente_firma'),
        "vencidas": _filtro_vencidas(Acta.query).count()
    })


@documentos_bp.route('/documents/<int:acta_id>', methods=['GET'])
@login_required
@permission_required('documentos.ver_documento')
def ver_documento(acta_id):
    acta = _acta_o_404(acta_id)
    data = acta.to_dict()
    data['tokens'] = [token.to_dict() for token in acta.tokens]
    return jsonify({"acta": data})


@documentos_bp.route('/documents/<int:acta_id>/signature-requests', methods=['POST'])
@login_required
@permission_required('documentos.solicitar_firma')
def solicitar_firma(acta_id):
    """Envía (o reenvía) el enlace de firma. El enlace anterior queda cancelado."""
    form = validar_formulario(SolicitudFirmaForm)
    orquestador = _orquestador()
    token, reporte = orquestador.request_signature(acta_id, correo=form.correo.data or None)
    acta = _acta_o_404(acta_id)
    return jsonify({
        "message": "Solicitud de firma enviada correctamente.",
        "firma": _resumen_token(orquestador, acta, token),
        "notificaciones": reporte
    })


@documentos_bp.route('/documents/<int:acta_id>/signature-status', methods=['GET'])
@login_required
@permission_required('documentos.estado_firma')
def estado_firma(acta_id):
    acta = _acta_o_404(acta_id)
    pendiente = acta.token_pendiente
    return jsonify({
        "numero_acta": acta.numero_acta,
        "estado": acta.estado,
        "fecha_firma": acta.fecha_firma.isoformat() if acta.fecha_firma else None,
        "motivo_rechazo": acta.motivo_rechazo,
        "token_pendiente": pendiente.to_dict() if pendiente else None,
        "historial": [token.to_dict() for token in acta.tokens]
    })


@documentos_bp.route('/documents/<int:acta_id>/returns', methods=['POST'])
@login_required
@permission_required('documentos.registrar_devolucion')
def registrar_devolucion(acta_id):
    """
    Devolución parcial o total registrada por el operador. Cuerpo:
    {"devoluciones": [{"id_detalle", "estado_devolucion", "condicion_devolucion", "observaciones"}]}
    con fotos opcionales 'fotos_devolucion_<id_detalle>'.
    """
    devoluciones = lista_json('devoluciones')
    if not devoluciones:
        raise ValidationError('Debe indicar al menos una línea a devolver.')
    acta, reporte = _orquestador().register_return(
        acta_id, devoluciones, fotos=archivos_por_prefijo('fotos_devolucion_'))
    return jsonify({
        "message": f"Devolución registrada en {acta.numero_acta}.",
        "acta": acta.to_dict(),
        "notificaciones": reporte
    })


@documentos_bp.route('/documents/<int:acta_id>', methods=['DELETE'])
@login_required
@permission_required('documentos.cancelar_documento')
def cancelar_documento(acta_id):
    """Anula un acta sin firmar y libera sus artículos. El acta se conserva como 'cancelada'."""
    form = validar_formulario(CancelacionForm)
    acta, reporte = _orquestador().cancel(acta_id, motivo=form.motivo.data or None)
    return jsonify({
        "message": f"Acta {acta.numero_acta} cancelada.",
        "acta": acta.to_dict(),
        "notificaciones": reporte
    })


@documentos_bp.route('/items/<int:articulo_id>/documents', methods=['GET'])
@login_required
@permission_required('documentos.historial_articulo')
def historial_articulo(articulo_id):
    """Actas en las que figura el artículo, de la más reciente a la más antigua."""
    detalles = DetalleActa.query.join(Acta, DetalleActa.id_acta == Acta.id) \
        .filter(DetalleActa.id_articulo == articulo_id) \
        .order_by(Acta.fecha_creacion.desc(), Acta.id.desc()).all()
    return jsonify({
        "historial": [{
            "acta": detalle.acta.to_dict(incluir_detalles=False),
            "detalle": detalle.to_dict()
        } for detalle in detalles]
    })
