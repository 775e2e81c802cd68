# documents.py

# Agregado Acta: encabezado + líneas. Estas funciones aplican las reglas de
# cada transición sobre el acta y delegan en ledger.py los cambios de
# inventario. No hacen commit; el orquestador decide cuándo confirmar.

from extensions import db
from models import Acta, DetalleActa, ahora, CONDICIONES, RESULTADOS_DEVOLUCION
from errors import ValidationError, LineNotFound, LineAlreadyReturned
from workflows import obtener_workflow, transicion, prefijo_para
from numbering import siguiente_numero
import ledger
import tipos_inventario

CAMPOS_ENCABEZADO = ('nombre_receptor', 'cedula_receptor', 'cargo_receptor', 'telefono_receptor',
                     'correo_receptor', 'observaciones', 'fecha_devolucion_esperada')


def _entero(valor, campo):
    if isinstance(valor, bool):
        raise ValidationError(f"El campo '{campo}' debe ser numérico.")
    try:
        return int(valor)
    except (TypeError, ValueError):
        raise ValidationError(f"El campo '{campo}' debe ser numérico.", valor=valor)


def _normalizar_lineas(tipo, lineas):
    if not isinstance(lineas, list) or not lineas:
        raise ValidationError('El acta debe incluir al menos un artículo.')

    normalizadas, vistos = [], set()
    for posicion, linea in enumerate(lineas, start=1):
        if not isinstance(linea, dict) or linea.get('id_articulo') in (None, ''):
            raise ValidationError(f"La línea {posicion} no indica el artículo.")
        id_articulo = _entero(linea['id_articulo'], 'id_articulo')
        if id_articulo in vistos:
            raise ValidationError(f"El artículo {id_articulo} aparece más de una vez en el acta.")
        vistos.add(id_articulo)

        condicion = linea.get('condicion_entrega') or 'bueno'
        if condicion not in CONDICIONES:
            raise ValidationError(f"Condición inválida en la línea {posicion}: {condicion}.",
                                  permitidos=list(CONDICIONES))

        normalizada = {
            'id_articulo': id_articulo,
            'cantidad': _entero(linea.get('cantidad', 1), 'cantidad'),
            'condicion_entrega': condicion,
            'observaciones': linea.get('observaciones'),
        }
        if normalizada['cantidad'] < 1:
            raise ValidationError(f"La cantidad de la línea {posicion} debe ser mayor que cero.")

        if tipo == 'devolucion':
            resultado = linea.get('estado_devolucion')
            if resultado not in RESULTADOS_DEVOLUCION:
                raise ValidationError(f"La línea {posicion} debe indicar el estado de devolución.",
                                      permitidos=list(RESULTADOS_DEVOLUCION))
            condicion_devolucion = linea.get('condicion_devolucion')
            if condicion_devolucion and condicion_devolucion not in CONDICIONES:
                raise ValidationError(f"Condición de devolución inválida en la línea {posicion}.")
            normalizada.update({
                'estado_devolucion': resultado,
                'condicion_devolucion': condicion_devolucion,
                'id_detalle_origen': linea.get('id_detalle_origen'),
            })
        normalizadas.append(normalizada)
    return normalizadas


def _detalle_entregado(id_articulo, id_detalle_origen=None):
    """Línea de un acta de entrega vigente donde el artículo sigue sin devolver."""
    query = db.session.query(DetalleActa).join(Acta, DetalleActa.id_acta == Acta.id).filter(
        DetalleActa.id_articulo == id_articulo,
        DetalleActa.devuelto.is_(False),
        Acta.tipo == 'entrega',
        Acta.estado.in_(('activa', 'devuelta_parcial'))
    )
    if id_detalle_origen:
        detalle = query.filter(DetalleActa.id == _entero(id_detalle_origen, 'id_detalle_origen')).first()
        if detalle is None:
            raise LineNotFound(f"La línea {id_detalle_origen} no corresponde a una entrega vigente del artículo.")
        return detalle
    return query.order_by(DetalleActa.id.desc()).first()


def create(tipo, encabezado, lineas, categoria=None, outbox=None, id_usuario=None, anio=None):
    """
    Crea el acta en 'pendiente_firma' reservando cada línea. Si una sola
    reserva falla se lanza el error y la transacción completa se descarta.
    """
    workflow = obtener_workflow(tipo)
    if not (encabezado.get('nombre_receptor') or '').strip():
        raise ValidationError('El nombre del receptor es obligatorio.')
    lineas = _normalizar_lineas(tipo, lineas)

    tipo_inventario = None
    if workflow.get('requiere_tipo_inventario'):
        tipo_inventario = tipos_inventario.obtener_activo((categoria or '').strip().lower())
    numero = siguiente_numero(prefijo_para(tipo, tipo_inventario), anio)
    acta = Acta(
        numero_acta=numero,
        tipo=tipo,
        categoria=tipo_inventario.codigo if tipo_inventario is not None else None,
        tipo_inventario=tipo_inventario,
        estado='pendiente_firma',
        fecha_creacion=ahora(),
        id_usuario_creador=id_usuario,
        id_acta_origen=encabezado.get('id_acta_origen'),
        **{campo: encabezado.get(campo) for campo in CAMPOS_ENCABEZADO}
    )
    db.session.add(acta)
    db.session.flush()

    for linea in lineas:
        articulo = ledger.obtener_articulo(linea['id_articulo'])
        if articulo.tipo not in workflow['tipos_articulo']:
            raise ValidationError(
                f"El artículo '{articulo.nombre}' ({articulo.tipo}) no puede ir en un acta de {tipo}.",
                id_articulo=articulo.id)
        if (tipo_inventario is not None and articulo.id_tipo_inventario is not None
                and articulo.id_tipo_inventario != tipo_inventario.id):
            raise ValidationError(
                f"El artículo '{articulo.nombre}' no pertenece al inventario de {tipo_inventario.nombre}.",
                id_articulo=articulo.id)

        origen = None
        if tipo == 'devolucion':
            if not articulo.es_individual:
                raise ValidationError(f"El artículo '{articulo.nombre}' no tiene serial; su devolución se "
                                      f"registra sobre el acta de entrega.", id_articulo=articulo.id)
            origen = _detalle_entregado(articulo.id, linea.get('id_detalle_origen'))
            if origen is not None and acta.id_acta_origen is None:
                acta.id_acta_origen = origen.id_acta

        ledger.reserve(articulo.id, linea['cantidad'], motivo=f"Reserva por {numero}", id_acta=acta.id,
                       outbox=outbox, estado_requerido=workflow['estado_requerido'])

        db.session.add(DetalleActa(
            acta=acta,
            id_articulo=articulo.id,
            cantidad=linea['cantidad'],
            condicion_entrega=linea['condicion_entrega'],
            observaciones=linea['observaciones'],
            estado_devolucion=linea.get('estado_devolucion'),
            condicion_devolucion=linea.get('condicion_devolucion'),
            detalle_origen=origen
        ))

    db.session.flush()
    return acta


def _marcar_devuelto(detalle, resultado, condicion=None, observaciones=None):
    detalle.devuelto = True
    detalle.estado_devolucion = resultado
    detalle.condicion_devolucion = condicion or detalle.condicion_devolucion
    detalle.observaciones_devolucion = observaciones or detalle.observaciones_devolucion
    detalle.fecha_devolucion = ahora()


def _recalcular_estado(acta):
    """devuelta_completa si todas las líneas volvieron, devuelta_parcial si alguna."""
    devueltas = [d.devuelto for d in acta.detalles]
    if devueltas and all(devueltas):
        acta.estado = 'devuelta_completa'
        acta.fecha_devolucion_real = ahora()
        acta.fecha_cierre = acta.fecha_devolucion_real
    elif any(devueltas):
        acta.estado = 'devuelta_parcial'
    return acta.estado


def mark_signed(acta, firma, outbox=None):
    """
    Aplica la firma. En entregas confirma las reservas; en devoluciones cada
    artículo queda con el resultado declarado y se cierra la línea de la
    entrega original. Devuelve las actas de origen que cambiaron de estado.
    """
    config = transicion(acta, 'firmar')
    motivo = f"Firma de {acta.numero_acta}"
    origenes = []

    for detalle in acta.detalles:
        if config['inventario'] == 'confirmar':
            ledger.confirm(detalle.id_articulo, detalle.cantidad, estado_final=config.get('estado_final', 'entregado'),
                           motivo=motivo, id_acta=acta.id, outbox=outbox)
            continue

        ledger.return_item(detalle.id_articulo, detalle.estado_devolucion, detalle.cantidad, motivo=motivo,
                           id_acta=acta.id, outbox=outbox, estado_esperado='reservado')
        _marcar_devuelto(detalle, detalle.estado_devolucion)

        origen = detalle.detalle_origen
        if origen is not None:
            if origen.devuelto:
                raise LineAlreadyReturned(f"La línea {origen.id} del acta {origen.acta.numero_acta} ya fue devuelta.")
            transicion(origen.acta, 'devolver')
            _marcar_devuelto(origen, detalle.estado_devolucion, detalle.condicion_devolucion,
                             f"Devuelto mediante {acta.numero_acta}")
            if origen.acta not in origenes:
                origenes.append(origen.acta)

    for acta_origen in origenes:
        _recalcular_estado(acta_origen)

    acta.firma = firma
    acta.fecha_firma = ahora()
    acta.estado = config['siguiente_estatus']
    if acta.tipo == 'devolucion':
        acta.fecha_devolucion_real = acta.fecha_firma
        acta.fecha_cierre = acta.fecha_firma
    return origenes


def mark_rejected(acta, motivo, outbox=None, accion='rechazar'):
    """Libera cada línea reservada y deja el acta rechazada (o cancelada)."""
    config = transicion(acta, accion)
    referencia = 'Rechazo' if accion == 'rechazar' else 'Cancelación'

    for detalle in acta.detalles:
        ledger.release(detalle.id_articulo, detalle.cantidad, motivo=f"{referencia} de {acta.numero_acta}",
                       id_acta=acta.id, outbox=outbox, estado_destino=config.get('estado_final', 'disponible'))

    acta.estado = config['siguiente_estatus']
    acta.motivo_rechazo = motivo
    acta.fecha_cierre = ahora()
    return acta


def cancel(acta, motivo=None, outbox=None):
    return mark_rejected(acta, motivo, outbox=outbox, accion='cancelar')


def record_partial_return(acta, resultados, outbox=None):
    """
    Devolución registrada por un operador sobre un acta de entrega vigente.
    resultados: [{'id_detalle', 'estado_devolucion', 'condicion_devolucion', 'observaciones'}].
    """
    transicion(acta, 'devolver')
    if not isinstance(resultados, list) or not resultados:
        raise ValidationError('Debe indicar al menos una línea a devolver.')

    detalles = {d.id: d for d in acta.detalles}
    vistos, devueltos = set(), []
    for resultado in resultados:
        if not isinstance(resultado, dict):
            raise ValidationError('Formato de devolución inválido.')
        id_detalle = _entero(resultado.get('id_detalle'), 'id_detalle')
        if id_detalle in vistos:
            raise ValidationError(f"La línea {id_detalle} aparece más de una vez.")
        vistos.add(id_detalle)

        detalle = detalles.get(id_detalle)
        if detalle is None:
            raise LineNotFound(f"La línea {id_detalle} no pertenece al acta {acta.numero_acta}.")
        if detalle.devuelto:
            raise LineAlreadyReturned(f"La línea {id_detalle} ya fue devuelta.")

        estado = resultado.get('estado_devolucion') or 'disponible'
        condicion = resultado.get('condicion_devolucion')
        if condicion and condicion not in CONDICIONES:
            raise ValidationError(f"Condición de devolución inválida: {condicion}.", permitidos=list(CONDICIONES))

        ledger.return_item(detalle.id_articulo, estado, detalle.cantidad,
                           motivo=f"Devolución de {acta.numero_acta}", id_acta=acta.id, outbox=outbox)
        _marcar_devuelto(detalle, estado, condicion, resultado.get('observaciones'))
        devueltos.append(detalle)

    _recalcular_estado(acta)
    return devueltos
