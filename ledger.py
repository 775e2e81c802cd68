# ledger.py

# Operaciones sobre el inventario. Cada función que modifica un artículo deja
# exactamente un Movimiento en la misma transacción y encola el evento
# 'item:updated' en el outbox de la operación. Ninguna hace commit.
#
# Artículos 'individual' (con serial): se mueve el estado.
# Artículos 'stock': se mueve la cantidad.

from extensions import db
from models import Articulo, Movimiento, ahora, ESTADOS_ARTICULO, RESULTADOS_DEVOLUCION
from errors import (ValidationError, ConflictError, InsufficientStock, InvalidAdjustment,
                    InvalidTransition, ItemNotFound)
from log_activity import usuario_actual_id

EVENTO_ARTICULO = 'item:updated'

SALAS_POR_TIPO = {
    'dispositivo': 'inventario',
    'mobiliario': 'mobiliario',
    'consumible': 'consumibles',
}

# Estados que solo cambian a través de un acta
ESTADOS_DE_ACTA = ('reservado', 'entregado')


def sala_de(articulo):
    return SALAS_POR_TIPO.get(articulo.tipo, 'inventario')


def obtener_articulo(articulo_id, bloquear=True):
    """Carga el artículo; con bloquear=True toma la fila con SELECT ... FOR UPDATE."""
    query = db.session.query(Articulo).filter_by(id=articulo_id)
    if bloquear:
        query = query.with_for_update().populate_existing()
    articulo = query.first()
    if articulo is None:
        raise ItemNotFound(f"El artículo {articulo_id} no existe.", id_articulo=articulo_id)
    return articulo


def _validar_cantidad(cantidad):
    if not isinstance(cantidad, int) or isinstance(cantidad, bool) or cantidad < 1:
        raise ValidationError('La cantidad debe ser un entero mayor que cero.', cantidad=cantidad)
    return cantidad


def _registrar(articulo, tipo, cantidad, anterior, nuevo, motivo, id_acta, outbox):
    movimiento = Movimiento(
        id_articulo=articulo.id,
        tipo=tipo,
        cantidad=cantidad,
        valor_anterior=None if anterior is None else str(anterior),
        valor_nuevo=None if nuevo is None else str(nuevo),
        motivo=motivo,
        id_acta=id_acta,
        id_usuario=usuario_actual_id(),
        fecha=ahora()
    )
    db.session.add(movimiento)
    if outbox is not None:
        outbox.broadcast(sala_de(articulo), EVENTO_ARTICULO, {
            'articulo': articulo.to_dict(),
            'movimiento': tipo,
            'id_acta': id_acta,
        })
    return movimiento


def register_intake(articulo, outbox, motivo='Ingreso al inventario'):
    """Primer movimiento de un artículo recién creado (ya con id)."""
    if articulo.es_individual:
        return _registrar(articulo, 'ingreso', 1, None, articulo.estado, motivo, None, outbox)
    return _registrar(articulo, 'ingreso', articulo.stock_actual, None, articulo.stock_actual, motivo, None, outbox)


def reserve(articulo_id, cantidad=1, motivo=None, id_acta=None, outbox=None, estado_requerido='disponible'):
    """
    Reserva provisional mientras el acta espera firma.

    Individual: el artículo debe estar en estado_requerido y pasa a 'reservado'.
    Stock: se descuenta la cantidad; falla si no alcanza.
    """
    _validar_cantidad(cantidad)
    articulo = obtener_articulo(articulo_id)
    if not articulo.activo:
        raise InsufficientStock(f"El artículo '{articulo.nombre}' está inactivo.", id_articulo=articulo.id)

    if articulo.es_individual:
        if cantidad != 1:
            raise ValidationError(f"El artículo '{articulo.nombre}' tiene serial; la cantidad debe ser 1.",
                                  id_articulo=articulo.id)
        if articulo.estado != estado_requerido:
            raise InsufficientStock(
                f"El artículo '{articulo.nombre}' no está {estado_requerido} (estado actual: {articulo.estado}).",
                id_articulo=articulo.id, estado=articulo.estado)
        anterior = articulo.estado
        articulo.estado = 'reservado'
        return _registrar(articulo, 'reserva', 1, anterior, articulo.estado, motivo, id_acta, outbox)

    if cantidad > articulo.stock_actual:
        raise InsufficientStock(
            f"Stock insuficiente de '{articulo.nombre}': disponible {articulo.stock_actual}, solicitado {cantidad}.",
            id_articulo=articulo.id, disponible=articulo.stock_actual, solicitado=cantidad)
    anterior = articulo.stock_actual
    articulo.stock_actual = anterior - cantidad
    return _registrar(articulo, 'reserva', cantidad, anterior, articulo.stock_actual, motivo, id_acta, outbox)


def release(articulo_id, cantidad=1, motivo=None, id_acta=None, outbox=None, estado_destino='disponible'):
    """Inversa de reserve: devuelve el estado o la cantidad reservada."""
    _validar_cantidad(cantidad)
    articulo = obtener_articulo(articulo_id)

    if articulo.es_individual:
        if articulo.estado != 'reservado':
            raise ConflictError(f"El artículo '{articulo.nombre}' no está reservado (estado: {articulo.estado}).",
                                id_articulo=articulo.id)
        anterior = articulo.estado
        articulo.estado = estado_destino
        return _registrar(articulo, 'liberacion', 1, anterior, articulo.estado, motivo, id_acta, outbox)

    anterior = articulo.stock_actual
    articulo.stock_actual = anterior + cantidad
    return _registrar(articulo, 'liberacion', cantidad, anterior, articulo.stock_actual, motivo, id_acta, outbox)


def confirm(articulo_id, cantidad=1, estado_final='entregado', motivo=None, id_acta=None, outbox=None):
    """
    Convierte la reserva en consumo definitivo. En stock la cantidad ya se
    descontó al reservar, así que solo queda constancia del consumo.
    """
    _validar_cantidad(cantidad)
    articulo = obtener_articulo(articulo_id)

    if articulo.es_individual:
        if articulo.estado != 'reservado':
            raise ConflictError(f"El artículo '{articulo.nombre}' no está reservado (estado: {articulo.estado}).",
                                id_articulo=articulo.id)
        anterior = articulo.estado
        articulo.estado = estado_final
        return _registrar(articulo, 'consumo', 1, anterior, articulo.estado, motivo, id_acta, outbox)

    return _registrar(articulo, 'consumo', cantidad, articulo.stock_actual, articulo.stock_actual,
                      motivo, id_acta, outbox)


def return_item(articulo_id, resultado, cantidad=1, motivo=None, id_acta=None, outbox=None,
                estado_esperado='entregado'):
    """
    Devolución de un artículo entregado con su resultado declarado
    (disponible, dañado o perdido). Un acta de devolución pendiente deja el
    artículo 'reservado'; por eso la firma de esa acta pasa estado_esperado.
    """
    if resultado not in RESULTADOS_DEVOLUCION:
        raise ValidationError(f"Resultado de devolución inválido: {resultado}.",
                              permitidos=list(RESULTADOS_DEVOLUCION))
    _validar_cantidad(cantidad)
    articulo = obtener_articulo(articulo_id)
    detalle_motivo = f"{motivo or 'Devolución'} ({resultado})"

    if articulo.es_individual:
        if articulo.estado != estado_esperado:
            raise ConflictError(
                f"El artículo '{articulo.nombre}' debería estar {estado_esperado} (estado: {articulo.estado}).",
                id_articulo=articulo.id)
        anterior = articulo.estado
        articulo.estado = resultado
        return _registrar(articulo, 'devolucion', 1, anterior, articulo.estado, detalle_motivo, id_acta, outbox)

    # En stock solo vuelve a existencias lo que regresa en buen estado
    anterior = articulo.stock_actual
    if resultado == 'disponible':
        articulo.stock_actual = anterior + cantidad
    return _registrar(articulo, 'devolucion', cantidad, anterior, articulo.stock_actual,
                      detalle_motivo, id_acta, outbox)


def adjust(articulo_id, nueva_cantidad, motivo=None, outbox=None):
    """Corrección administrativa de existencias."""
    if nueva_cantidad is None or isinstance(nueva_cantidad, bool) or not isinstance(nueva_cantidad, int) \
            or nueva_cantidad < 0:
        raise InvalidAdjustment(cantidad=nueva_cantidad)
    articulo = obtener_articulo(articulo_id)
    if articulo.es_individual:
        raise ValidationError(f"El artículo '{articulo.nombre}' tiene serial; se corrige cambiando su estado.",
                              id_articulo=articulo.id)
    anterior = articulo.stock_actual
    articulo.stock_actual = nueva_cantidad
    return _registrar(articulo, 'ajuste', abs(nueva_cantidad - anterior), anterior, nueva_cantidad,
                      motivo, None, outbox)


def restock(articulo_id, cantidad, motivo=None, outbox=None):
    _validar_cantidad(cantidad)
    articulo = obtener_articulo(articulo_id)
    if articulo.es_individual:
        raise ValidationError(f"El artículo '{articulo.nombre}' tiene serial; no maneja existencias.",
                              id_articulo=articulo.id)
    anterior = articulo.stock_actual
    articulo.stock_actual = anterior + cantidad
    return _registrar(articulo, 'ingreso', cantidad, anterior, articulo.stock_actual, motivo, None, outbox)


def withdraw(articulo_id, cantidad, motivo=None, outbox=None):
    """Salida directa de stock sin acta (uso interno del área)."""
    _validar_cantidad(cantidad)
    articulo = obtener_articulo(articulo_id)
    if articulo.es_individual:
        raise ValidationError(f"El artículo '{articulo.nombre}' tiene serial; se entrega mediante un acta.",
                              id_articulo=articulo.id)
    if cantidad > articulo.stock_actual:
        raise InsufficientStock(
            f"Stock insuficiente de '{articulo.nombre}': disponible {articulo.stock_actual}, solicitado {cantidad}.",
            id_articulo=articulo.id, disponible=articulo.stock_actual, solicitado=cantidad)
    anterior = articulo.stock_actual
    articulo.stock_actual = anterior - cantidad
    return _registrar(articulo, 'consumo', cantidad, anterior, articulo.stock_actual, motivo, None, outbox)


def write_off(articulo_id, motivo=None, cantidad=None, outbox=None):
    """
    Baja definitiva. Individual: pasa a 'obsoleto'. Stock: se descuentan
    las unidades dadas de baja.
    """
    articulo = obtener_articulo(articulo_id)

    if articulo.es_individual:
        if articulo.estado in ESTADOS_DE_ACTA:
            raise InvalidTransition(f"El artículo '{articulo.nombre}' está {articulo.estado} en un acta.",
                                    id_articulo=articulo.id)
        if articulo.estado == 'obsoleto':
            raise InvalidTransition(f"El artículo '{articulo.nombre}' ya fue dado de baja.", id_articulo=articulo.id)
        anterior = articulo.estado
        articulo.estado = 'obsoleto'
        return _registrar(articulo, 'baja', 1, anterior, articulo.estado, motivo, None, outbox)

    _validar_cantidad(cantidad)
    if cantidad > articulo.stock_actual:
        raise InsufficientStock(
            f"No se pueden dar de baja {cantidad} unidades de '{articulo.nombre}': hay {articulo.stock_actual}.",
            id_articulo=articulo.id, disponible=articulo.stock_actual, solicitado=cantidad)
    anterior = articulo.stock_actual
    articulo.stock_actual = anterior - cantidad
    return _registrar(articulo, 'baja', cantidad, anterior, articulo.stock_actual, motivo, None, outbox)


def set_status(articulo_id, estado, motivo=None, outbox=None):
    """Cambio administrativo de estado (p. ej. a reparación) fuera de un acta."""
    if estado not in ESTADOS_ARTICULO or estado in ESTADOS_DE_ACTA:
        raise ValidationError(f"Estado no permitido para un cambio manual: {estado}.")
    articulo = obtener_articulo(articulo_id)
    if not articulo.es_individual:
        raise ValidationError(f"El artículo '{articulo.nombre}' se controla por cantidad, no por estado.",
                              id_articulo=articulo.id)
    if articulo.estado in ESTADOS_DE_ACTA:
        raise InvalidTransition(f"El artículo '{articulo.nombre}' está {articulo.estado} en un acta.",
                                id_articulo=articulo.id)
    if articulo.estado == estado:
        raise ValidationError(f"El artículo '{articulo.nombre}' ya está {estado}.", id_articulo=articulo.id)
    anterior = articulo.estado
    articulo.estado = estado
    return _registrar(articulo, 'cambio_estado', 1, anterior, estado, motivo, None, outbox)
