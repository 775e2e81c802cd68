# tokens.py

import secrets

from extensions import db
from models import TokenFirma, ahora
from errors import TokenNotFound, TokenAlreadyUsed, TokenExpired, ValidationError

MAX_USER_AGENT = 500


def _buscar(valor, bloquear=False):
    if not valor:
        raise TokenNotFound()
    query = db.session.query(TokenFirma).filter_by(token=valor)
    if bloquear:
        # Dos firmas simultáneas del mismo enlace se serializan aquí: la segunda
        # espera al commit de la primera y ya no encuentra el token pendiente.
        query = query.with_for_update().populate_existing()
    token = query.first()
    if token is None:
        raise TokenNotFound()
    return token


def _validar(token):
    if token.estado == 'firmado':
        fecha = token.acta.fecha_firma or token.fecha_uso
        raise TokenAlreadyUsed('Este acta ya ha sido firmada.', estado=token.estado,
                               fechaFirma=fecha.isoformat() if fecha else None)
    if token.estado == 'rechazado':
        raise TokenAlreadyUsed('Este acta fue devuelta para corrección.', estado=token.estado,
                               motivo=token.motivo_rechazo)
    if token.estado == 'cancelado':
        raise TokenAlreadyUsed('Este enlace ha sido cancelado. Solicite un nuevo enlace.', estado=token.estado)
    if token.expirado():
        raise TokenExpired(estado='expirado', fechaExpiracion=token.fecha_expiracion.isoformat())
    return token


def cancel_pending(acta):
    pendientes = db.session.query(TokenFirma).filter_by(id_acta=acta.id, estado='pendiente') \
        .with_for_update().all()
    for anterior in pendientes:
        anterior.estado = 'cancelado'
    return pendientes


def issue(acta, correo, ttl=None):
    """
    Emite un enlace nuevo para el acta. Los tokens pendientes anteriores
    quedan cancelados. ttl es un timedelta o None (sin vencimiento).
    """
    if not correo:
        raise ValidationError('El acta no tiene correo de receptor.')

    cancel_pending(acta)

    emitido = ahora()
    token = TokenFirma(
        token=secrets.token_urlsafe(32),
        acta=acta,
        correo_destinatario=correo,
        estado='pendiente',
        fecha_envio=emitido,
        fecha_expiracion=emitido + ttl if ttl else None
    )
    db.session.add(token)
    db.session.flush()
    return token


def lookup(valor):
    """Devuelve el token sin validarlo (para consultas de estado)."""
    return _buscar(valor)


def redeem(valor, bloquear=False):
    """Valida el enlace y devuelve el acta asociada."""
    return _validar(_buscar(valor, bloquear=bloquear)).acta


def consume(valor, resultado, ip=None, user_agent=None, motivo=None):
    """
    Marca el token como usado ('firmado' o 'rechazado'). Vuelve a validar
    bajo bloqueo, así que un enlace ya usado falla y no se aplica dos veces.
    """
    if resultado not in ('firmado', 'rechazado'):
        raise ValidationError(f"Resultado de token inválido: {resultado}.")
    token = _validar(_buscar(valor, bloquear=True))
    token.estado = resultado
    token.fecha_uso = ahora()
    token.ip_firma = ip
    token.user_agent = user_agent[:MAX_USER_AGENT] if user_agent else None
    if resultado == 'rechazado':
        token.motivo_rechazo = motivo
    return token
