# workflow.py

# Orquestador del ciclo de vida de las actas. Un solo motor para entrega,
# devolución y consumibles; lo que cambia por tipo sale de workflows.py.
#
# Cada operación corre en una transacción: acta, inventario, token y bitácora
# se confirman juntos o no se confirma nada. Los correos y eventos se encolan
# en un Outbox y se entregan después del commit; si fallan, el estado ya
# confirmado no se toca y el fallo vuelve en el reporte.
#
# Todas las transiciones bloquean las filas en el mismo orden: acta, token de
# firma y luego artículos.

import base64
import binascii
import io

from flask import current_app
from PIL import Image, UnidentifiedImageError

from extensions import db
from models import Acta
from errors import ValidationError, DocumentNotFound
from outbox import Outbox
from workflows import obtener_workflow, transicion, titulo_para
from log_activity import log_activity, usuario_actual_id
import documents
import tokens
import uploads

EVENTO_CREADA = 'doc:created'
EVENTO_FIRMADA = 'doc:signed'
EVENTO_RECHAZADA = 'doc:rejected'
EVENTO_DEVOLUCION = 'doc:returned'
EVENTO_CANCELADA = 'doc:cancelled'
EVENTO_ACTUALIZADA = 'doc:updated'


def decodificar_firma(firma):
    """
    Firma en base64 (con o sin prefijo data:image/...). Devuelve los bytes y
    el mimetype detectado a partir del contenido.
    """
    if not firma or not isinstance(firma, str) or not firma.strip():
        raise ValidationError('La firma es requerida.')
    contenido = firma.split(',', 1)[1] if firma.startswith('data:') else firma
    try:
        datos = base64.b64decode(contenido, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError('La firma no es una imagen válida.')
    if not datos:
        raise ValidationError('La firma es requerida.')
    try:
        img = Image.open(io.BytesIO(datos))
        img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        raise ValidationError('La firma no es una imagen válida.')
    return datos, Image.MIME.get(img.format, 'image/png')


class Orchestrator:

    def __init__(self, event_bus, notifier):
        self.event_bus = event_bus
        self.notifier = notifier

    @classmethod
    def desde_app(cls, app=None):
        app = app or current_app
        return cls(app.extensions['event_bus'], app.extensions['notifier'])

    # --- utilidades internas ---

    def _ejecutar(self, operacion):
        outbox = Outbox()
        try:
            resultado = operacion(outbox)
            db.session.commit()
        except Exception:
            db.session.rollback()
            uploads.descartar(outbox.archivos)
            raise
        reporte = outbox.dispatch(self.event_bus, self.notifier)
        return resultado, reporte

    def _obtener_acta(self, acta_id, bloquear=True):
        query = db.session.query(Acta).filter_by(id=acta_id)
        if bloquear:
            query = query.with_for_update().populate_existing()
        acta = query.first()
        if acta is None:
            raise DocumentNotFound(f"El acta {acta_id} no existe.")
        return acta

    def _bloquear_por_token(self, valor_token):
        """
        Acta de un enlace de firma, bloqueada antes que el token. El token se
        lee primero sin bloqueo solo para saber a qué acta pertenece.
        """
        acta = self._obtener_acta(tokens.lookup(valor_token).id_acta)
        tokens.redeem(valor_token, bloquear=True)
        return acta

    def _salas(self, acta):
        return obtener_workflow(acta.tipo)['salas']

    def enlace_firma(self, acta, token):
        ruta = obtener_workflow(acta.tipo)['ruta_firma'].format(token=token.token)
        return f"{current_app.config['FRONTEND_URL'].rstrip('/')}{ruta}"

    def _correo(self, outbox, acta, clave, destinatarios, adjuntos=None, **contexto):
        plantilla, asunto = obtener_workflow(acta.tipo)['correos'][clave]
        titulo = titulo_para(acta)
        asunto = asunto.format(titulo=titulo, nombre=acta.nombre_receptor, numero=acta.numero_acta)
        destinatarios = [d for d in destinatarios if d]
        if not destinatarios:
            current_app.logger.info(f"Sin destinatarios para el correo '{clave}' de {acta.numero_acta}.")
            return
        outbox.email(destinatarios, asunto, plantilla, dict(acta=acta, titulo=titulo, **contexto), adjuntos)

    def _emitir_token(self, acta, outbox, correo=None):
        workflow = obtener_workflow(acta.tipo)
        token = tokens.issue(acta, correo or acta.correo_receptor, workflow['ttl'])
        self._correo(outbox, acta, 'solicitud', [token.correo_destinatario],
                     enlace=self.enlace_firma(acta, token), token=token)
        return token

    # --- operaciones ---

    def create(self, tipo, encabezado, lineas, categoria=None, fotos=None, solicitar_firma=True):
        """
        Crea el acta reservando el inventario y, si hay correo, envía la
        solicitud de firma. fotos: {id_articulo: [FileStorage, ...]}.
        Devuelve (acta, token o None, reporte de notificaciones).
        """
        def operacion(outbox):
            acta = documents.create(tipo, encabezado, lineas, categoria=categoria, outbox=outbox,
                                    id_usuario=usuario_actual_id())
            por_articulo = fotos or {}
            for detalle in acta.detalles:
                uploads.validar_fotos(por_articulo.get(detalle.id_articulo))
            for detalle in acta.detalles:
                uploads.guardar_fotos(detalle, por_articulo.get(detalle.id_articulo), 'entrega', outbox.archivos)

            token = None
            if solicitar_firma and acta.correo_receptor:
                token = self._emitir_token(acta, outbox)

            log_activity(
                action=f"Creación de {acta.numero_acta}",
                category='Actas',
                resource_id=acta.id,
                details=f"Tipo: {tipo}. Receptor: {acta.nombre_receptor}. Líneas: {len(acta.detalles)}"
            )
            outbox.broadcast(self._salas(acta), EVENTO_CREADA, acta.to_dict(incluir_detalles=False))
            return acta, token

        (acta, token), reporte = self._ejecutar(operacion)
        current_app.logger.info(f"Acta {acta.numero_acta} creada ({acta.tipo}).")
        return acta, token, reporte

    def request_signature(self, acta_id, correo=None):
        """(Re)emite el enlace de firma de un acta pendiente y envía el correo."""
        def operacion(outbox):
            acta = self._obtener_acta(acta_id)
            transicion(acta, 'reenviar')
            token = self._emitir_token(acta, outbox, correo)
            log_activity(
                action=f"Solicitud de firma de {acta.numero_acta}",
                category='Firma externa',
                resource_id=acta.id,
                details=f"Enviado a {token.correo_destinatario}"
            )
            return token

        return self._ejecutar(operacion)

    def sign(self, valor_token, firma, ip=None, user_agent=None):
        """Firma externa: aplica la transición del acta y consume el token."""
        def operacion(outbox):
            acta = self._bloquear_por_token(valor_token)
            imagen, mimetype = decodificar_firma(firma)
            extension = mimetype.rsplit('/', 1)[-1]
            origenes = documents.mark_signed(acta, firma, outbox)
            tokens.consume(valor_token, 'firmado', ip=ip, user_agent=user_agent)

            log_activity(
                action=f"Firma de {acta.numero_acta}",
                category='Firma externa',
                resource_id=acta.id,
                details=f"Firmada por {acta.nombre_receptor} desde {ip or 'IP desconocida'}"
            )
            outbox.broadcast(self._salas(acta), EVENTO_FIRMADA, acta.to_dict(incluir_detalles=False))
            for origen in origenes:
                outbox.broadcast(self._salas(origen), EVENTO_ACTUALIZADA, origen.to_dict(incluir_detalles=False))

            self._correo(
                outbox, acta, 'confirmacion',
                [acta.correo_receptor, current_app.config['MAIL_CONFIG'].get('operaciones')],
                adjuntos=[(f"firma-{acta.numero_acta}.{extension}", imagen, mimetype)]
            )
            return acta

        acta, reporte = self._ejecutar(operacion)
        current_app.logger.info(f"Acta {acta.numero_acta} firmada; estado {acta.estado}.")
        return acta, reporte

    def reject(self, valor_token, motivo, ip=None, user_agent=None):
        """Rechazo externo: libera el inventario reservado y consume el token."""
        motivo = (motivo or '').strip() if isinstance(motivo, str) else ''

        def operacion(outbox):
            acta = self._bloquear_por_token(valor_token)
            if not motivo:
                raise ValidationError('Debe indicar el motivo del rechazo.')
            documents.mark_rejected(acta, motivo, outbox)
            tokens.consume(valor_token, 'rechazado', ip=ip, user_agent=user_agent, motivo=motivo)

            log_activity(
                action=f"Rechazo de {acta.numero_acta}",
                category='Firma externa',
                resource_id=acta.id,
                details=f"Motivo: {motivo}"
            )
            outbox.broadcast(self._salas(acta), EVENTO_RECHAZADA, acta.to_dict(incluir_detalles=False))
            self._correo(
                outbox, acta, 'rechazo',
                [current_app.config['MAIL_CONFIG'].get('operaciones'), acta.correo_receptor],
                motivo=motivo
            )
            return acta

        acta, reporte = self._ejecutar(operacion)
        current_app.logger.info(f"Acta {acta.numero_acta} rechazada por el receptor.")
        return acta, reporte

    def register_return(self, acta_id, resultados, fotos=None):
        """
        Devolución registrada por un operador sobre un acta de entrega
        vigente; no usa token. fotos: {id_detalle: [FileStorage, ...]}.
        """
        def operacion(outbox):
            acta = self._obtener_acta(acta_id)
            devueltos = documents.record_partial_return(acta, resultados, outbox)
            por_linea = fotos or {}
            for detalle in devueltos:
                uploads.validar_fotos(por_linea.get(detalle.id))
            for detalle in devueltos:
                uploads.guardar_fotos(detalle, por_linea.get(detalle.id), 'devolucion', outbox.archivos)

            log_activity(
                action=f"Devolución en {acta.numero_acta}",
                category='Actas',
                resource_id=acta.id,
                details=', '.join(f"línea {d.id}: {d.estado_devolucion}" for d in devueltos)
            )
            outbox.broadcast(self._salas(acta) + ['devoluciones'], EVENTO_DEVOLUCION,
                             acta.to_dict(incluir_detalles=False))
            return acta

        return self._ejecutar(operacion)

    def cancel(self, acta_id, motivo=None):
        """Anula un acta que nunca se firmó; queda como 'cancelada' para auditoría."""
        def operacion(outbox):
            acta = self._obtener_acta(acta_id)
            tokens.cancel_pending(acta)
            documents.cancel(acta, motivo, outbox)
            log_activity(
                action=f"Cancelación de {acta.numero_acta}",
                category='Actas',
                resource_id=acta.id,
                details=motivo
            )
            outbox.broadcast(self._salas(acta), EVENTO_CANCELADA, acta.to_dict(incluir_detalles=False))
            return acta

        return self._ejecutar(operacion)
