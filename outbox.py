# outbox.py

from flask import current_app, render_template

from errors import TransientIOError


class Outbox:
    """
    Notificaciones pendientes de una transacción.

    Durante la operación se encolan eventos y correos; solo después del
    commit se llama a dispatch(). Si la transacción hace rollback, el outbox
    simplemente se descarta y no sale nada. `archivos` lleva las rutas
    escritas en disco durante la operación, para borrarlas en ese caso.
    """

    def __init__(self):
        self.eventos = []
        self.correos = []
        self.archivos = []

    def broadcast(self, salas, evento, datos):
        if isinstance(salas, str):
            salas = [salas]
        for sala in salas:
            self.eventos.append((sala, evento, datos))

    def email(self, destinatarios, asunto, plantilla, contexto=None, adjuntos=None):
        # La plantilla se renderiza en dispatch(); aquí solo se guarda el contexto
        if isinstance(destinatarios, str):
            destinatarios = [destinatarios]
        self.correos.append({
            'destinatarios': [d for d in destinatarios if d],
            'asunto': asunto,
            'plantilla': plantilla,
            'contexto': dict(contexto or {}),
            'adjuntos': list(adjuntos or []),
        })

    def _enviar_correo(self, notifier, correo):
        """(enviado, error). Un fallo al renderizar cuenta como correo no entregado."""
        try:
            html = render_template(correo['plantilla'], **correo['contexto'])
            enviado = notifier.send(correo['destinatarios'], correo['asunto'], html, adjuntos=correo['adjuntos'])
        except Exception as e:
            current_app.logger.warning(f"Error enviando '{correo['asunto']}': {e}", exc_info=True)
            return False, str(e)
        return enviado, None if enviado else 'El servidor de correo no aceptó el mensaje.'

    def dispatch(self, event_bus, notifier):
        """
        Entrega todo lo encolado. Los fallos se registran y se reportan, pero
        no se propagan: el estado ya está confirmado en la base de datos.
        """
        reporte = {'eventos': 0, 'correos_enviados': 0, 'fallos': []}

        for sala, evento, datos in self.eventos:
            try:
                event_bus.broadcast(sala, evento, datos)
                reporte['eventos'] += 1
            except Exception as e:
                current_app.logger.warning(f"No se pudo emitir '{evento}' a '{sala}': {e}", exc_info=True)
                fallo = TransientIOError(str(e), tipo='evento', destino=sala, evento=evento)
                reporte['fallos'].append(fallo.to_dict())

        for correo in self.correos:
            enviado, error = self._enviar_correo(notifier, correo)
            if enviado:
                reporte['correos_enviados'] += 1
            else:
                current_app.logger.warning(f"Correo no entregado: {correo['asunto']} -> {correo['destinatarios']}")
                fallo = TransientIOError(error, tipo='correo', destino=', '.join(correo['destinatarios']),
                                         asunto=correo['asunto'])
                reporte['fallos'].append(fallo.to_dict())

        self.eventos, self.correos, self.archivos = [], [], []
        return reporte
