# event_bus.py

from flask import current_app


class EventBus:
    """Difunde un evento con datos a una sala. Se inyecta en el orquestador."""

    def broadcast(self, sala, evento, datos):
        raise NotImplementedError


class NullEventBus(EventBus):
    """No envía nada; solo deja rastro en el log."""

    def broadcast(self, sala, evento, datos):
        current_app.logger.debug(f"Evento '{evento}' a la sala '{sala}' (sin suscriptores)")


class InMemoryEventBus(EventBus):
    """
    Salas en memoria con callbacks suscritos. Sirve para las pruebas y para
    conectar un servidor de sockets: cada conexión se suscribe a su sala con
    una función que reenvía el mensaje.
    """

    def __init__(self):
        self.salas = {}
        self.historial = []

    def subscribe(self, sala, callback):
        self.salas.setdefault(sala, []).append(callback)

    def unsubscribe(self, sala, callback):
        if sala in self.salas and callback in self.salas[sala]:
            self.salas[sala].remove(callback)

    def broadcast(self, sala, evento, datos):
        self.historial.append((sala, evento, datos))
        for callback in list(self.salas.get(sala, [])):
            try:
                callback(evento, datos)
            except Exception as e:
                # Conexión rota: se descarta y se sigue con las demás
                current_app.logger.warning(f"Suscriptor de '{sala}' falló con '{evento}': {e}")
                self.unsubscribe(sala, callback)

    def eventos(self, sala=None, evento=None):
        return [
            (s, e, d) for (s, e, d) in self.historial
            if (sala is None or s == sala) and (evento is None or e == evento)
        ]
