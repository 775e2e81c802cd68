"""Tests for post-commit notification delivery."""

import pytest

from event_bus import EventBus, InMemoryEventBus
from notifier import EmailNotifier
from extensions import db
from models import Acta
from outbox import Outbox
from workflow import Orchestrator
from conftest import FakeNotifier, FIRMA
import outbox as outbox_module


class BrokenBus(EventBus):
    def broadcast(self, sala, evento, datos):
        raise RuntimeError('socket cerrado')


def test_dispatch_delivers_events_and_emails(ctx):
    bus, notifier = InMemoryEventBus(), FakeNotifier()
    outbox = Outbox()
    outbox.broadcast(['actas', 'inventario'], 'doc:created', {'id': 1})
    outbox.email(['a@example.com', None], 'Asunto', 'correos/rechazo.html',
                 {'acta': _ActaFalsa(), 'titulo': 'Acta', 'motivo': 'Prueba'})

    reporte = outbox.dispatch(bus, notifier)

    assert reporte == {'eventos': 2, 'correos_enviados': 1, 'fallos': []}
    assert [s for s, _, _ in bus.historial] == ['actas', 'inventario']
    assert notifier.enviados[0]['destinatarios'] == ['a@example.com']
    assert 'Prueba' in notifier.enviados[0]['html']


def test_failures_are_reported_not_raised(ctx):
    notifier = FakeNotifier()
    notifier.fallar = 'excepcion'
    outbox = Outbox()
    outbox.broadcast('actas', 'doc:signed', {})
    outbox.email('a@example.com', 'Asunto', 'correos/rechazo.html',
                 {'acta': _ActaFalsa(), 'titulo': 'Acta', 'motivo': 'x'})

    reporte = outbox.dispatch(BrokenBus(), notifier)

    assert reporte['eventos'] == 0 and reporte['correos_enviados'] == 0
    assert [f['tipo'] for f in reporte['fallos']] == ['evento', 'correo']
    assert all(f['error'] == 'entrega_fallida' for f in reporte['fallos'])


def test_broken_template_is_a_delivery_failure(ctx):
    notifier = FakeNotifier()
    outbox = Outbox()
    outbox.email('a@example.com', 'Asunto', 'correos/no_existe.html', {})
    outbox.email('b@example.com', 'Otro', 'correos/rechazo.html',
                 {'acta': _ActaFalsa(), 'titulo': 'Acta', 'motivo': 'x'})

    reporte = outbox.dispatch(InMemoryEventBus(), notifier)

    assert reporte['correos_enviados'] == 1
    assert [f['destino'] for f in reporte['fallos']] == ['a@example.com']
    assert notifier.enviados[0]['destinatarios'] == ['b@example.com']


def test_templates_render_after_commit(ctx, crear_articulo, receptor, monkeypatch):
    orq = Orchestrator.desde_app()
    item_id = crear_articulo(serial='SN-O02')
    acta, token, _ = orq.create('entrega', receptor, [{'id_articulo': item_id}])

    def plantilla_rota(nombre, **contexto):
        assert db.session.get(Acta, acta.id).estado == 'activa'
        raise RuntimeError(f"plantilla {nombre} rota")

    monkeypatch.setattr(outbox_module, 'render_template', plantilla_rota)
    firmada, reporte = orq.sign(token.token, FIRMA)

    assert firmada.estado == 'activa'
    assert reporte['correos_enviados'] == 0
    assert reporte['fallos'][0]['tipo'] == 'correo'
    assert 'rota' in reporte['fallos'][0]['message']


def test_dispatch_empties_the_outbox(ctx):
    bus = InMemoryEventBus()
    outbox = Outbox()
    outbox.broadcast('actas', 'doc:created', {})
    outbox.dispatch(bus, FakeNotifier())
    outbox.dispatch(bus, FakeNotifier())
    assert len(bus.historial) == 1


def test_broken_subscriber_is_dropped(ctx):
    bus = InMemoryEventBus()
    recibidos = []

    def roto(evento, datos):
        raise ConnectionResetError()

    bus.subscribe('actas', roto)
    bus.subscribe('actas', lambda evento, datos: recibidos.append(evento))

    bus.broadcast('actas', 'doc:created', {})
    bus.broadcast('actas', 'doc:signed', {})

    assert recibidos == ['doc:created', 'doc:signed']
    assert len(bus.salas['actas']) == 1
    assert bus.eventos(evento='doc:signed') == [('actas', 'doc:signed', {})]


def test_operator_response_includes_delivery_report(admin_client, crear_articulo, receptor, notifier):
    item_id = crear_articulo(serial='SN-O01')
    notifier.fallar = True
    respuesta = admin_client.post('/documents', json=dict(receptor, tipo='entrega',
                                                          lineas=[{'id_articulo': item_id}]))

    assert respuesta.status_code == 201
    fallos = respuesta.get_json()['notificaciones']['fallos']
    assert fallos[0]['tipo'] == 'correo'
    assert fallos[0]['destino'] == 'laura@example.com'


class _ActaFalsa:
    """Lo mínimo que usan las plantillas de correo."""
    numero_acta = 'ACTA-2026-0001'
    nombre_receptor = 'Laura Gómez'
    tipo = 'entrega'
    detalles = []


@pytest.mark.parametrize('destinatarios', [[], [None, '']])
def test_email_without_recipients_is_reported(ctx, destinatarios):
    notificador = EmailNotifier({'server': 'localhost', 'port': 25, 'username': '', 'password': '',
                                 'sender': 'inventario@example.com', 'sender_name': 'Inventario'})
    assert notificador.send(destinatarios, 'Asunto', '<p>x</p>') is False
