"""Pytest configuration and fixtures for the inventory and actas tests."""

import base64
import io

import pytest
from flask import has_app_context
from PIL import Image

from app import create_app
from extensions import db
from event_bus import InMemoryEventBus
from notifier import Notifier
from models import Articulo
import ledger
from tipos_inventario import inicializar_tipos_inventario


def _png(ancho=4, alto=2):
    buffer = io.BytesIO()
    Image.new('RGB', (ancho, alto), 'white').save(buffer, 'PNG')
    return buffer.getvalue()


FIRMA_PNG = _png()
FIRMA = 'data:image/png;base64,' + base64.b64encode(FIRMA_PNG).decode()


class FakeNotifier(Notifier):
    """Guarda los correos en memoria. fallar=True simula un SMTP caído; 'excepcion' lanza."""

    def __init__(self):
        self.enviados = []
        self.fallar = False

    def send(self, destinatarios, asunto, html, texto=None, adjuntos=None):
        if self.fallar == 'excepcion':
            raise ConnectionError('SMTP no disponible')
        if self.fallar:
            return False
        self.enviados.append({
            'destinatarios': list(destinatarios),
            'asunto': asunto,
            'html': html,
            'adjuntos': list(adjuntos or []),
        })
        return True

    def para(self, correo):
        return [m for m in self.enviados if correo in m['destinatarios']]


@pytest.fixture
def bus():
    return InMemoryEventBus()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def app(tmp_path, bus, notifier):
    """App con SQLite en memoria, carpeta de subidas temporal y dobles de correo/eventos."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'INIT_TABLES': False,
        'FRONTEND_URL': 'http://front.test',
        'MAIL_CONFIG': {'operaciones': 'operaciones@example.com', 'enabled': False},
        'LOG_LEVEL': 'WARNING',
    }, event_bus=bus, notifier=notifier)

    with app.app_context():
        db.create_all()
        inicializar_tipos_inventario()
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Contexto de aplicación para pruebas a nivel de servicio."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    """Cliente con sesión de administrador (creado por /setup)."""
    response = client.post('/setup', json={'username': 'admin', 'password': 'secreto'})
    assert response.status_code == 201
    return client


@pytest.fixture
def crear_articulo(app):
    """
    Fábrica de artículos con su movimiento de ingreso. Devuelve el id.
    Usa el contexto activo si lo hay (pruebas de servicio).
    """
    def _crear(**datos):
        valores = {
            'tipo': 'dispositivo',
            'tipo_registro': 'individual',
            'nombre': 'Portátil Dell Latitude',
            'estado': 'disponible',
            'stock_actual': 1,
            'stock_minimo': 0,
        }
        valores.update(datos)
        if valores['tipo'] == 'consumible':
            valores['tipo_registro'] = 'stock'

        def _guardar():
            articulo = Articulo(**valores)
            db.session.add(articulo)
            db.session.flush()
            ledger.register_intake(articulo, None)
            db.session.commit()
            return articulo.id

        if has_app_context():
            return _guardar()
        with app.app_context():
            return _guardar()

    return _crear


@pytest.fixture
def receptor():
    return {
        'nombre_receptor': 'Laura Gómez',
        'cedula_receptor': '1020304050',
        'cargo_receptor': 'Analista contable',
        'correo_receptor': 'laura@example.com',
    }
