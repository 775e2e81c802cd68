"""HTTP tests for the public signing endpoints."""

from datetime import timedelta

import pytest

from extensions import db
from models import Acta, Articulo, TokenFirma, ahora
from conftest import FIRMA


@pytest.fixture
def pendiente(admin_client, crear_articulo, receptor):
    """Acta de entrega pendiente; devuelve (acta_id, articulo_id, token)."""
    item_id = crear_articulo(serial='SN-F01', marca='Dell', modelo='Latitude 5440')
    respuesta = admin_client.post('/documents', json=dict(receptor, tipo='entrega',
                                                          lineas=[{'id_articulo': item_id}]))
    data = respuesta.get_json()
    return data['acta']['id'], item_id, data['firma']['enlace'].rsplit('/', 1)[1]


@pytest.fixture
def publico(app):
    """Cliente sin sesión, como el navegador del receptor."""
    return app.test_client()


def test_view_document_by_token(publico, pendiente):
    _, _, token = pendiente
    respuesta = publico.get(f'/signature/{token}')

    assert respuesta.status_code == 200
    data = respuesta.get_json()
    assert data['titulo'] == 'Acta de Entrega de Equipos'
    assert data['correo'] == 'laura@example.com'
    assert data['acta']['detalles'][0]['articulo']['marca'] == 'Dell'
    # Vista pública: sin datos personales ni internos
    assert 'cedula_receptor' not in data['acta']
    assert 'fotos' not in data['acta']['detalles'][0]


def test_unknown_token_is_404(publico):
    respuesta = publico.get('/signature/no-existe')
    assert respuesta.status_code == 404
    assert respuesta.get_json()['error'] == 'token_no_encontrado'


def test_sign(publico, pendiente, app):
    acta_id, item_id, token = pendiente
    respuesta = publico.post(f'/signature/{token}/sign', json={'firma': FIRMA},
                             headers={'User-Agent': 'Mozilla/5.0', 'X-Forwarded-For': '200.1.2.3, 10.0.0.1'})

    assert respuesta.status_code == 200
    data = respuesta.get_json()
    assert data['message'] == 'Acta firmada exitosamente.'
    assert data['acta']['estado'] == 'activa'

    with app.app_context():
        assert db.session.get(Articulo, item_id).estado == 'entregado'
        token_firma = TokenFirma.query.filter_by(token=token).one()
        assert token_firma.ip_firma == '200.1.2.3'
        assert token_firma.user_agent == 'Mozilla/5.0'


def test_signed_link_reports_signature_date(publico, pendiente):
    _, _, token = pendiente
    publico.post(f'/signature/{token}/sign', json={'firma': FIRMA})

    for respuesta in (publico.get(f'/signature/{token}'),
                      publico.post(f'/signature/{token}/sign', json={'firma': FIRMA})):
        assert respuesta.status_code == 400
        data = respuesta.get_json()
        assert data['error'] == 'token_usado'
        assert data['estado'] == 'firmado'
        assert data['fechaFirma']


@pytest.mark.parametrize('cuerpo', [{}, {'firma': 'data:image/png;base64,@@@'}])
def test_signed_link_ignores_the_body(publico, pendiente, cuerpo):
    _, _, token = pendiente
    publico.post(f'/signature/{token}/sign', json={'firma': FIRMA})

    respuesta = publico.post(f'/signature/{token}/sign', json=cuerpo)
    assert respuesta.status_code == 400
    assert respuesta.get_json()['error'] == 'token_usado'
    assert respuesta.get_json()['fechaFirma']


def test_rejected_link_ignores_missing_reason(publico, pendiente):
    _, _, token = pendiente
    publico.post(f'/signature/{token}/reject', json={'motivo': 'Faltan accesorios'})

    respuesta = publico.post(f'/signature/{token}/reject', json={'motivo': ''})
    assert respuesta.status_code == 400
    assert respuesta.get_json()['error'] == 'token_usado'
    assert respuesta.get_json()['motivo'] == 'Faltan accesorios'


def test_missing_signature_is_400(publico, pendiente, app):
    acta_id, _, token = pendiente
    respuesta = publico.post(f'/signature/{token}/sign', json={})
    assert respuesta.status_code == 400
    assert respuesta.get_json()['message'] == 'La firma es requerida.'
    with app.app_context():
        assert db.session.get(Acta, acta_id).estado == 'pendiente_firma'


def test_reject(publico, pendiente, app):
    acta_id, item_id, token = pendiente
    respuesta = publico.post(f'/signature/{token}/reject', json={'motivo': 'El equipo tiene la pantalla rota'})

    assert respuesta.status_code == 200
    assert respuesta.get_json()['message'] == 'Acta devuelta para corrección.'
    assert respuesta.get_json()['acta']['estado'] == 'rechazada'

    vista = publico.get(f'/signature/{token}')
    assert vista.status_code == 400
    assert vista.get_json()['motivo'] == 'El equipo tiene la pantalla rota'

    with app.app_context():
        assert db.session.get(Articulo, item_id).estado == 'disponible'


def test_reject_without_reason_is_400(publico, pendiente):
    _, _, token = pendiente
    respuesta = publico.post(f'/signature/{token}/reject', json={'motivo': ''})
    assert respuesta.status_code == 400
    assert respuesta.get_json()['message'] == 'Debe indicar el motivo del rechazo.'


def test_expired_link_is_400(publico, pendiente, app):
    _, _, token = pendiente
    with app.app_context():
        token_firma = TokenFirma.query.filter_by(token=token).one()
        token_firma.fecha_expiracion = ahora() - timedelta(hours=1)
        db.session.commit()

    respuesta = publico.get(f'/signature/{token}')
    assert respuesta.status_code == 400
    assert respuesta.get_json()['error'] == 'token_expirado'


def test_signing_works_when_mail_is_down(publico, pendiente, notifier, app):
    acta_id, _, token = pendiente
    notifier.fallar = 'excepcion'

    respuesta = publico.post(f'/signature/{token}/sign', json={'firma': FIRMA})

    assert respuesta.status_code == 200
    with app.app_context():
        assert db.session.get(Acta, acta_id).estado == 'activa'
