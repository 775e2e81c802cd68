"""HTTP tests for /documents."""

import io
import json
import os

import pytest

from extensions import db
from models import Acta, Articulo, FotoDetalle, User, Role, Permission
from conftest import FIRMA


def _token(respuesta):
    return respuesta.get_json()['firma']['enlace'].rsplit('/', 1)[1]


def _crear_entrega(client, receptor, *items, **extra):
    cuerpo = dict(receptor, tipo='entrega', lineas=[{'id_articulo': i} for i in items])
    cuerpo.update(extra)
    return client.post('/documents', json=cuerpo)


class TestCreateDocument:

    def test_create_handover(self, admin_client, crear_articulo, receptor, app):
        item_id = crear_articulo(serial='SN-A01')
        respuesta = _crear_entrega(admin_client, receptor, item_id, fecha_devolucion_esperada='2030-01-31')

        assert respuesta.status_code == 201
        data = respuesta.get_json()
        assert data['acta']['estado'] == 'pendiente_firma'
        assert data['acta']['fecha_devolucion_esperada'] == '2030-01-31'
        assert data['acta']['creador'] == 'admin'
        assert data['firma']['correo'] == 'laura@example.com'
        assert data['firma']['enlace'].startswith('http://front.test/firma-externa/')
        assert data['notificaciones']['correos_enviados'] == 1

        with app.app_context():
            assert db.session.get(Articulo, item_id).estado == 'reservado'

    def test_create_without_signature_request(self, admin_client, crear_articulo, receptor, notifier):
        item_id = crear_articulo(serial='SN-A02')
        respuesta = _crear_entrega(admin_client, receptor, item_id, solicitar_firma=False)
        assert respuesta.status_code == 201
        assert respuesta.get_json()['firma'] is None
        assert notifier.enviados == []

    def test_missing_counterparty_name(self, admin_client, crear_articulo, receptor):
        item_id = crear_articulo(serial='SN-A03')
        receptor['nombre_receptor'] = ''
        respuesta = _crear_entrega(admin_client, receptor, item_id)
        assert respuesta.status_code == 400
        assert respuesta.get_json()['error'] == 'validacion'
        assert 'nombre_receptor' in respuesta.get_json()['campos']

    def test_insufficient_stock_is_400(self, admin_client, crear_articulo, receptor, app):
        cafe = crear_articulo(tipo='consumible', nombre='Café', stock_actual=2)
        respuesta = admin_client.post('/documents', json=dict(
            receptor, tipo='consumible', categoria='cafeteria', lineas=[{'id_articulo': cafe, 'cantidad': 5}]))
        assert respuesta.status_code == 400
        assert respuesta.get_json()['error'] == 'stock_insuficiente'
        with app.app_context():
            assert Acta.query.count() == 0

    def test_unknown_item_is_404(self, admin_client, receptor):
        respuesta = _crear_entrega(admin_client, receptor, 4242)
        assert respuesta.status_code == 404
        assert respuesta.get_json()['error'] == 'articulo_no_encontrado'

    def test_multipart_with_photos(self, admin_client, crear_articulo, receptor, app):
        item_id = crear_articulo(serial='SN-A04')
        datos = dict(receptor, tipo='entrega', lineas=json.dumps([{'id_articulo': item_id}]))
        datos[f'fotos_{item_id}'] = (io.BytesIO(b'\x89PNG fake'), 'frente del equipo.png')
        respuesta = admin_client.post('/documents', data=datos, content_type='multipart/form-data')

        assert respuesta.status_code == 201
        fotos = respuesta.get_json()['acta']['detalles'][0]['fotos']
        assert len(fotos) == 1
        assert fotos[0]['ruta'].startswith('actas/entrega-')
        assert fotos[0]['ruta'].endswith('frente_del_equipo.png')
        with app.app_context():
            assert FotoDetalle.query.count() == 1

    def test_photo_with_bad_extension_rolls_back(self, admin_client, crear_articulo, receptor, app):
        item_id = crear_articulo(serial='SN-A05')
        datos = dict(receptor, tipo='entrega', lineas=json.dumps([{'id_articulo': item_id}]))
        datos[f'fotos_{item_id}'] = (io.BytesIO(b'MZ'), 'virus.exe')
        respuesta = admin_client.post('/documents', data=datos, content_type='multipart/form-data')

        assert respuesta.status_code == 400
        with app.app_context():
            assert Acta.query.count() == 0
            assert db.session.get(Articulo, item_id).estado == 'disponible'

    def test_rejected_photo_on_second_line_leaves_no_files(self, admin_client, crear_articulo, receptor, app):
        portatil = crear_articulo(serial='SN-A06')
        monitor = crear_articulo(serial='SN-A07', nombre='Monitor')
        datos = dict(receptor, tipo='entrega',
                     lineas=json.dumps([{'id_articulo': portatil}, {'id_articulo': monitor}]))
        datos[f'fotos_{portatil}'] = (io.BytesIO(b'\x89PNG fake'), 'ok.png')
        datos[f'fotos_{monitor}'] = (io.BytesIO(b'MZ'), 'virus.exe')
        respuesta = admin_client.post('/documents', data=datos, content_type='multipart/form-data')

        assert respuesta.status_code == 400
        assert 'virus.exe' in respuesta.get_json()['message']
        subidos = [f for _, _, archivos in os.walk(app.config['UPLOAD_FOLDER']) for f in archivos]
        assert subidos == []
        with app.app_context():
            assert Acta.query.count() == 0
            assert FotoDetalle.query.count() == 0


class TestQueries:

    def test_list_filters(self, admin_client, crear_articulo, receptor):
        _crear_entrega(admin_client, receptor, crear_articulo(serial='SN-B01'))
        otro = dict(receptor, nombre_receptor='Pedro Ruiz', correo_receptor='pedro@example.com')
        _crear_entrega(admin_client, otro, crear_articulo(serial='SN-B02'))
        jabon = crear_articulo(tipo='consumible', nombre='Jabón', stock_actual=5)
        admin_client.post('/documents', json=dict(receptor, tipo='consumible', categoria='aseo',
                                                  lineas=[{'id_articulo': jabon}]))

        todas = admin_client.get('/documents').get_json()
        assert todas['total'] == 3

        entregas = admin_client.get('/documents?tipo=entrega').get_json()
        assert entregas['total'] == 2

        pedro = admin_client.get('/documents?busqueda=Pedro').get_json()
        assert [a['nombre_receptor'] for a in pedro['actas']] == ['Pedro Ruiz']

        pendientes = admin_client.get('/documents?estado=pendiente_firma,activa').get_json()
        assert pendientes['total'] == 3

    def test_bad_date_filter(self, admin_client):
        respuesta = admin_client.get('/documents?desde=31-12-2025')
        assert respuesta.status_code == 400

    def test_active_overdue_and_stats(self, admin_client, client, crear_articulo, receptor):
        item_id = crear_articulo(serial='SN-B03')
        creada = _crear_entrega(admin_client, receptor, item_id, fecha_devolucion_esperada='2020-01-01')
        client.post(f'/signature/{_token(creada)}/sign', json={'firma': FIRMA})
        _crear_entrega(admin_client, receptor, crear_articulo(serial='SN-B04'))

        activas = admin_client.get('/documents/active').get_json()['actas']
        assert [a['estado'] for a in activas] == ['activa']

        vencidas = admin_client.get('/documents?vencidas=true').get_json()
        assert vencidas['total'] == 1

        stats = admin_client.get('/documents/stats').get_json()
        assert stats['total'] == 2
        assert stats['pendientes_firma'] == 1
        assert stats['vencidas'] == 1
        assert stats['por_tipo']['entrega']['activa'] == 1

    def test_detail_and_signature_status(self, admin_client, crear_articulo, receptor):
        creada = _crear_entrega(admin_client, receptor, crear_articulo(serial='SN-B05'))
        acta_id = creada.get_json()['acta']['id']

        detalle = admin_client.get(f'/documents/{acta_id}').get_json()['acta']
        assert detalle['tokens'][0]['estado'] == 'pendiente'

        estado = admin_client.get(f'/documents/{acta_id}/signature-status').get_json()
        assert estado['estado'] == 'pendiente_firma'
        assert estado['token_pendiente']['correo_destinatario'] == 'laura@example.com'

        assert admin_client.get('/documents/999').status_code == 404

    def test_item_history(self, admin_client, client, crear_articulo, receptor):
        item_id = crear_articulo(serial='SN-B06')
        primera = _crear_entrega(admin_client, receptor, item_id)
        client.post(f'/signature/{_token(primera)}/reject', json={'motivo': 'Equipo equivocado'})
        _crear_entrega(admin_client, receptor, item_id)

        historial = admin_client.get(f'/items/{item_id}/documents').get_json()['historial']
        assert [h['acta']['estado'] for h in historial] == ['pendiente_firma', 'rechazada']


class TestLifecycle:

    def test_resend_and_cancel(self, admin_client, crear_articulo, receptor, notifier):
        creada = _crear_entrega(admin_client, receptor, crear_articulo(serial='SN-C01'))
        acta_id = creada.get_json()['acta']['id']

        reenvio = admin_client.post(f'/documents/{acta_id}/signature-requests', json={'correo': 'jefe@example.com'})
        assert reenvio.status_code == 200
        assert reenvio.get_json()['firma']['correo'] == 'jefe@example.com'
        assert notifier.para('jefe@example.com')

        invalido = admin_client.post(f'/documents/{acta_id}/signature-requests', json={'correo': 'sin-arroba'})
        assert invalido.status_code == 400

        cancelada = admin_client.delete(f'/documents/{acta_id}', json={'motivo': 'Duplicada'})
        assert cancelada.status_code == 200
        assert cancelada.get_json()['acta']['estado'] == 'cancelada'

        otra_vez = admin_client.delete(f'/documents/{acta_id}')
        assert otra_vez.status_code == 409
        assert otra_vez.get_json()['error'] == 'transicion_invalida'

    def test_operator_return_with_photo(self, admin_client, client, crear_articulo, receptor, app):
        item_id = crear_articulo(serial='SN-C02')
        creada = _crear_entrega(admin_client, receptor, item_id)
        acta = creada.get_json()['acta']
        client.post(f'/signature/{_token(creada)}/sign', json={'firma': FIRMA})

        linea = acta['detalles'][0]['id']
        datos = {
            'devoluciones': json.dumps([{'id_detalle': linea, 'estado_devolucion': 'dañado',
                                         'condicion_devolucion': 'malo', 'observaciones': 'Bisagra rota'}]),
            f'fotos_devolucion_{linea}': (io.BytesIO(b'\xff\xd8 jpg'), 'bisagra.jpg'),
        }
        respuesta = admin_client.post(f"/documents/{acta['id']}/returns", data=datos,
                                      content_type='multipart/form-data')

        assert respuesta.status_code == 200
        devuelta = respuesta.get_json()['acta']
        assert devuelta['estado'] == 'devuelta_completa'
        assert devuelta['detalles'][0]['observaciones_devolucion'] == 'Bisagra rota'
        assert devuelta['detalles'][0]['fotos'][0]['tipo'] == 'devolucion'
        with app.app_context():
            assert db.session.get(Articulo, item_id).estado == 'dañado'

    def test_return_requires_lines(self, admin_client, crear_articulo, receptor):
        creada = _crear_entrega(admin_client, receptor, crear_articulo(serial='SN-C03'))
        acta_id = creada.get_json()['acta']['id']
        respuesta = admin_client.post(f'/documents/{acta_id}/returns', json={'devoluciones': []})
        assert respuesta.status_code == 400


class TestPermissions:

    def test_anonymous_is_401(self, client):
        respuesta = client.get('/documents')
        assert respuesta.status_code == 401
        assert respuesta.get_json()['error'] == 'no_autenticado'

    @pytest.fixture
    def operador(self, admin_client, app):
        """Usuario con permiso solo para listar actas."""
        with app.app_context():
            rol = Role(name='consulta')
            rol.permissions.append(Permission(endpoint='documentos.listar_documentos'))
            usuario = User(username='operador')
            usuario.set_password('clave')
            usuario.roles.append(rol)
            db.session.add(usuario)
            db.session.commit()
        cliente = app.test_client()
        assert cliente.post('/login', json={'username': 'operador', 'password': 'clave'}).status_code == 200
        return cliente

    def test_permission_is_checked_per_endpoint(self, operador, receptor):
        assert operador.get('/documents').status_code == 200
        respuesta = operador.post('/documents', json=dict(receptor, tipo='entrega', lineas=[]))
        assert respuesta.status_code == 403
        assert respuesta.get_json()['error'] == 'prohibido'
