"""HTTP tests for /items."""

import io

import pandas as pd
import pytest

from extensions import db
from models import Articulo, Movimiento


def _crear(client, **datos):
    cuerpo = {'tipo': 'dispositivo', 'nombre': 'Portátil HP ProBook'}
    cuerpo.update(datos)
    return client.post('/items', json=cuerpo)


class TestCreateAndList:

    def test_create_serialized_item(self, admin_client, bus, app):
        respuesta = _crear(admin_client, serial='HP-001', marca='HP')

        assert respuesta.status_code == 201
        articulo = respuesta.get_json()['articulo']
        assert articulo['estado'] == 'disponible'
        assert articulo['stock_actual'] == 1
        assert bus.eventos('inventario', 'item:updated')
        with app.app_context():
            ingreso = Movimiento.query.filter_by(id_articulo=articulo['id']).one()
            assert ingreso.tipo == 'ingreso'

    def test_create_stock_item(self, admin_client, bus):
        respuesta = _crear(admin_client, tipo='consumible', tipo_registro='stock', nombre='Café molido',
                           stock_actual=12, stock_minimo=3, unidad_medida='libra')
        assert respuesta.status_code == 201
        articulo = respuesta.get_json()['articulo']
        assert (articulo['stock_actual'], articulo['stock_minimo']) == (12, 3)
        assert bus.eventos('consumibles', 'item:updated')

    def test_serialized_consumable_is_refused(self, admin_client):
        respuesta = _crear(admin_client, tipo='consumible', nombre='Jabón')
        assert respuesta.status_code == 400

    def test_duplicate_serial_is_409(self, admin_client):
        _crear(admin_client, serial='HP-002')
        respuesta = _crear(admin_client, serial='HP-002', nombre='Otro')
        assert respuesta.status_code == 409

    def test_invalid_kind(self, admin_client):
        respuesta = _crear(admin_client, tipo='vehiculo')
        assert respuesta.status_code == 400
        assert 'tipo' in respuesta.get_json()['campos']

    def test_list_filters(self, admin_client):
        _crear(admin_client, serial='HP-003', nombre='Portátil HP')
        _crear(admin_client, tipo='mobiliario', serial='ESC-01', nombre='Escritorio en L')
        _crear(admin_client, tipo='consumible', tipo_registro='stock', nombre='Toner', stock_actual=0)

        assert admin_client.get('/items').get_json()['total'] == 3
        assert admin_client.get('/items?tipo=mobiliario').get_json()['total'] == 1
        assert admin_client.get('/items?busqueda=escritorio').get_json()['articulos'][0]['serial'] == 'ESC-01'
        disponibles = admin_client.get('/items?solo_disponibles=true').get_json()['articulos']
        assert {a['nombre'] for a in disponibles} == {'Portátil HP', 'Escritorio en L'}

    def test_detail_and_update(self, admin_client):
        item_id = _crear(admin_client, serial='HP-004').get_json()['articulo']['id']

        actualizado = admin_client.put(f'/items/{item_id}', json={'ubicacion': 'Bodega 2', 'marca': 'HP'})
        assert actualizado.status_code == 200
        assert sorted(actualizado.get_json()['cambios']) == ['marca', 'ubicacion']

        detalle = admin_client.get(f'/items/{item_id}').get_json()['articulo']
        assert detalle['ubicacion'] == 'Bodega 2'
        assert detalle['ultimos_movimientos'][0]['tipo'] == 'ingreso'

        assert admin_client.get('/items/999').status_code == 404


class TestStockOperations:

    @pytest.fixture
    def toner(self, admin_client):
        respuesta = _crear(admin_client, tipo='consumible', tipo_registro='stock', nombre='Toner',
                           stock_actual=5, stock_minimo=2)
        return respuesta.get_json()['articulo']['id']

    def test_restock_and_withdraw(self, admin_client, toner):
        repuesto = admin_client.post(f'/items/{toner}/restock', json={'cantidad': 10, 'motivo': 'Compra'})
        assert repuesto.get_json()['articulo']['stock_actual'] == 15

        salida = admin_client.post(f'/items/{toner}/withdraw', json={'cantidad': 4, 'motivo': 'Impresora piso 3'})
        assert salida.get_json()['articulo']['stock_actual'] == 11
        assert salida.get_json()['movimiento']['tipo'] == 'consumo'

        excedida = admin_client.post(f'/items/{toner}/withdraw', json={'cantidad': 50, 'motivo': 'x'})
        assert excedida.status_code == 400
        assert excedida.get_json()['error'] == 'stock_insuficiente'

    def test_motivo_is_required(self, admin_client, toner):
        respuesta = admin_client.post(f'/items/{toner}/restock', json={'cantidad': 1})
        assert respuesta.status_code == 400

    def test_adjust(self, admin_client, toner):
        ajuste = admin_client.post(f'/items/{toner}/adjust', json={'cantidad': 0, 'motivo': 'Inventario físico'})
        assert ajuste.status_code == 200
        assert ajuste.get_json()['articulo']['stock_actual'] == 0

        negativo = admin_client.post(f'/items/{toner}/adjust', json={'cantidad': -3, 'motivo': 'Error'})
        assert negativo.status_code == 400
        assert negativo.get_json()['error'] == 'ajuste_invalido'

    def test_low_stock_alerts(self, admin_client, toner):
        assert admin_client.get('/items/alerts').get_json()['total'] == 0
        admin_client.post(f'/items/{toner}/withdraw', json={'cantidad': 3, 'motivo': 'Uso'})
        alertas = admin_client.get('/items/alerts').get_json()
        assert [a['id'] for a in alertas['alertas']] == [toner]
        assert alertas['alertas'][0]['bajo_minimo'] is True

    def test_movement_history(self, admin_client, toner):
        admin_client.post(f'/items/{toner}/restock', json={'cantidad': 1, 'motivo': 'Compra'})
        admin_client.post(f'/items/{toner}/write-off', json={'cantidad': 2, 'motivo': 'Vencido'})

        movimientos = admin_client.get(f'/items/{toner}/movements').get_json()['movimientos']
        assert [m['tipo'] for m in movimientos] == ['baja', 'ingreso', 'ingreso']
        assert movimientos[0]['usuario'] == 'admin'

        bajas = admin_client.get(f'/items/{toner}/movements?tipo=baja').get_json()
        assert bajas['total'] == 1


class TestSerializedOperations:

    @pytest.fixture
    def equipo(self, admin_client):
        return _crear(admin_client, serial='HP-100').get_json()['articulo']['id']

    def test_status_change_and_write_off(self, admin_client, equipo):
        estado = admin_client.post(f'/items/{equipo}/status', json={'estado': 'dañado', 'motivo': 'No enciende'})
        assert estado.get_json()['articulo']['estado'] == 'dañado'

        baja = admin_client.post(f'/items/{equipo}/write-off', json={'motivo': 'Irreparable'})
        assert baja.get_json()['articulo']['estado'] == 'obsoleto'

    def test_document_states_are_not_manual(self, admin_client, equipo):
        respuesta = admin_client.post(f'/items/{equipo}/status', json={'estado': 'entregado', 'motivo': 'x'})
        assert respuesta.status_code == 400

    def test_deactivate(self, admin_client, equipo, receptor):
        admin_client.post('/documents', json=dict(receptor, tipo='entrega', lineas=[{'id_articulo': equipo}]))
        ocupado = admin_client.delete(f'/items/{equipo}')
        assert ocupado.status_code == 409

        libre = _crear(admin_client, serial='HP-101').get_json()['articulo']['id']
        respuesta = admin_client.delete(f'/items/{libre}')
        assert respuesta.status_code == 200
        assert respuesta.get_json()['articulo']['activo'] is False
        assert admin_client.get('/items').get_json()['total'] == 1
        assert admin_client.get('/items?incluir_inactivos=true').get_json()['total'] == 2


class TestExcel:

    def test_export(self, admin_client):
        _crear(admin_client, serial='HP-200', nombre='Portátil Lenovo')
        respuesta = admin_client.get('/items/export')

        assert respuesta.status_code == 200
        assert respuesta.mimetype == 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        df = pd.read_excel(io.BytesIO(respuesta.data))
        assert df.loc[0, 'nombre'] == 'Portátil Lenovo'
        assert df.loc[0, 'serial'] == 'HP-200'

    def test_import(self, admin_client, app):
        df = pd.DataFrame([
            {'Tipo': 'dispositivo', 'Registro': 'individual', 'Nombre': 'Monitor LG', 'Serial': 'LG-1'},
            {'Tipo': 'consumible', 'Registro': 'stock', 'Nombre': 'Azúcar', 'Stock': 20, 'Stock minimo': 5},
            {'Tipo': 'nave', 'Registro': 'individual', 'Nombre': 'Inválido'},
            {'Tipo': 'dispositivo', 'Registro': 'individual', 'Nombre': 'Repetido', 'Serial': 'LG-1'},
        ])
        archivo = io.BytesIO()
        df.to_excel(archivo, index=False)
        archivo.seek(0)

        respuesta = admin_client.post('/items/import', data={'file': (archivo, 'inventario.xlsx')},
                                      content_type='multipart/form-data')

        assert respuesta.status_code == 200
        data = respuesta.get_json()
        assert data['insertados'] == 2
        assert [e['fila'] for e in data['errores']] == [4, 5]
        with app.app_context():
            azucar = Articulo.query.filter_by(nombre='Azúcar').one()
            assert (azucar.stock_actual, azucar.stock_minimo) == (20, 5)

    def test_import_requires_file(self, admin_client):
        assert admin_client.post('/items/import', data={}, content_type='multipart/form-data').status_code == 400
