# Este diccionario centraliza la lógica que distingue a cada tipo de acta.
# Define la línea de tiempo, las transiciones permitidas desde cada estado y
# qué le pasa al inventario en cada una, además de las salas, plantillas de
# correo y vigencia del enlace de firma. El orquestador (workflow.py) es uno
# solo y lee de aquí todo lo que cambia entre tipos.

from datetime import timedelta

from errors import InvalidTransition, ValidationError

WORKFLOWS = {
    'entrega': {
        'titulo': 'Acta de Entrega de Equipos',
        'prefijo': 'ACTA',
        'timeline': ['pendiente_firma', 'activa', 'devuelta_parcial', 'devuelta_completa'],
        'tipos_articulo': ('dispositivo', 'mobiliario'),
        # Estado que debe tener un artículo con serial para entrar al acta
        'estado_requerido': 'disponible',
        'transiciones': {
            'pendiente_firma': {
                'firmar': {'siguiente_estatus': 'activa', 'inventario': 'confirmar', 'estado_final': 'entregado'},
                'rechazar': {'siguiente_estatus': 'rechazada', 'inventario': 'liberar', 'estado_final': 'disponible'},
                'cancelar': {'siguiente_estatus': 'cancelada', 'inventario': 'liberar', 'estado_final': 'disponible'},
                'reenviar': {'siguiente_estatus': 'pendiente_firma'},
            },
            'activa': {
                'devolver': {'inventario': 'devolver'},
            },
            'devuelta_parcial': {
                'devolver': {'inventario': 'devolver'},
            },
        },
        'salas': ['actas'],
        'ttl': None,
        'ruta_firma': '/firma-externa/{token}',
        'correos': {
            'solicitud': ('correos/solicitud_firma.html', '📋 {titulo} - Requiere su firma'),
            'confirmacion': ('correos/confirmacion_firma.html', '✅ Acta Firmada - {nombre} - {numero}'),
            'rechazo': ('correos/rechazo.html', '⚠️ Acta Devuelta - {nombre} solicita correcciones'),
        },
    },
    'devolucion': {
        'titulo': 'Acta de Devolución de Equipos',
        'prefijo': 'DEV',
        'timeline': ['pendiente_firma', 'devuelta_completa'],
        'tipos_articulo': ('dispositivo', 'mobiliario'),
        'estado_requerido': 'entregado',
        'transiciones': {
            'pendiente_firma': {
                # Cada línea queda con el resultado declarado al crear el acta
                'firmar': {'siguiente_estatus': 'devuelta_completa', 'inventario': 'devolver'},
                'rechazar': {'siguiente_estatus': 'rechazada', 'inventario': 'liberar', 'estado_final': 'entregado'},
                'cancelar': {'siguiente_estatus': 'cancelada', 'inventario': 'liberar', 'estado_final': 'entregado'},
                'reenviar': {'siguiente_estatus': 'pendiente_firma'},
            },
        },
        'salas': ['devoluciones'],
        'ttl': None,
        'ruta_firma': '/devolucion-externa/{token}',
        'correos': {
            'solicitud': ('correos/solicitud_firma.html', '📦 {titulo} - Requiere su firma'),
            'confirmacion': ('correos/confirmacion_firma.html', '✅ Devolución Completada - {nombre} - {numero}'),
            'rechazo': ('correos/rechazo.html', '⚠️ Devolución rechazada - {nombre} solicita correcciones'),
        },
    },
    'consumible': {
        'titulo': 'Acta de Entrega de Consumibles',
        'prefijo': 'ACTA-{categoria}',
        'timeline': ['pendiente_firma', 'firmada'],
        'tipos_articulo': ('consumible',),
        'estado_requerido': 'disponible',
        # La categoría es el código de un tipo activo del catálogo tipos_inventario
        'requiere_tipo_inventario': True,
        'transiciones': {
            'pendiente_firma': {
                'firmar': {'siguiente_estatus': 'firmada', 'inventario': 'confirmar'},
                'rechazar': {'siguiente_estatus': 'rechazada', 'inventario': 'liberar'},
                'cancelar': {'siguiente_estatus': 'cancelada', 'inventario': 'liberar'},
                'reenviar': {'siguiente_estatus': 'pendiente_firma'},
            },
        },
        'salas': ['actas-consumibles'],
        'ttl': timedelta(days=7),
        'ruta_firma': '/firma-consumible/{token}',
        'correos': {
            'solicitud': ('correos/solicitud_firma.html', '[{numero}] 📦 {titulo} - Requiere su firma'),
            'confirmacion': ('correos/confirmacion_firma.html', '✅ Consumibles recibidos - {nombre} - {numero}'),
            'rechazo': ('correos/rechazo.html', '⚠️ Acta de consumibles rechazada - {nombre}'),
        },
    },
}


def obtener_workflow(tipo):
    try:
        return WORKFLOWS[tipo]
    except KeyError:
        raise ValidationError(f"Tipo de acta desconocido: {tipo}.", permitidos=list(WORKFLOWS))


def transicion(acta, accion):
    """Configuración de la acción para el estado actual del acta, o InvalidTransition."""
    workflow = obtener_workflow(acta.tipo)
    config = workflow['transiciones'].get(acta.estado, {}).get(accion)
    if config is None:
        raise InvalidTransition(
            f"El acta {acta.numero_acta} está '{acta.estado}' y no admite la acción '{accion}'.",
            estado=acta.estado, accion=accion)
    return config


def prefijo_para(tipo, tipo_inventario=None):
    workflow = obtener_workflow(tipo)
    if '{categoria}' not in workflow['prefijo']:
        return workflow['prefijo']
    if tipo_inventario is None or not tipo_inventario.activo:
        raise ValidationError(f"Las actas de {tipo} requieren un tipo de inventario activo.")
    return workflow['prefijo'].format(categoria=tipo_inventario.codigo.upper())


def titulo_para(acta):
    workflow = obtener_workflow(acta.tipo)
    if acta.tipo_inventario is not None:
        return f"{workflow['titulo']} - {acta.tipo_inventario.nombre}"
    return workflow['titulo']
