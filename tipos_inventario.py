# tipos_inventario.py

from extensions import db
from models import TipoInventario
from errors import ValidationError

# Tipos con los que arranca el sistema; los demás se crean desde /inventory-types
TIPOS_INICIALES = [
    {'nombre': 'Tecnología', 'codigo': 'tecnologia', 'orden': 1, 'icono': 'fa-laptop', 'color': '#0d6efd',
     'descripcion': 'Dispositivos tecnológicos: celulares, tablets, computadores, etc.'},
    {'nombre': 'Mobiliario', 'codigo': 'mobiliario', 'orden': 2, 'icono': 'fa-chair', 'color': '#198754',
     'descripcion': 'Muebles de oficina: escritorios, sillas, archivadores, etc.'},
    {'nombre': 'Aseo', 'codigo': 'aseo', 'orden': 3, 'icono': 'fa-broom', 'color': '#0dcaf0',
     'descripcion': 'Productos de limpieza y aseo'},
    {'nombre': 'Papelería', 'codigo': 'papeleria', 'orden': 4, 'icono': 'fa-paperclip', 'color': '#ffc107',
     'descripcion': 'Artículos de oficina y papelería'},
    {'nombre': 'Cafetería', 'codigo': 'cafeteria', 'orden': 5, 'icono': 'fa-mug-hot', 'color': '#6f4e37',
     'descripcion': 'Café, azúcar, vasos y demás insumos de cafetería'},
]


def inicializar_tipos_inventario():
    """Inserta los tipos iniciales que aún no existan (por código). No hace commit."""
    existentes = {codigo for (codigo,) in db.session.query(TipoInventario.codigo).all()}
    nuevos = [TipoInventario(activo=True, **tipo) for tipo in TIPOS_INICIALES if tipo['codigo'] not in existentes]
    db.session.add_all(nuevos)
    return nuevos


def activos():
    return TipoInventario.query.filter_by(activo=True) \
        .order_by(TipoInventario.orden, TipoInventario.nombre).all()


def obtener_activo(codigo):
    """Tipo activo con ese código, o ValidationError con los códigos permitidos."""
    tipo = TipoInventario.query.filter_by(codigo=codigo, activo=True).first() if codigo else None
    if tipo is None:
        raise ValidationError(f"Tipo de inventario inválido o inactivo: {codigo}.",
                              permitidos=[t.codigo for t in activos()])
    return tipo
