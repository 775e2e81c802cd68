from extensions import db
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, timezone
from sqlalchemy import Enum, CheckConstraint, UniqueConstraint, event
from sqlalchemy.orm import object_session

from errors import InternalError


def ahora():
    """Fecha/hora actual en UTC sin zona (así la guardan MySQL y SQLite)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --- Catálogos de estados ---
TIPOS_ARTICULO = ('dispositivo', 'mobiliario', 'consumible')
TIPOS_REGISTRO = ('individual', 'stock')
ESTADOS_ARTICULO = ('disponible', 'reservado', 'entregado', 'dañado', 'perdido', 'obsoleto')
TIPOS_MOVIMIENTO = ('ingreso', 'reserva', 'liberacion', 'consumo', 'devolucion', 'ajuste', 'baja', 'cambio_estado')

TIPOS_ACTA = ('entrega', 'devolucion', 'consumible')
ESTADOS_ACTA = ('pendiente_firma', 'activa', 'firmada', 'devuelta_parcial', 'devuelta_completa', 'rechazada', 'cancelada')
CONDICIONES = ('nuevo', 'bueno', 'regular', 'malo')
RESULTADOS_DEVOLUCION = ('disponible', 'dañado', 'perdido')
ESTADOS_TOKEN = ('pendiente', 'firmado', 'rechazado', 'cancelado')


def _fecha(valor):
    return valor.isoformat() if valor else None


# --- TABLAS DE UNIÓN (Many-to-Many Relationships) ---
user_roles = db.Table('user_roles',
    db.Column('user_id', db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), primary_key=True),
    db.Column('role_id', db.Integer, db.ForeignKey('role.id', ondelete='CASCADE'), primary_key=True)
)

role_permissions = db.Table('role_permissions',
    db.Column('role_id', db.Integer, db.ForeignKey('role.id', ondelete='CASCADE'), primary_key=True),
    db.Column('permission_id', db.Integer, db.ForeignKey('permission.id', ondelete='CASCADE'), primary_key=True)
)


# --- USUARIOS Y PERMISOS ---

class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    roles = db.relationship('Role', secondary=user_roles, backref='users')
    activity_logs = db.relationship('ActivityLog', back_populates='user', lazy=True)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def is_admin(self):
        return any(role.name == 'admin' for role in self.roles)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'roles': [role.name for role in self.roles],
        }


class Role(db.Model):
    __tablename__ = 'role'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    description = db.Column(db.String(255))

    permissions = db.relationship('Permission', secondary=role_permissions, backref='roles')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'permissions': sorted(p.endpoint for p in self.permissions),
        }


class Permission(db.Model):
    __tablename__ = 'permission'
    id = db.Column(db.Integer, primary_key=True)
    endpoint = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.String(255))


class ActivityLog(db.Model):
    __tablename__ = 'activity_log'
    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=ahora, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    action = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(100))
    details = db.Column(db.Text)
    resource_id = db.Column(db.String(50))
    user = db.relationship('User', back_populates='activity_logs')

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': _fecha(self.timestamp),
            'usuario': self.user.username if self.user else None,
            'action': self.action,
            'category': self.category,
            'details': self.details,
            'resource_id': self.resource_id,
        }


# --- INVENTARIO ---

class TipoInventario(db.Model):
    """
    Catálogo maestro de tipos de inventario (tecnología, mobiliario, aseo...).
    Se agregan tipos sin tocar código. El código de un tipo activo es la
    categoría de las actas de consumibles y forma su prefijo de numeración,
    por eso no se modifica una vez creado.
    """
    __tablename__ = 'tipos_inventario'

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(100), unique=True, nullable=False)
    codigo = db.Column(db.String(30), unique=True, nullable=False)
    descripcion = db.Column(db.Text)
    icono = db.Column(db.String(50), default='fa-box')
    color = db.Column(db.String(20), default='#6c757d')
    activo = db.Column(db.Boolean, default=True, nullable=False)
    orden = db.Column(db.Integer, default=0, nullable=False)
    fecha_registro = db.Column(db.DateTime, default=ahora)

    def to_dict(self):
        return {
            'id': self.id,
            'nombre': self.nombre,
            'codigo': self.codigo,
            'descripcion': self.descripcion,
            'icono': self.icono,
            'color': self.color,
            'activo': self.activo,
            'orden': self.orden,
        }


class Articulo(db.Model):
    """
    Un artículo del inventario: dispositivo, mueble o consumible.

    Los artículos 'individual' (con serial) se controlan por estado; los de
    'stock' se controlan por cantidad. Nunca se borran, solo se desactivan
    o se dan de baja.
    """
    __tablename__ = 'articulos'
    __table_args__ = (
        CheckConstraint('stock_actual >= 0', name='ck_articulos_stock_no_negativo'),
        CheckConstraint('stock_minimo >= 0', name='ck_articulos_minimo_no_negativo'),
    )

    id = db.Column(db.Integer, primary_key=True)
    tipo = db.Column(Enum(*TIPOS_ARTICULO, name='tipo_articulo_enum'), nullable=False, index=True)
    tipo_registro = db.Column(Enum(*TIPOS_REGISTRO, name='tipo_registro_enum'), nullable=False, default='individual')
    nombre = db.Column(db.String(255), nullable=False)
    descripcion = db.Column(db.Text)
    categoria = db.Column(db.String(100), index=True)
    marca = db.Column(db.String(100))
    modelo = db.Column(db.String(100))
    serial = db.Column(db.String(100), unique=True, nullable=True)
    ubicacion = db.Column(db.String(255))
    unidad_medida = db.Column(db.String(30), default='unidad')

    estado = db.Column(Enum(*ESTADOS_ARTICULO, name='estado_articulo_enum'), nullable=False, default='disponible', index=True)
    stock_actual = db.Column(db.Integer, nullable=False, default=0)
    stock_minimo = db.Column(db.Integer, nullable=False, default=0)

    activo = db.Column(db.Boolean, default=True, nullable=False)
    fecha_registro = db.Column(db.DateTime, default=ahora)
    fecha_actualizacion = db.Column(db.DateTime, default=ahora, onupdate=ahora)
    usuario_id_registro = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)

    id_tipo_inventario = db.Column(db.Integer, db.ForeignKey('tipos_inventario.id'), nullable=True, index=True)
    tipo_inventario = db.relationship('TipoInventario')

    movimientos = db.relationship('Movimiento', back_populates='articulo', lazy='dynamic',
                                  order_by='Movimiento.id.desc()')

    @property
    def es_individual(self):
        return self.tipo_registro == 'individual'

    @property
    def bajo_minimo(self):
        return not self.es_individual and self.stock_actual <= self.stock_minimo

    def to_dict(self):
        return {
            'id': self.id,
            'tipo': self.tipo,
            'tipo_registro': self.tipo_registro,
            'nombre': self.nombre,
            'descripcion': self.descripcion,
            'categoria': self.categoria,
            'tipo_inventario': self.tipo_inventario.codigo if self.tipo_inventario else None,
            'marca': self.marca,
            'modelo': self.modelo,
            'serial': self.serial,
            'ubicacion': self.ubicacion,
            'unidad_medida': self.unidad_medida,
            'estado': self.estado,
            'stock_actual': self.stock_actual,
            'stock_minimo': self.stock_minimo,
            'bajo_minimo': self.bajo_minimo,
            'activo': self.activo,
            'fecha_registro': _fecha(self.fecha_registro),
            'fecha_actualizacion': _fecha(self.fecha_actualizacion),
        }


class Movimiento(db.Model):
    """
    Bitácora de movimientos del inventario. Solo se insertan registros:
    los listeners de abajo impiden modificarlos o borrarlos.
    """
    __tablename__ = 'movimientos'

    id = db.Column(db.Integer, primary_key=True)
    id_articulo = db.Column(db.Integer, db.ForeignKey('articulos.id', ondelete='RESTRICT'), nullable=False, index=True)
    tipo = db.Column(Enum(*TIPOS_MOVIMIENTO, name='tipo_movimiento_enum'), nullable=False)
    cantidad = db.Column(db.Integer, nullable=False, default=1)
    # Cantidad (stock) o estado (individual) antes y después del movimiento
    valor_anterior = db.Column(db.String(50))
    valor_nuevo = db.Column(db.String(50))
    motivo = db.Column(db.Text)
    id_acta = db.Column(db.Integer, db.ForeignKey('actas.id', ondelete='RESTRICT'), nullable=True, index=True)
    id_usuario = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    fecha = db.Column(db.DateTime, nullable=False, default=ahora)

    articulo = db.relationship('Articulo', back_populates='movimientos')
    acta = db.relationship('Acta')
    usuario = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'id_articulo': self.id_articulo,
            'tipo': self.tipo,
            'cantidad': self.cantidad,
            'valor_anterior': self.valor_anterior,
            'valor_nuevo': self.valor_nuevo,
            'motivo': self.motivo,
            'id_acta': self.id_acta,
            'numero_acta': self.acta.numero_acta if self.acta else None,
            'usuario': self.usuario.username if self.usuario else None,
            'fecha': _fecha(self.fecha),
        }


@event.listens_for(Movimiento, 'before_update')
def _movimiento_no_modificable(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise InternalError('Los movimientos de inventario no se pueden modificar.')


@event.listens_for(Movimiento, 'before_delete')
def _movimiento_no_borrable(mapper, connection, target):
    raise InternalError('Los movimientos de inventario no se pueden eliminar.')


# --- ACTAS ---

class Acta(db.Model):
    """
    Acta de entrega, devolución o entrega de consumibles.

    El número es secuencial por prefijo y año (ver numbering.py). Las actas no
    se borran: las que nunca se firmaron pueden quedar 'cancelada'.
    """
    __tablename__ = 'actas'

    id = db.Column(db.Integer, primary_key=True)
    numero_acta = db.Column(db.String(40), unique=True, nullable=False)
    tipo = db.Column(Enum(*TIPOS_ACTA, name='tipo_acta_enum'), nullable=False, index=True)
    categoria = db.Column(db.String(50))
    id_tipo_inventario = db.Column(db.Integer, db.ForeignKey('tipos_inventario.id'), nullable=True)

    # Contraparte: quien recibe (entrega/consumible) o quien devuelve (devolución)
    nombre_receptor = db.Column(db.String(255), nullable=False)
    cedula_receptor = db.Column(db.String(30))
    cargo_receptor = db.Column(db.String(150))
    telefono_receptor = db.Column(db.String(30))
    correo_receptor = db.Column(db.String(255))

    estado = db.Column(Enum(*ESTADOS_ACTA, name='estado_acta_enum'), nullable=False, default='pendiente_firma', index=True)
    firma = db.Column(db.Text)
    motivo_rechazo = db.Column(db.Text)
    observaciones = db.Column(db.Text)

    fecha_creacion = db.Column(db.DateTime, nullable=False, default=ahora, index=True)
    fecha_firma = db.Column(db.DateTime)
    fecha_cierre = db.Column(db.DateTime)
    fecha_devolucion_esperada = db.Column(db.Date)
    fecha_devolucion_real = db.Column(db.DateTime)

    id_acta_origen = db.Column(db.Integer, db.ForeignKey('actas.id'), nullable=True)
    id_usuario_creador = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)

    detalles = db.relationship('DetalleActa', back_populates='acta', order_by='DetalleActa.id',
                               cascade="all, delete-orphan")
    tokens = db.relationship('TokenFirma', back_populates='acta', order_by='TokenFirma.id',
                             cascade="all, delete-orphan")
    acta_origen = db.relationship('Acta', remote_side=[id])
    tipo_inventario = db.relationship('TipoInventario')
    creador = db.relationship('User')

    @property
    def token_pendiente(self):
        return next((t for t in self.tokens if t.estado == 'pendiente'), None)

    def to_dict(self, incluir_detalles=True, publico=False):
        data = {
            'id': self.id,
            'numero_acta': self.numero_acta,
            'tipo': self.tipo,
            'categoria': self.categoria,
            'nombre_receptor': self.nombre_receptor,
            'cargo_receptor': self.cargo_receptor,
            'estado': self.estado,
            'observaciones': self.observaciones,
            'fecha_creacion': _fecha(self.fecha_creacion),
            'fecha_firma': _fecha(self.fecha_firma),
            'fecha_devolucion_esperada': _fecha(self.fecha_devolucion_esperada),
        }
        if not publico:
            data.update({
                'cedula_receptor': self.cedula_receptor,
                'telefono_receptor': self.telefono_receptor,
                'correo_receptor': self.correo_receptor,
                'motivo_rechazo': self.motivo_rechazo,
                'fecha_cierre': _fecha(self.fecha_cierre),
                'fecha_devolucion_real': _fecha(self.fecha_devolucion_real),
                'id_acta_origen': self.id_acta_origen,
                'creador': self.creador.username if self.creador else None,
                'tiene_firma': bool(self.firma),
            })
        if incluir_detalles:
            data['detalles'] = [d.to_dict(publico=publico) for d in self.detalles]
        return data


class DetalleActa(db.Model):
    __tablename__ = 'detalle_acta'

    id = db.Column(db.Integer, primary_key=True)
    id_acta = db.Column(db.Integer, db.ForeignKey('actas.id', ondelete='CASCADE'), nullable=False, index=True)
    id_articulo = db.Column(db.Integer, db.ForeignKey('articulos.id', ondelete='RESTRICT'), nullable=False, index=True)
    cantidad = db.Column(db.Integer, nullable=False, default=1)
    condicion_entrega = db.Column(Enum(*CONDICIONES, name='condicion_entrega_enum'), default='bueno')
    observaciones = db.Column(db.Text)

    # Resultado de la devolución de la línea
    devuelto = db.Column(db.Boolean, nullable=False, default=False)
    estado_devolucion = db.Column(Enum(*RESULTADOS_DEVOLUCION, name='estado_devolucion_enum'), nullable=True)
    condicion_devolucion = db.Column(Enum(*CONDICIONES, name='condicion_devolucion_enum'), nullable=True)
    observaciones_devolucion = db.Column(db.Text)
    fecha_devolucion = db.Column(db.DateTime)

    # En actas de devolución: la línea del acta de entrega que se está cerrando
    id_detalle_origen = db.Column(db.Integer, db.ForeignKey('detalle_acta.id'), nullable=True)

    acta = db.relationship('Acta', back_populates='detalles')
    articulo = db.relationship('Articulo')
    detalle_origen = db.relationship('DetalleActa', remote_side=[id])
    fotos = db.relationship('FotoDetalle', back_populates='detalle', cascade="all, delete-orphan")

    def to_dict(self, publico=False):
        data = {
            'id': self.id,
            'id_articulo': self.id_articulo,
            'articulo': {
                'nombre': self.articulo.nombre,
                'tipo': self.articulo.tipo,
                'marca': self.articulo.marca,
                'modelo': self.articulo.modelo,
                'serial': self.articulo.serial,
                'unidad_medida': self.articulo.unidad_medida,
            } if self.articulo else None,
            'cantidad': self.cantidad,
            'condicion_entrega': self.condicion_entrega,
            'observaciones': self.observaciones,
            'devuelto': self.devuelto,
            'estado_devolucion': self.estado_devolucion,
        }
        if not publico:
            data.update({
                'condicion_devolucion': self.condicion_devolucion,
                'observaciones_devolucion': self.observaciones_devolucion,
                'fecha_devolucion': _fecha(self.fecha_devolucion),
                'id_detalle_origen': self.id_detalle_origen,
                'fotos': [f.to_dict() for f in self.fotos],
            })
        return data


class FotoDetalle(db.Model):
    __tablename__ = 'fotos_detalle'
    id = db.Column(db.Integer, primary_key=True)
    id_detalle = db.Column(db.Integer, db.ForeignKey('detalle_acta.id', ondelete='CASCADE'), nullable=False)
    tipo = db.Column(Enum('entrega', 'devolucion', name='tipo_foto_enum'), nullable=False, default='entrega')
    ruta_archivo = db.Column(db.String(512), nullable=False)
    fecha_subida = db.Column(db.DateTime, default=ahora)

    detalle = db.relationship('DetalleActa', back_populates='fotos')

    def to_dict(self):
        return {'id': self.id, 'tipo': self.tipo, 'ruta': self.ruta_archivo}


class TokenFirma(db.Model):
    """
    Enlace de firma de un solo uso. Solo puede haber un token 'pendiente' por
    acta; emitir uno nuevo cancela el anterior.
    """
    __tablename__ = 'tokens_firma'

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(128), unique=True, nullable=False, index=True)
    id_acta = db.Column(db.Integer, db.ForeignKey('actas.id', ondelete='CASCADE'), nullable=False, index=True)
    correo_destinatario = db.Column(db.String(255), nullable=False)
    estado = db.Column(Enum(*ESTADOS_TOKEN, name='estado_token_enum'), nullable=False, default='pendiente')
    fecha_envio = db.Column(db.DateTime, nullable=False, default=ahora)
    fecha_expiracion = db.Column(db.DateTime, nullable=True)
    fecha_uso = db.Column(db.DateTime)
    ip_firma = db.Column(db.String(64))
    user_agent = db.Column(db.String(500))
    motivo_rechazo = db.Column(db.Text)

    acta = db.relationship('Acta', back_populates='tokens')

    def expirado(self, momento=None):
        return self.fecha_expiracion is not None and (momento or ahora()) > self.fecha_expiracion

    def to_dict(self):
        return {
            'id': self.id,
            'correo_destinatario': self.correo_destinatario,
            'estado': self.estado,
            'fecha_envio': _fecha(self.fecha_envio),
            'fecha_expiracion': _fecha(self.fecha_expiracion),
            'fecha_uso': _fecha(self.fecha_uso),
            'ip_firma': self.ip_firma,
            'motivo_rechazo': self.motivo_rechazo,
        }


class SecuenciaActa(db.Model):
    """Último número emitido por prefijo y año."""
    __tablename__ = 'secuencias_acta'
    __table_args__ = (UniqueConstraint('prefijo', 'anio', name='uq_secuencias_prefijo_anio'),)

    id = db.Column(db.Integer, primary_key=True)
    prefijo = db.Column(db.String(40), nullable=False)
    anio = db.Column(db.Integer, nullable=False)
    ultimo_numero = db.Column(db.Integer, nullable=False, default=0)
