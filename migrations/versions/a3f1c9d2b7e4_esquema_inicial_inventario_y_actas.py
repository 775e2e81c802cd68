"""Esquema inicial: usuarios, inventario, movimientos, actas y tokens de firma

Revision ID: a3f1c9d2b7e4
Revises:
Create Date: 2026-10-19 10:12:41.503118

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a3f1c9d2b7e4'
down_revision = None
branch_labels = None
depends_on = None

TIPOS_ARTICULO = ('dispositivo', 'mobiliario', 'consumible')
TIPOS_REGISTRO = ('individual', 'stock')
ESTADOS_ARTICULO = ('disponible', 'reservado', 'entregado', 'dañado', 'perdido', 'obsoleto')
TIPOS_MOVIMIENTO = ('ingreso', 'reserva', 'liberacion', 'consumo', 'devolucion', 'ajuste', 'baja', 'cambio_estado')
TIPOS_ACTA = ('entrega', 'devolucion', 'consumible')
ESTADOS_ACTA = ('pendiente_firma', 'activa', 'firmada', 'devuelta_parcial', 'devuelta_completa', 'rechazada',
                'cancelada')
CONDICIONES = ('nuevo', 'bueno', 'regular', 'malo')
RESULTADOS_DEVOLUCION = ('disponible', 'dañado', 'perdido')
ESTADOS_TOKEN = ('pendiente', 'firmado', 'rechazado', 'cancelado')


def upgrade():
    # --- Usuarios, roles y bitácora ---
    op.create_table('user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=80), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username')
    )
    op.create_table('role',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=80), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_table('permission',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('endpoint', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('endpoint')
    )
    op.create_table('user_roles',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['role_id'], ['role.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id', 'role_id')
    )
    op.create_table('role_permissions',
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['permission_id'], ['permission.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['role_id'], ['role.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('role_id', 'permission_id')
    )
    op.create_table('activity_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('resource_id', sa.String(length=50), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    # --- Inventario ---
    op.create_table('articulos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tipo', sa.Enum(*TIPOS_ARTICULO, name='tipo_articulo_enum'), nullable=False),
        sa.Column('tipo_registro', sa.Enum(*TIPOS_REGISTRO, name='tipo_registro_enum'), nullable=False),
        sa.Column('nombre', sa.String(length=255), nullable=False),
        sa.Column('descripcion', sa.Text(), nullable=True),
        sa.Column('categoria', sa.String(length=100), nullable=True),
        sa.Column('marca', sa.String(length=100), nullable=True),
        sa.Column('modelo', sa.String(length=100), nullable=True),
        sa.Column('serial', sa.String(length=100), nullable=True),
        sa.Column('ubicacion', sa.String(length=255), nullable=True),
        sa.Column('unidad_medida', sa.String(length=30), nullable=True),
        sa.Column('estado', sa.Enum(*ESTADOS_ARTICULO, name='estado_articulo_enum'), nullable=False),
        sa.Column('stock_actual', sa.Integer(), nullable=False),
        sa.Column('stock_minimo', sa.Integer(), nullable=False),
        sa.Column('activo', sa.Boolean(), nullable=False),
        sa.Column('fecha_registro', sa.DateTime(), nullable=True),
        sa.Column('fecha_actualizacion', sa.DateTime(), nullable=True),
        sa.Column('usuario_id_registro', sa.Integer(), nullable=True),
        sa.CheckConstraint('stock_actual >= 0', name='ck_articulos_stock_no_negativo'),
        sa.CheckConstraint('stock_minimo >= 0', name='ck_articulos_minimo_no_negativo'),
        sa.ForeignKeyConstraint(['usuario_id_registro'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('serial')
    )
    with op.batch_alter_table('articulos', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_articulos_tipo'), ['tipo'], unique=False)
        batch_op.create_index(batch_op.f('ix_articulos_categoria'), ['categoria'], unique=False)
        batch_op.create_index(batch_op.f('ix_articulos_estado'), ['estado'], unique=False)

    # --- Actas ---
    op.create_table('actas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('numero_acta', sa.String(length=40), nullable=False),
        sa.Column('tipo', sa.Enum(*TIPOS_ACTA, name='tipo_acta_enum'), nullable=False),
        sa.Column('categoria', sa.String(length=50), nullable=True),
        sa.Column('nombre_receptor', sa.String(length=255), nullable=False),
        sa.Column('cedula_receptor', sa.String(length=30), nullable=True),
        sa.Column('cargo_receptor', sa.String(length=150), nullable=True),
        sa.Column('telefono_receptor', sa.String(length=30), nullable=True),
        sa.Column('correo_receptor', sa.String(length=255), nullable=True),
        sa.Column('estado', sa.Enum(*ESTADOS_ACTA, name='estado_acta_enum'), nullable=False),
        sa.Column('firma', sa.Text(), nullable=True),
        sa.Column('motivo_rechazo', sa.Text(), nullable=True),
        sa.Column('observaciones', sa.Text(), nullable=True),
        sa.Column('fecha_creacion', sa.DateTime(), nullable=False),
        sa.Column('fecha_firma', sa.DateTime(), nullable=True),
        sa.Column('fecha_cierre', sa.DateTime(), nullable=True),
        sa.Column('fecha_devolucion_esperada', sa.Date(), nullable=True),
        sa.Column('fecha_devolucion_real', sa.DateTime(), nullable=True),
        sa.Column('id_acta_origen', sa.Integer(), nullable=True),
        sa.Column('id_usuario_creador', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['id_acta_origen'], ['actas.id']),
        sa.ForeignKeyConstraint(['id_usuario_creador'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('numero_acta')
    )
    with op.batch_alter_table('actas', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_actas_tipo'), ['tipo'], unique=False)
        batch_op.create_index(batch_op.f('ix_actas_estado'), ['estado'], unique=False)
        batch_op.create_index(batch_op.f('ix_actas_fecha_creacion'), ['fecha_creacion'], unique=False)

    op.create_table('detalle_acta',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('id_acta', sa.Integer(), nullable=False),
        sa.Column('id_articulo', sa.Integer(), nullable=False),
        sa.Column('cantidad', sa.Integer(), nullable=False),
        sa.Column('condicion_entrega', sa.Enum(*CONDICIONES, name='condicion_entrega_enum'), nullable=True),
        sa.Column('observaciones', sa.Text(), nullable=True),
        sa.Column('devuelto', sa.Boolean(), nullable=False),
        sa.Column('estado_devolucion', sa.Enum(*RESULTADOS_DEVOLUCION, name='estado_devolucion_enum'),
                  nullable=True),
        sa.Column('condicion_devolucion', sa.Enum(*CONDICIONES, name='condicion_devolucion_enum'), nullable=True),
        sa.Column('observaciones_devolucion', sa.Text(), nullable=True),
        sa.Column('fecha_devolucion', sa.DateTime(), nullable=True),
        sa.Column('id_detalle_origen', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['id_acta'], ['actas.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['id_articulo'], ['articulos.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['id_detalle_origen'], ['detalle_acta.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('detalle_acta', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_detalle_acta_id_acta'), ['id_acta'], unique=False)
        batch_op.create_index(batch_op.f('ix_detalle_acta_id_articulo'), ['id_articulo'], unique=False)

    op.create_table('fotos_detalle',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('id_detalle', sa.Integer(), nullable=False),
        sa.Column('tipo', sa.Enum('entrega', 'devolucion', name='tipo_foto_enum'), nullable=False),
        sa.Column('ruta_archivo', sa.String(length=512), nullable=False),
        sa.Column('fecha_subida', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['id_detalle'], ['detalle_acta.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('movimientos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('id_articulo', sa.Integer(), nullable=False),
        sa.Column('tipo', sa.Enum(*TIPOS_MOVIMIENTO, name='tipo_movimiento_enum'), nullable=False),
        sa.Column('cantidad', sa.Integer(), nullable=False),
        sa.Column('valor_anterior', sa.String(length=50), nullable=True),
        sa.Column('valor_nuevo', sa.String(length=50), nullable=True),
        sa.Column('motivo', sa.Text(), nullable=True),
        sa.Column('id_acta', sa.Integer(), nullable=True),
        sa.Column('id_usuario', sa.Integer(), nullable=True),
        sa.Column('fecha', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['id_acta'], ['actas.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['id_articulo'], ['articulos.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['id_usuario'], ['user.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('movimientos', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_movimientos_id_articulo'), ['id_articulo'], unique=False)
        batch_op.create_index(batch_op.f('ix_movimientos_id_acta'), ['id_acta'], unique=False)

    # --- Firma externa y numeración ---
    op.create_table('tokens_firma',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=128), nullable=False),
        sa.Column('id_acta', sa.Integer(), nullable=False),
        sa.Column('correo_destinatario', sa.String(length=255), nullable=False),
        sa.Column('estado', sa.Enum(*ESTADOS_TOKEN, name='estado_token_enum'), nullable=False),
        sa.Column('fecha_envio', sa.DateTime(), nullable=False),
        sa.Column('fecha_expiracion', sa.DateTime(), nullable=True),
        sa.Column('fecha_uso', sa.DateTime(), nullable=True),
        sa.Column('ip_firma', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('motivo_rechazo', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['id_acta'], ['actas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('tokens_firma', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_tokens_firma_token'), ['token'], unique=True)
        batch_op.create_index(batch_op.f('ix_tokens_firma_id_acta'), ['id_acta'], unique=False)

    op.create_table('secuencias_acta',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('prefijo', sa.String(length=40), nullable=False),
        sa.Column('anio', sa.Integer(), nullable=False),
        sa.Column('ultimo_numero', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prefijo', 'anio', name='uq_secuencias_prefijo_anio')
    )


def downgrade():
    op.drop_table('secuencias_acta')
    with op.batch_alter_table('tokens_firma', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_tokens_firma_id_acta'))
        batch_op.drop_index(batch_op.f('ix_tokens_firma_token'))
    op.drop_table('tokens_firma')
    op.drop_table('movimientos')
    op.drop_table('fotos_detalle')
    op.drop_table('detalle_acta')
    op.drop_table('actas')
    op.drop_table('articulos')
    op.drop_table('activity_log')
    op.drop_table('role_permissions')
    op.drop_table('user_roles')
    op.drop_table('permission')
    op.drop_table('role')
    op.drop_table('user')
