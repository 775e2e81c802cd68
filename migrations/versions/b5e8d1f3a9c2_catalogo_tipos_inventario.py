"""Catálogo de tipos de inventario para artículos y actas de consumibles

Revision ID: b5e8d1f3a9c2
Revises: a3f1c9d2b7e4
Create Date: 2026-10-19 16:40:07.218345

"""
from datetime import datetime

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'b5e8d1f3a9c2'
down_revision = 'a3f1c9d2b7e4'
branch_labels = None
depends_on = None

TIPOS_INICIALES = [
    (1, 'Tecnología', 'tecnologia', 'Dispositivos tecnológicos: celulares, tablets, computadores, etc.',
     'fa-laptop', '#0d6efd'),
    (2, 'Mobiliario', 'mobiliario', 'Muebles de oficina: escritorios, sillas, archivadores, etc.',
     'fa-chair', '#198754'),
    (3, 'Aseo', 'aseo', 'Productos de limpieza y aseo', 'fa-broom', '#0dcaf0'),
    (4, 'Papelería', 'papeleria', 'Artículos de oficina y papelería', 'fa-paperclip', '#ffc107'),
    (5, 'Cafetería', 'cafeteria', 'Café, azúcar, vasos y demás insumos de cafetería', 'fa-mug-hot', '#6f4e37'),
]


def upgrade():
    tipos = op.create_table('tipos_inventario',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('nombre', sa.String(length=100), nullable=False),
        sa.Column('codigo', sa.String(length=30), nullable=False),
        sa.Column('descripcion', sa.Text(), nullable=True),
        sa.Column('icono', sa.String(length=50), nullable=True),
        sa.Column('color', sa.String(length=20), nullable=True),
        sa.Column('activo', sa.Boolean(), nullable=False),
        sa.Column('orden', sa.Integer(), nullable=False),
        sa.Column('fecha_registro', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('nombre'),
        sa.UniqueConstraint('codigo')
    )
    op.bulk_insert(tipos, [
        {'nombre': nombre, 'codigo': codigo, 'descripcion': descripcion, 'icono': icono, 'color': color,
         'activo': True, 'orden': orden, 'fecha_registro': datetime.now()}
        for orden, nombre, codigo, descripcion, icono, color in TIPOS_INICIALES
    ])

    with op.batch_alter_table('articulos', schema=None) as batch_op:
        batch_op.add_column(sa.Column('id_tipo_inventario', sa.Integer(), nullable=True))
        batch_op.create_index('ix_articulos_id_tipo_inventario', ['id_tipo_inventario'])
        batch_op.create_foreign_key(
            'fk_articulos_id_tipo_inventario_tipos_inventario',
            'tipos_inventario', ['id_tipo_inventario'], ['id']
        )

    with op.batch_alter_table('actas', schema=None) as batch_op:
        batch_op.add_column(sa.Column('id_tipo_inventario', sa.Integer(), nullable=True))
        batch_op.create_foreign_key(
            'fk_actas_id_tipo_inventario_tipos_inventario',
            'tipos_inventario', ['id_tipo_inventario'], ['id']
        )

    # Las actas de consumibles ya numeradas quedan ligadas al tipo de su categoría
    op.execute(
        "UPDATE actas SET id_tipo_inventario = "
        "(SELECT t.id FROM tipos_inventario t WHERE t.codigo = actas.categoria) "
        "WHERE categoria IS NOT NULL"
    )


def downgrade():
    with op.batch_alter_table('actas', schema=None) as batch_op:
        batch_op.drop_constraint('fk_actas_id_tipo_inventario_tipos_inventario', type_='foreignkey')
        batch_op.drop_column('id_tipo_inventario')

    with op.batch_alter_table('articulos', schema=None) as batch_op:
        batch_op.drop_constraint('fk_articulos_id_tipo_inventario_tipos_inventario', type_='foreignkey')
        batch_op.drop_index('ix_articulos_id_tipo_inventario')
        batch_op.drop_column('id_tipo_inventario')

    op.drop_table('tipos_inventario')
