# forms.py
# Validación de los encabezados que llegan por JSON o multipart. Las listas
# anidadas (líneas, resultados de devolución) se validan en documents.py.
from flask_wtf import FlaskForm
from wtforms import StringField, IntegerField, DateField, TextAreaField, SelectField
from wtforms.validators import (DataRequired, Optional, Length, NumberRange, InputRequired, Regexp,
                                ValidationError)

from models import TIPOS_ARTICULO, TIPOS_REGISTRO, ESTADOS_ARTICULO, TIPOS_ACTA


def _correo_valido(form, field):
    if field.data and ('@' not in field.data or '.' not in field.data.rsplit('@', 1)[-1]):
        raise ValidationError('Correo electrónico inválido.')


class ActaForm(FlaskForm):
    tipo = SelectField('Tipo de acta', choices=[(t, t) for t in TIPOS_ACTA], validators=[DataRequired()])
    categoria = StringField('Categoría', validators=[Optional(), Length(max=50)])
    nombre_receptor = StringField('Nombre', validators=[DataRequired(message='El nombre del receptor es obligatorio.'),
                                                        Length(max=255)])
    cedula_receptor = StringField('Cédula', validators=[Optional(), Length(max=30)])
    cargo_receptor = StringField('Cargo', validators=[Optional(), Length(max=150)])
    telefono_receptor = StringField('Teléfono', validators=[Optional(), Length(max=30)])
    correo_receptor = StringField('Correo', validators=[Optional(), Length(max=255), _correo_valido])
    fecha_devolucion_esperada = DateField('Devolución esperada', validators=[Optional()])
    observaciones = TextAreaField('Observaciones', validators=[Optional()])


class SolicitudFirmaForm(FlaskForm):
    correo = StringField('Correo', validators=[Optional(), Length(max=255), _correo_valido])


class CancelacionForm(FlaskForm):
    motivo = TextAreaField('Motivo', validators=[Optional(), Length(max=1000)])


class FirmaForm(FlaskForm):
    firma = StringField('Firma', validators=[DataRequired(message='La firma es requerida.')])


class RechazoForm(FlaskForm):
    motivo = TextAreaField('Motivo', validators=[DataRequired(message='Debe indicar el motivo del rechazo.'),
                                                 Length(max=2000)])


class ArticuloForm(FlaskForm):
    tipo = SelectField('Tipo', choices=[(t, t) for t in TIPOS_ARTICULO], validators=[DataRequired()])
    tipo_registro = SelectField('Registro', choices=[(t, t) for t in TIPOS_REGISTRO], default='individual')
    nombre = StringField('Nombre', validators=[DataRequired(), Length(max=255)])
    descripcion = TextAreaField('Descripción', validators=[Optional()])
    categoria = StringField('Categoría', validators=[Optional(), Length(max=100)])
    tipo_inventario = StringField('Tipo de inventario', validators=[Optional(), Length(max=30)])
    marca = StringField('Marca', validators=[Optional(), Length(max=100)])
    modelo = StringField('Modelo', validators=[Optional(), Length(max=100)])
    serial = StringField('Serial', validators=[Optional(), Length(max=100)])
    ubicacion = StringField('Ubicación', validators=[Optional(), Length(max=255)])
    unidad_medida = StringField('Unidad', validators=[Optional(), Length(max=30)])
    stock_actual = IntegerField('Stock inicial', validators=[Optional(), NumberRange(min=0)], default=0)
    stock_minimo = IntegerField('Stock mínimo', validators=[Optional(), NumberRange(min=0)], default=0)


class EditarArticuloForm(FlaskForm):
    nombre = StringField('Nombre', validators=[Optional(), Length(max=255)])
    descripcion = TextAreaField('Descripción', validators=[Optional()])
    categoria = StringField('Categoría', validators=[Optional(), Length(max=100)])
    tipo_inventario = StringField('Tipo de inventario', validators=[Optional(), Length(max=30)])
    marca = StringField('Marca', validators=[Optional(), Length(max=100)])
    modelo = StringField('Modelo', validators=[Optional(), Length(max=100)])
    ubicacion = StringField('Ubicación', validators=[Optional(), Length(max=255)])
    unidad_medida = StringField('Unidad', validators=[Optional(), Length(max=30)])
    stock_minimo = IntegerField('Stock mínimo', validators=[Optional(), NumberRange(min=0)])


class MovimientoForm(FlaskForm):
    """Reposición, salida o baja de stock."""
    cantidad = IntegerField('Cantidad', validators=[Optional(), NumberRange(min=1)])
    motivo = TextAreaField('Motivo', validators=[DataRequired(message='El motivo es obligatorio.')])


class AjusteForm(FlaskForm):
    # La cantidad negativa se deja pasar: la rechaza el inventario con 'ajuste_invalido'
    cantidad = IntegerField('Cantidad', validators=[InputRequired(message='La cantidad es obligatoria.')])
    motivo = TextAreaField('Motivo', validators=[DataRequired(message='El motivo es obligatorio.')])


class EstadoForm(FlaskForm):
    estado = SelectField('Estado', choices=[(e, e) for e in ESTADOS_ARTICULO], validators=[DataRequired()])
    motivo = TextAreaField('Motivo', validators=[DataRequired(message='El motivo es obligatorio.')])


class TipoInventarioForm(FlaskForm):
    nombre = StringField('Nombre', validators=[DataRequired(message='El nombre es obligatorio.'), Length(max=100)])
    codigo = StringField('Código', validators=[
        DataRequired(message='El código es obligatorio.'),
        Regexp(r'^[a-z][a-z0-9_]{1,29}$',
               message='El código debe ir en minúsculas, sin espacios ni tildes (ej: aseo, papeleria).')])
    descripcion = TextAreaField('Descripción', validators=[Optional()])
    icono = StringField('Icono', validators=[Optional(), Length(max=50)])
    color = StringField('Color', validators=[Optional(), Regexp(r'^#[0-9a-fA-F]{6}$', message='Color inválido.')])
    orden = IntegerField('Orden', validators=[Optional(), NumberRange(min=0)])


class EditarTipoInventarioForm(FlaskForm):
    """El código no se edita: lo usan los prefijos de las actas ya numeradas."""
    nombre = StringField('Nombre', validators=[Optional(), Length(max=100)])
    descripcion = TextAreaField('Descripción', validators=[Optional()])
    icono = StringField('Icono', validators=[Optional(), Length(max=50)])
    color = StringField('Color', validators=[Optional(), Regexp(r'^#[0-9a-fA-F]{6}$', message='Color inválido.')])
    orden = IntegerField('Orden', validators=[Optional(), NumberRange(min=0)])
