# uploads.py

import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from extensions import db
from models import FotoDetalle
from errors import ValidationError

SUBCARPETA = 'actas'


def allowed_file(filename):
    """Verifica si la extensión del archivo es una imagen permitida."""
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in current_app.config['ALLOWED_EXTENSIONS']


def validar_fotos(archivos):
    """Filtra los campos vacíos y valida cantidad y extensión. No escribe nada."""
    archivos = [a for a in (archivos or []) if a and a.filename]
    limite = current_app.config.get('MAX_FOTOS_POR_LINEA', 5)
    if len(archivos) > limite:
        raise ValidationError(f"Máximo {limite} fotos por artículo.")
    for archivo in archivos:
        if not allowed_file(archivo.filename):
            raise ValidationError(f"Tipo de archivo no permitido: {archivo.filename}.")
    return archivos


def guardar_fotos(detalle, archivos, tipo='entrega', escritos=None):
    """
    Guarda en disco las fotos del estado de una línea y las registra en
    FotoDetalle con la ruta relativa a UPLOAD_FOLDER. Cada ruta escrita se
    agrega a `escritos` para poder borrarla si la transacción hace rollback.
    """
    archivos = validar_fotos(archivos)
    if not archivos:
        return []

    carpeta = os.path.join(current_app.config['UPLOAD_FOLDER'], SUBCARPETA)
    os.makedirs(carpeta, exist_ok=True)

    fotos = []
    for archivo in archivos:
        filename = secure_filename(archivo.filename)
        unique_filename = f"{tipo}-{detalle.id}-{uuid.uuid4()}-{filename}"
        ruta = os.path.join(carpeta, unique_filename)
        archivo.save(ruta)
        if escritos is not None:
            escritos.append(ruta)

        foto = FotoDetalle(detalle=detalle, tipo=tipo, ruta_archivo=f"{SUBCARPETA}/{unique_filename}")
        db.session.add(foto)
        fotos.append(foto)
    return fotos


def descartar(rutas):
    """Borra los archivos escritos por una transacción que no se confirmó."""
    for ruta in rutas:
        try:
            os.remove(ruta)
        except FileNotFoundError:
            continue
        except OSError as e:
            current_app.logger.warning(f"No se pudo borrar el archivo huérfano {ruta}: {e}")
