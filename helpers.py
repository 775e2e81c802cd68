# helpers.py
import json
from datetime import datetime

from flask import request
from werkzeug.datastructures import MultiDict

from errors import ValidationError


def payload():
    """Cuerpo de la petición como dict, venga en JSON o en multipart."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def datos_formulario():
    """
    MultiDict para los formularios de WTForms. En JSON se descartan las
    listas y objetos anidados y los valores se pasan a texto.
    """
    if not request.is_json:
        return request.form
    datos = MultiDict()
    for clave, valor in payload().items():
        if valor is None or isinstance(valor, (list, dict)):
            continue
        if isinstance(valor, bool):
            valor = 'true' if valor else 'false'
        datos.add(clave, str(valor))
    return datos


def validar_formulario(form_class):
    """Instancia y valida el formulario; si falla lanza ValidationError con los errores por campo."""
    form = form_class(formdata=datos_formulario())
    if not form.validate():
        primer_error = next(iter(form.errors.values()))[0]
        raise ValidationError(primer_error, campos=form.errors)
    return form


def lista_json(campo):
    """Lista anidada del cuerpo. En multipart llega como texto JSON."""
    valor = payload().get(campo)
    if isinstance(valor, str):
        try:
            valor = json.loads(valor)
        except ValueError:
            raise ValidationError(f"El campo '{campo}' no es un JSON válido.")
    if valor is None:
        return []
    if not isinstance(valor, list):
        raise ValidationError(f"El campo '{campo}' debe ser una lista.")
    return valor


def archivos_por_prefijo(prefijo):
    """
    Agrupa los archivos subidos como '<prefijo><id>' (p. ej. fotos_12).
    Devuelve {id: [FileStorage, ...]}.
    """
    agrupados = {}
    for clave in request.files:
        if not clave.startswith(prefijo):
            continue
        sufijo = clave[len(prefijo):]
        if sufijo.isdigit():
            agrupados.setdefault(int(sufijo), []).extend(request.files.getlist(clave))
    return agrupados


def parse_fecha(valor, campo):
    if not valor:
        return None
    try:
        return datetime.strptime(valor, '%Y-%m-%d')
    except ValueError:
        raise ValidationError(f"Fecha inválida en '{campo}'. Use el formato AAAA-MM-DD.")


def parse_bool(valor):
    return str(valor).lower() in ('1', 'true', 'si', 'sí', 'yes')


def cliente_ip():
    """IP del cliente respetando el proxy inverso si lo hay."""
    reenviada = request.headers.get('X-Forwarded-For', '')
    return reenviada.split(',')[0].strip() if reenviada else request.remote_addr
