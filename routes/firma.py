# firma.py
# Rutas públicas del enlace de firma. No requieren sesión: el token del
# enlace es la única credencial.

from flask import Blueprint, request, jsonify

from forms import FirmaForm, RechazoForm
from helpers import validar_formulario, cliente_ip
from workflow import Orchestrator
from workflows import titulo_para
import tokens

firma_bp = Blueprint('firma', __name__)


@firma_bp.route('/signature/<token>', methods=['GET'])
def ver_acta_por_token(token):
    """
    Datos del acta para la pantalla de firma. Si el enlace ya se usó la
    respuesta es 400 con 'fechaFirma' (firmada) o 'motivo' (rechazada).
    """
    acta = tokens.redeem(token)
    token_firma = tokens.lookup(token)
    return jsonify({
        "titulo": titulo_para(acta),
        "acta": acta.to_dict(publico=True),
        "correo": token_firma.correo_destinatario,
        "fecha_expiracion": token_firma.fecha_expiracion.isoformat() if token_firma.fecha_expiracion else None
    })


@firma_bp.route('/signature/<token>/sign', methods=['POST'])
def firmar_acta(token):
    # Un enlace ya usado responde con su estado antes que con errores del cuerpo
    tokens.redeem(token)
    form = validar_formulario(FirmaForm)
    acta, _ = Orchestrator.desde_app().sign(
        token,
        form.firma.data,
        ip=cliente_ip(),
        user_agent=request.headers.get('User-Agent')
    )
    return jsonify({
        "message": "Acta firmada exitosamente.",
        "acta": {
            "numero_acta": acta.numero_acta,
            "estado": acta.estado,
            "fecha_firma": acta.fecha_firma.isoformat()
        }
    })


@firma_bp.route('/signature/<token>/reject', methods=['POST'])
def rechazar_acta(token):
    tokens.redeem(token)
    form = validar_formulario(RechazoForm)
    acta, _ = Orchestrator.desde_app().reject(
        token,
        form.motivo.data,
        ip=cliente_ip(),
        user_agent=request.headers.get('User-Agent')
    )
    return jsonify({
        "message": "Acta devuelta para corrección.",
        "acta": {
            "numero_acta": acta.numero_acta,
            "estado": acta.estado,
            "motivo_rechazo": acta.motivo_rechazo
        }
    })
