# errors.py

# Jerarquía de errores de negocio. Cada error sabe con qué código HTTP se
# responde y cómo se serializa; el manejador registrado en app.py los convierte
# en respuestas JSON {"error": ..., "message": ...}.


class InventarioError(Exception):
    status_code = 500
    code = 'error_inventario'
    message = 'Ocurrió un error en el sistema de inventario.'

    def __init__(self, message=None, **extra):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.extra = extra

    def to_dict(self):
        payload = {'error': self.code, 'message': self.message}
        payload.update({k: v for k, v in self.extra.items() if v is not None})
        return payload


# --- Categorías generales ---

class ValidationError(InventarioError):
    status_code = 400
    code = 'validacion'
    message = 'Los datos enviados no son válidos.'


class NotFoundError(InventarioError):
    status_code = 404
    code = 'no_encontrado'
    message = 'El recurso solicitado no existe.'


class ConflictError(InventarioError):
    status_code = 409
    code = 'conflicto'
    message = 'La operación entra en conflicto con el estado actual.'


class TransientIOError(InventarioError):
    """Fallo al entregar un correo o un evento. Nunca llega al cliente como error HTTP."""
    status_code = 502
    code = 'entrega_fallida'
    message = 'No se pudo entregar la notificación.'


class InternalError(InventarioError):
    status_code = 500
    code = 'error_interno'
    message = 'Ocurrió un error inesperado en el servidor.'


# --- Inventario ---

class InsufficientStock(ConflictError):
    status_code = 400
    code = 'stock_insuficiente'
    message = 'No hay existencias suficientes para el artículo.'


class InvalidAdjustment(ValidationError):
    code = 'ajuste_invalido'
    message = 'La cantidad ajustada no puede ser negativa.'


class ItemNotFound(NotFoundError):
    code = 'articulo_no_encontrado'
    message = 'Artículo no encontrado.'


class InventoryTypeNotFound(NotFoundError):
    code = 'tipo_inventario_no_encontrado'
    message = 'Tipo de inventario no encontrado.'


# --- Actas ---

class DocumentNotFound(NotFoundError):
    code = 'acta_no_encontrada'
    message = 'Acta no encontrada.'


class LineNotFound(NotFoundError):
    code = 'detalle_no_encontrado'
    message = 'La línea indicada no pertenece al acta.'


class InvalidTransition(ConflictError):
    code = 'transicion_invalida'
    message = 'El acta no admite esta operación en su estado actual.'


class LineAlreadyReturned(ConflictError):
    code = 'linea_ya_devuelta'
    message = 'La línea ya fue devuelta.'


# --- Tokens de firma ---

class TokenNotFound(NotFoundError):
    code = 'token_no_encontrado'
    message = 'Token inválido o no encontrado.'


class TokenAlreadyUsed(ConflictError):
    """El enlace ya fue usado. extra lleva 'estado' y 'fechaFirma' o 'motivo'."""
    status_code = 400
    code = 'token_usado'
    message = 'Este enlace ya no es válido.'


class TokenExpired(ConflictError):
    status_code = 400
    code = 'token_expirado'
    message = 'Este enlace ha expirado. Solicite un nuevo enlace.'
