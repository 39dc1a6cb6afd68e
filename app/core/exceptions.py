"""
Excepciones de dominio.

Los servicios lanzan estas excepciones; las rutas las traducen a
HTTPException conservando el código y el mensaje originales. Cualquier
otro error se envuelve en InternalError con un mensaje fijo por operación.
"""


class ServiceError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class NotFoundError(ServiceError):
    status_code = 404


class ValidationError(ServiceError):
    status_code = 400


class ForbiddenError(ServiceError):
    status_code = 403


class InternalError(ServiceError):
    status_code = 500
