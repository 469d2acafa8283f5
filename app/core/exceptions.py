"""
Excepciones HTTP de la API de RadOnco.
Los servicios las lanzan y FastAPI las convierte en la respuesta JSON.
"""

from fastapi import HTTPException, status


class CredentialsException(HTTPException):
    """Login o contraseña incorrectos, o token ausente/caducado (401)."""

    def __init__(self, detail: str = "Credenciales inválidas"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenException(HTTPException):
    """El rol del usuario no alcanza (403), p. ej. un médico gestionando usuarios."""

    def __init__(self, detail: str = "No tiene permisos para realizar esta acción"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class NotFoundException(HTTPException):
    """Carta de paciente o usuario inexistente (404)."""

    def __init__(self, resource: str = "Recurso", detail: str | None = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{resource} no encontrado",
        )


class ConflictException(HTTPException):
    """Login de usuario ya registrado (409)."""

    def __init__(self, detail: str = "El recurso ya existe"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class ValidationException(HTTPException):
    """Datos de la carta rechazados (422), p. ej. sin nombre del paciente."""

    def __init__(self, detail: str = "Error de validación"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
        )


class SelfDeleteRejectedException(HTTPException):
    """Un administrador no puede eliminar su propia cuenta (400)."""

    def __init__(self, detail: str = "No puede eliminarse a sí mismo"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )
