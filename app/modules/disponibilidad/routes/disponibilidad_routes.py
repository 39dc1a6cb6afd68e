from fastapi import APIRouter, Depends, HTTPException
from app.core.database import get_database
from app.core.exceptions import ServiceError
from app.modules.auth.schemas.actor import Actor, ROLES_INTERNOS
from app.modules.auth.utils.dependencies import require_role
from app.modules.disponibilidad.models.asignacion import PlanAsignacion
from app.modules.disponibilidad.schemas.disponibilidad_schema import (
    BuscarDisponiblesRequest, SugerirRequest, SugerenciaResponse
)
from app.modules.disponibilidad.services.asignacion_service import AsignacionService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/disponibilidad", tags=["Disponibilidad"])


@router.post("/buscar", response_model=PlanAsignacion)
def buscar_vehiculos_disponibles(
    request: BuscarDisponiblesRequest,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        asignacion_service = AsignacionService(db)

        return asignacion_service.buscar_disponibles(
            current_user.company_id,
            request.fecha,
            request.hora_inicio,
            request.pasajeros,
            request.tipo_vehiculo
        )

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al buscar vehículos disponibles: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/sugerir", response_model=SugerenciaResponse)
def sugerir_vehiculos(
    request: SugerirRequest,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        asignacion_service = AsignacionService(db)

        vehiculos = asignacion_service.flota_service.list_vehiculos(current_user.company_id, request.tipo_vehiculo)
        return asignacion_service.sugerir(vehiculos, request.pasajeros, request.seats_preferidos)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al sugerir vehículos: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")
