from typing import List, Optional, Dict
from bson import ObjectId
from app.core.exceptions import ValidationError
from app.modules.flota.service import FlotaService
from app.modules.gastos.model import GastoOperacional
import logging

logger = logging.getLogger(__name__)


class GastoService:
    def __init__(self, db, flota_service: Optional[FlotaService] = None):
        self.db = db
        self.collection = db["gastos_operacionales"]
        self.flota_service = flota_service or FlotaService(db)

    def _validar_solicitud(self, solicitud_id: str, vehiculo_id: str, company_id: str) -> None:
        solicitud = None
        if ObjectId.is_valid(solicitud_id):
            solicitud = self.db["solicitudes"].find_one(
                {"_id": ObjectId(solicitud_id), "company_id": company_id}
            )
        if not solicitud:
            raise ValidationError("La solicitud del gasto no existe")

        asignados = {a.get("vehiculo_id") for a in solicitud.get("vehicle_assignments") or []}
        if vehiculo_id not in asignados:
            raise ValidationError("El vehículo no está asignado a la solicitud")

    def create_gasto(self, company_id: str, gasto_data: dict, usuario: Optional[str] = None) -> dict:
        try:
            vehiculo = self.flota_service.get_vehiculo_by_id(gasto_data["vehiculo_id"])
            if not vehiculo or vehiculo["company_id"] != company_id:
                raise ValidationError("El vehículo no pertenece a la empresa")

            if gasto_data.get("solicitud_id"):
                self._validar_solicitud(gasto_data["solicitud_id"], gasto_data["vehiculo_id"], company_id)

            if not gasto_data.get("fecha_gasto"):
                gasto_data.pop("fecha_gasto", None)

            gasto_model = GastoOperacional(
                company_id=company_id,
                placa=vehiculo["placa"],
                usuario_registro=usuario,
                **gasto_data
            )

            result = self.collection.insert_one(gasto_model.model_dump())

            created_gasto = self.collection.find_one({"_id": result.inserted_id})
            created_gasto["id"] = str(created_gasto["_id"])
            del created_gasto["_id"]
            return created_gasto

        except ValidationError:
            raise
        except Exception as e:
            logger.error(f"Error al crear gasto: {str(e)}")
            raise

    def list_gastos(self, solicitud_id: Optional[str] = None, vehiculo_id: Optional[str] = None) -> List[dict]:
        query = {}
        if solicitud_id:
            query["solicitud_id"] = solicitud_id
        if vehiculo_id:
            query["vehiculo_id"] = vehiculo_id

        gastos = []
        for gasto in self.collection.find(query).sort("fecha_gasto", 1):
            gasto["id"] = str(gasto["_id"])
            del gasto["_id"]
            gastos.append(gasto)
        return gastos

    def total_gastos(self, solicitud_id: Optional[str] = None, vehiculo_id: Optional[str] = None) -> float:
        """Suma de todas las líneas de detalle de los gastos que coinciden."""
        total = 0.0
        for gasto in self.list_gastos(solicitud_id, vehiculo_id):
            total += sum(d.get("valor", 0) for d in gasto.get("detalles_gastos", []))
        return round(total, 2)

    def gastos_por_vehiculo(self, solicitud_id: str) -> Dict[str, float]:
        """Total por vehículo; solo aparecen vehículos con al menos un registro."""
        totales: Dict[str, float] = {}
        for gasto in self.list_gastos(solicitud_id=solicitud_id):
            valor = sum(d.get("valor", 0) for d in gasto.get("detalles_gastos", []))
            totales[gasto["vehiculo_id"]] = round(totales.get(gasto["vehiculo_id"], 0) + valor, 2)
        return totales
