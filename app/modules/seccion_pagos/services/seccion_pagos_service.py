from datetime import datetime
from typing import Dict, List, Optional
from bson import ObjectId
from app.core.exceptions import InternalError, NotFoundError, ServiceError, ValidationError
from app.modules.seccion_pagos.models.seccion_pagos import (
    CuentaCobro, EstadoCuentaCobro, EstadoSeccion, SeccionPagos
)
import logging

logger = logging.getLogger(__name__)

# Campos que se diligencian a mano y sobreviven a una reasignación
CAMPOS_MANUALES = ("gastos_preoperacionales", "estado", "doc_soporte", "fecha_pago", "n_egreso")

ESTADOS_CERRADOS = {EstadoCuentaCobro.PAGADA.value, EstadoCuentaCobro.CANCELADA.value}


def calcular_cuenta(cuenta: dict) -> dict:
    valor_final = cuenta["valor_base"] - cuenta["gastos_operacionales"] - cuenta["gastos_preoperacionales"]
    cuenta["valor_final"] = round(max(0, valor_final), 2)

    if cuenta["estado"] not in ESTADOS_CERRADOS:
        cuenta["estado"] = (
            EstadoCuentaCobro.CALCULADA.value if cuenta["valor_base"] > 0
            else EstadoCuentaCobro.PENDIENTE.value
        )
    return cuenta


def totalizar(cuentas: List[dict]) -> dict:
    return {
        campo: round(sum(c.get(campo, 0) for c in cuentas), 2)
        for campo in ("valor_base", "gastos_operacionales", "gastos_preoperacionales", "valor_final")
    }


def estado_seccion(cuentas: List[dict]) -> str:
    estados = [c["estado"] for c in cuentas]
    if not estados:
        return EstadoSeccion.PENDIENTE.value

    pagadas = sum(1 for e in estados if e == EstadoCuentaCobro.PAGADA.value)
    if pagadas == len(estados):
        return EstadoSeccion.PAGADA.value
    if pagadas > 0:
        return EstadoSeccion.PARCIALMENTE_PAGADA.value
    if all(e == EstadoCuentaCobro.CALCULADA.value for e in estados):
        return EstadoSeccion.CALCULADA.value
    return EstadoSeccion.PENDIENTE.value


class SeccionPagosService:
    """Una sección de pagos por solicitud, con una cuenta de cobro por vehículo asignado."""

    def __init__(self, db):
        self.db = db
        self.collection = db["secciones_pago"]

    def _guardar(self, seccion: dict) -> dict:
        seccion["totales"] = totalizar(seccion["cuentas_cobro"])
        seccion["estado"] = estado_seccion(seccion["cuentas_cobro"])
        seccion["updated_at"] = datetime.now()

        if seccion.get("_id"):
            self.collection.replace_one({"_id": seccion["_id"]}, seccion)
        else:
            seccion["_id"] = self.collection.insert_one(seccion).inserted_id

        guardada = dict(seccion)
        guardada["id"] = str(guardada.pop("_id"))
        return guardada

    def sync_from_assignments(
        self,
        solicitud: dict,
        gastos_por_vehiculo: Optional[Dict[str, float]] = None,
        usuario: Optional[str] = None
    ) -> dict:
        try:
            solicitud_id = str(solicitud.get("_id") or solicitud.get("id"))
            existente = self.collection.find_one({"solicitud_id": solicitud_id})
            previas = {c["vehiculo_id"]: c for c in (existente or {}).get("cuentas_cobro", [])}

            cuentas = []
            for asignacion in solicitud.get("vehicle_assignments") or []:
                cuenta = CuentaCobro(
                    vehiculo_id=asignacion["vehiculo_id"],
                    placa=asignacion["placa"],
                    propietario=asignacion.get("owner"),
                    conductor_id=asignacion.get("conductor_id"),
                    conductor_nombre=asignacion.get("conductor_nombre"),
                    flota=asignacion.get("flota")
                ).model_dump()

                previa = previas.get(asignacion["vehiculo_id"])
                if previa:
                    for campo in CAMPOS_MANUALES:
                        cuenta[campo] = previa.get(campo, cuenta[campo])
                cuentas.append(cuenta)

            if existente:
                seccion = existente
                seccion["cuentas_cobro"] = cuentas
            else:
                seccion = SeccionPagos(
                    solicitud_id=solicitud_id,
                    company_id=solicitud["company_id"],
                    created_by=usuario
                ).model_dump()
                seccion["cuentas_cobro"] = cuentas

            self._aplicar_montos(seccion, solicitud, gastos_por_vehiculo or {})
            return self._guardar(seccion)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al sincronizar sección de pagos: {str(e)}")
            raise InternalError("No se pudo actualizar la sección de pagos")

    def _aplicar_montos(self, seccion: dict, solicitud: dict, gastos_por_vehiculo: Dict[str, float]) -> None:
        cuentas = seccion["cuentas_cobro"]
        if not cuentas:
            return

        # Reparto parejo del costo entre los vehículos asignados
        base = round(float(solicitud.get("valor_cancelado") or 0) / len(cuentas), 2)
        for cuenta in cuentas:
            cuenta["valor_base"] = base
            cuenta["gastos_operacionales"] = round(gastos_por_vehiculo.get(cuenta["vehiculo_id"], 0), 2)
            calcular_cuenta(cuenta)

    def recalcular(self, solicitud: dict, gastos_por_vehiculo: Dict[str, float]) -> dict:
        try:
            solicitud_id = str(solicitud.get("_id") or solicitud.get("id"))
            seccion = self.collection.find_one({"solicitud_id": solicitud_id})
            if not seccion:
                return self.sync_from_assignments(solicitud, gastos_por_vehiculo)

            self._aplicar_montos(seccion, solicitud, gastos_por_vehiculo)
            return self._guardar(seccion)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al recalcular sección de pagos: {str(e)}")
            raise InternalError("No se pudo recalcular la sección de pagos")

    def get_by_solicitud(self, solicitud_id: str) -> dict:
        seccion = self.collection.find_one({"solicitud_id": solicitud_id})
        if not seccion:
            raise NotFoundError("Sección de pagos no encontrada")
        seccion["id"] = str(seccion.pop("_id"))
        return seccion

    def update_cuenta_cobro(self, seccion_id: str, vehiculo_id: str, cambios: dict,
                           company_id: Optional[str] = None) -> dict:
        try:
            if not ObjectId.is_valid(seccion_id):
                raise NotFoundError("Sección de pagos no encontrada")

            seccion = self.collection.find_one({"_id": ObjectId(seccion_id)})
            if not seccion or (company_id and seccion["company_id"] != company_id):
                raise NotFoundError("Sección de pagos no encontrada")

            cuenta = next((c for c in seccion["cuentas_cobro"] if c["vehiculo_id"] == vehiculo_id), None)
            if cuenta is None:
                raise NotFoundError("El vehículo no tiene cuenta de cobro en esta sección")

            cambios = {k: v for k, v in cambios.items() if v is not None}
            if cambios.get("gastos_preoperacionales", 0) < 0:
                raise ValidationError("Los gastos preoperacionales no pueden ser negativos")

            cuenta.update(cambios)
            calcular_cuenta(cuenta)
            return self._guardar(seccion)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al actualizar cuenta de cobro: {str(e)}")
            raise InternalError("No se pudo actualizar la cuenta de cobro")
