from datetime import date
from typing import Dict, List, Optional
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.modules.disponibilidad.models.asignacion import (
    ChargeMode, ItemPlan, ModoConfirmacion, PlanAsignacion, VehiculoEnServicio
)
from app.modules.disponibilidad.services.disponibilidad_service import DisponibilidadService
from app.modules.flota.model import PRIORIDAD_FLOTA
from app.modules.flota.service import FlotaService
import logging

logger = logging.getLogger(__name__)


def accounting_vacio() -> dict:
    return {
        "prefactura": None,
        "preliquidacion": None,
        "factura": None,
        "doc_equivalente": None,
        "pagos": [],
        "notas": None
    }


class AsignacionService:
    def __init__(
        self,
        db,
        flota_service: Optional[FlotaService] = None,
        disponibilidad_service: Optional[DisponibilidadService] = None
    ):
        self.db = db
        self.flota_service = flota_service or FlotaService(db)
        self.disponibilidad_service = disponibilidad_service or DisponibilidadService(db)

    def sugerir(self, vehiculos: List[dict], pasajeros: int, seats_preferidos: Optional[int] = None) -> dict:
        """
        Vista previa: consume capacidad de mayor a menor sin revisar
        disponibilidad. No persiste nada.
        """
        candidatos = [v for v in vehiculos if not seats_preferidos or v["seats"] == seats_preferidos]
        candidatos.sort(key=lambda v: v["seats"], reverse=True)

        plan = []
        restantes = pasajeros
        for vehiculo in candidatos:
            if restantes <= 0:
                break
            asignados = min(vehiculo["seats"], restantes)
            plan.append(ItemPlan(
                vehiculo_id=vehiculo["id"],
                placa=vehiculo["placa"],
                seats=vehiculo["seats"],
                flota=vehiculo.get("flota"),
                prioridad_flota=PRIORIDAD_FLOTA.get(vehiculo.get("flota"), 0),
                assigned_passengers=asignados,
                conductor_id=vehiculo.get("driver_id")
            ))
            restantes -= asignados

        return {
            "can_fulfill": restantes <= 0,
            "total_asignado": pasajeros - max(restantes, 0),
            "faltante": max(restantes, 0),
            "plan": plan
        }

    def buscar_disponibles(
        self,
        company_id: str,
        fecha: date,
        hora_inicio: str,
        pasajeros: int,
        tipo_vehiculo: Optional[str] = None
    ) -> PlanAsignacion:
        if pasajeros <= 0:
            raise ValidationError("La cantidad de pasajeros debe ser mayor a cero")

        vehiculos = self.flota_service.list_vehiculos(company_id, tipo_vehiculo)
        evaluados = self.disponibilidad_service.evaluar(fecha, hora_inicio, vehiculos, tipo_vehiculo)

        evaluados.sort(key=lambda v: (not v.disponible, -v.prioridad_flota, -v.seats))
        libres = [v for v in evaluados if v.disponible]

        plan = []
        usados = set()
        conductores_usados = set()
        restantes = pasajeros
        while restantes > 0:
            sin_usar = [
                v for v in libres
                if v.vehiculo_id not in usados and self._conductor_libre(v, conductores_usados)
            ]
            if not sin_usar:
                break

            # Un solo vehículo alcanza: se le asigna exactamente lo que falta
            elegido = next((v for v in sin_usar if v.seats >= restantes), None)
            if elegido is None:
                elegido = sin_usar[0]

            conductor_id = self._conductor_libre(elegido, conductores_usados)
            asignados = min(elegido.seats, restantes)
            plan.append(ItemPlan(
                vehiculo_id=elegido.vehiculo_id,
                placa=elegido.placa,
                seats=elegido.seats,
                flota=elegido.flota,
                prioridad_flota=elegido.prioridad_flota,
                assigned_passengers=asignados,
                conductor_id=conductor_id
            ))
            usados.add(elegido.vehiculo_id)
            conductores_usados.add(conductor_id)
            restantes -= asignados

        en_servicio = [
            VehiculoEnServicio(vehiculo_id=v.vehiculo_id, placa=v.placa, seats=v.seats, motivo=v.motivo)
            for v in evaluados if not v.disponible
        ]

        return PlanAsignacion(
            can_fulfill=restantes == 0,
            vehiculos_necesarios=len(plan),
            total_asignado=pasajeros - restantes,
            faltante=restantes,
            plan=plan,
            en_servicio=en_servicio
        )

    @staticmethod
    def _conductor_libre(vehiculo, conductores_usados: set) -> Optional[str]:
        """Conductor del vehículo que no maneja otro vehículo del mismo plan."""
        if vehiculo.conductor_seleccionado and vehiculo.conductor_seleccionado not in conductores_usados:
            return vehiculo.conductor_seleccionado
        return next((c for c in vehiculo.conductores_disponibles if c not in conductores_usados), None)

    def _resolver_vehiculo(self, asignacion: dict, company_id: str) -> dict:
        vehiculo = None
        if asignacion.get("vehiculo_id"):
            vehiculo = self.flota_service.get_vehiculo_by_id(asignacion["vehiculo_id"])
        elif asignacion.get("placa"):
            vehiculo = self.flota_service.get_vehiculo_by_placa(asignacion["placa"], company_id)

        if not vehiculo:
            referencia = asignacion.get("placa") or asignacion.get("vehiculo_id")
            raise NotFoundError(f"Vehículo {referencia} no encontrado")

        if vehiculo.get("company_id") != company_id:
            raise ForbiddenError(f"El vehículo {vehiculo['placa']} no pertenece a la empresa")

        return vehiculo

    def confirmar(
        self,
        solicitud: dict,
        asignaciones: List[dict],
        modo: ModoConfirmacion,
        company_id: str,
        excluir_solicitud_id: Optional[str] = None
    ) -> List[dict]:
        """
        Valida un plan de asignación y devuelve las asignaciones listas para
        persistir. En modo exacto la suma de pasajeros debe ser igual a la
        solicitada; en modo cubrir basta con alcanzarla.
        """
        if not asignaciones:
            raise ValidationError("Debe asignar al menos un vehículo")

        requeridos = int(solicitud.get("n_pasajeros") or 0)
        vehiculos: List[dict] = []
        conductores: Dict[str, str] = {}
        vistos = set()

        for asignacion in asignaciones:
            vehiculo = self._resolver_vehiculo(asignacion, company_id)
            if vehiculo["id"] in vistos:
                raise ValidationError(f"El vehículo {vehiculo['placa']} está repetido en la asignación")
            vistos.add(vehiculo["id"])

            permitidos = [vehiculo.get("driver_id")] if vehiculo.get("driver_id") else []
            permitidos += vehiculo.get("conductores_secundarios", [])

            conductor_id = asignacion.get("conductor_id") or vehiculo.get("driver_id")
            if not conductor_id:
                raise ValidationError(f"El vehículo {vehiculo['placa']} no tiene conductor asignado")
            if conductor_id not in permitidos:
                raise ValidationError(f"El conductor no está autorizado para el vehículo {vehiculo['placa']}")
            if conductor_id in conductores.values():
                raise ValidationError(
                    f"El conductor del vehículo {vehiculo['placa']} ya maneja otro vehículo de la asignación"
                )

            pasajeros = int(asignacion.get("assigned_passengers") or 0)
            if pasajeros <= 0:
                raise ValidationError(f"Debe asignar pasajeros al vehículo {vehiculo['placa']}")
            if pasajeros > vehiculo["seats"]:
                raise ValidationError(
                    f"El vehículo {vehiculo['placa']} tiene capacidad para {vehiculo['seats']} "
                    f"pasajeros y se asignaron {pasajeros}"
                )

            vehiculos.append(vehiculo)
            conductores[vehiculo["id"]] = conductor_id

        total = sum(int(a.get("assigned_passengers") or 0) for a in asignaciones)
        if modo == ModoConfirmacion.EXACTO and total != requeridos:
            raise ValidationError(
                f"La suma de pasajeros asignados ({total}) debe ser igual a los solicitados ({requeridos})"
            )
        if modo == ModoConfirmacion.CUBRIR and total < requeridos:
            raise ValidationError(
                f"Los pasajeros asignados ({total}) no cubren los solicitados ({requeridos})"
            )

        evaluados = self.disponibilidad_service.evaluar(
            solicitud["fecha"],
            solicitud["hora_inicio"],
            vehiculos,
            conductores_seleccionados=conductores,
            excluir_solicitud_id=excluir_solicitud_id
        )
        ocupados = [e for e in evaluados if not e.disponible]
        if ocupados:
            raise ValidationError("; ".join(e.motivo for e in ocupados))

        modo_defecto = solicitud.get("contract_charge_mode") or ChargeMode.NO_CONTRACT.value

        confirmadas = []
        for asignacion, vehiculo in zip(asignaciones, vehiculos):
            conductor_id = conductores[vehiculo["id"]]
            conductor = self.flota_service.get_conductor(conductor_id) or {}

            confirmadas.append({
                "vehiculo_id": vehiculo["id"],
                "placa": vehiculo["placa"],
                "seats": vehiculo["seats"],
                "tipo": vehiculo.get("tipo"),
                "flota": vehiculo.get("flota"),
                "owner": vehiculo.get("owner"),
                "assigned_passengers": int(asignacion["assigned_passengers"]),
                "conductor_id": conductor_id,
                "conductor_nombre": conductor.get("full_name"),
                "conductor_phone": conductor.get("telefono"),
                "contract_id": asignacion.get("contract_id") or solicitud.get("contract_id"),
                "contract_charge_mode": asignacion.get("contract_charge_mode") or modo_defecto,
                "contract_charge_amount": float(asignacion.get("contract_charge_amount") or 0),
                "accounting": accounting_vacio()
            })

        logger.info(
            f"Asignación confirmada ({modo.value}): {len(confirmadas)} vehículos, {total} pasajeros"
        )
        return confirmadas
