import re
from datetime import date, datetime, time
from typing import Dict, List, Optional
from app.core.config import settings
from app.core.exceptions import ValidationError
from app.modules.disponibilidad.models.disponibilidad import (
    Conflicto, DisponibilidadVehiculo, Ocupacion
)
from app.modules.flota.model import PRIORIDAD_FLOTA
import logging

logger = logging.getLogger(__name__)

FIN_DEL_DIA = 24 * 60

_HORA_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def parse_hora(hora: str) -> int:
    """Convierte "HH:MM" o "HH:MM:SS" en minutos desde medianoche."""
    match = _HORA_RE.match((hora or "").strip())
    if not match:
        raise ValidationError(f"Hora inválida: {hora}")

    horas, minutos = int(match.group(1)), int(match.group(2))
    if horas > 23 or minutos > 59:
        raise ValidationError(f"Hora inválida: {hora}")

    return horas * 60 + minutos


def formatear_minutos(minutos: int) -> str:
    return f"{minutos // 60:02d}:{minutos % 60:02d}"


def hay_traslape(s1: int, e1: int, s2: int, e2: int) -> bool:
    return (
        (s2 <= s1 < e2)
        or (s1 <= s2 < e1)
        or (s1 < s2 and e1 > s2)
    )


def fecha_a_datetime(fecha) -> datetime:
    if isinstance(fecha, datetime):
        return datetime.combine(fecha.date(), time.min)
    return datetime.combine(fecha, time.min)


class DisponibilidadService:
    def __init__(self, db):
        self.db = db
        self.solicitudes = db["solicitudes"]

    def intervalo_solicitud(self, solicitud: dict) -> tuple:
        """[inicio, fin) de una solicitud existente dentro de su fecha."""
        inicio = parse_hora(solicitud["hora_inicio"])
        fin = FIN_DEL_DIA

        hora_final = solicitud.get("hora_final")
        fecha_final = solicitud.get("fecha_final")
        misma_fecha = fecha_final is None or fecha_a_datetime(fecha_final) == fecha_a_datetime(solicitud["fecha"])

        if hora_final and misma_fecha:
            fin = parse_hora(hora_final)

        return inicio, fin

    def cargar_ocupaciones(
        self,
        fecha,
        excluir_solicitud_id: Optional[str] = None,
        solo_iniciadas: bool = False
    ) -> List[Ocupacion]:
        query = {"fecha": fecha_a_datetime(fecha), "status": "accepted"}
        if solo_iniciadas:
            query["service_status"] = "started"

        ocupaciones = []
        for solicitud in self.solicitudes.find(query):
            solicitud_id = str(solicitud["_id"])
            if solicitud_id == excluir_solicitud_id:
                continue

            inicio, fin = self.intervalo_solicitud(solicitud)

            vehiculos = [solicitud.get("vehiculo_id")]
            conductores = [solicitud.get("conductor_id")]
            for asignacion in solicitud.get("vehicle_assignments") or []:
                vehiculos.append(asignacion.get("vehiculo_id"))
                conductores.append(asignacion.get("conductor_id"))

            ocupaciones.append(Ocupacion(
                solicitud_id=solicitud_id,
                he=solicitud.get("he"),
                inicio=inicio,
                fin=fin,
                vehiculos=sorted({v for v in vehiculos if v}),
                conductores=sorted({c for c in conductores if c})
            ))

        return ocupaciones

    def evaluar(
        self,
        fecha: date,
        hora_inicio: str,
        vehiculos: List[dict],
        tipo_vehiculo: Optional[str] = None,
        conductores_seleccionados: Optional[Dict[str, str]] = None,
        excluir_solicitud_id: Optional[str] = None
    ) -> List[DisponibilidadVehiculo]:
        """
        Disponibilidad de cada vehículo candidato para una nueva solicitud.

        La nueva solicitud ocupa al menos MIN_OCCUPANCY_MINUTES desde su hora
        de inicio. Una solicitud aceptada sin hora final ocupa el vehículo y
        el conductor hasta el final del día. Las pendientes y rechazadas no
        bloquean.
        """
        inicio = parse_hora(hora_inicio)
        fin = inicio + settings.MIN_OCCUPANCY_MINUTES
        conductores_seleccionados = conductores_seleccionados or {}

        ocupaciones = [
            o for o in self.cargar_ocupaciones(fecha, excluir_solicitud_id)
            if hay_traslape(inicio, fin, o.inicio, o.fin)
        ]

        def conflicto_conductor(conductor_id: str) -> Optional[Ocupacion]:
            return next((o for o in ocupaciones if conductor_id in o.conductores), None)

        resultado = []
        for vehiculo in vehiculos:
            if tipo_vehiculo and vehiculo.get("tipo") != tipo_vehiculo:
                continue

            vehiculo_id = vehiculo["id"]
            conflicto_vehiculo = next((o for o in ocupaciones if vehiculo_id in o.vehiculos), None)

            permitidos = [vehiculo.get("driver_id")] if vehiculo.get("driver_id") else []
            permitidos += [c for c in vehiculo.get("conductores_secundarios", []) if c not in permitidos]

            seleccionado = conductores_seleccionados.get(vehiculo_id) or vehiculo.get("driver_id")
            conflicto_seleccionado = conflicto_conductor(seleccionado) if seleccionado else None

            conflicto = None
            motivo = None
            if conflicto_vehiculo:
                conflicto = conflicto_vehiculo
                motivo = (
                    f"Vehículo {vehiculo['placa']} en servicio {conflicto.he or conflicto.solicitud_id} "
                    f"de {formatear_minutos(conflicto.inicio)} a {formatear_minutos(conflicto.fin)}"
                )
            elif conflicto_seleccionado:
                conflicto = conflicto_seleccionado
                motivo = (
                    f"Conductor del vehículo {vehiculo['placa']} ocupado en servicio "
                    f"{conflicto.he or conflicto.solicitud_id} de {formatear_minutos(conflicto.inicio)} "
                    f"a {formatear_minutos(conflicto.fin)}"
                )

            resultado.append(DisponibilidadVehiculo(
                vehiculo_id=vehiculo_id,
                placa=vehiculo["placa"],
                seats=vehiculo["seats"],
                tipo=vehiculo.get("tipo"),
                flota=vehiculo.get("flota"),
                prioridad_flota=PRIORIDAD_FLOTA.get(vehiculo.get("flota"), 0),
                disponible=conflicto is None,
                conflicto=Conflicto(
                    solicitud_id=conflicto.solicitud_id,
                    he=conflicto.he,
                    inicio=formatear_minutos(conflicto.inicio),
                    fin=formatear_minutos(conflicto.fin)
                ) if conflicto else None,
                motivo=motivo,
                conductor_seleccionado=seleccionado,
                conductores_disponibles=[c for c in permitidos if conflicto_conductor(c) is None]
            ))

        logger.debug(
            f"Disponibilidad {fecha} {hora_inicio}: "
            f"{sum(1 for r in resultado if r.disponible)}/{len(resultado)} libres"
        )
        return resultado

    def conflictos_en_ejecucion(self, solicitud: dict) -> List[Ocupacion]:
        """Solicitudes ya iniciadas que comparten vehículo o conductor en una franja traslapada."""
        inicio, fin = self.intervalo_solicitud(solicitud)
        if fin <= inicio:
            fin = inicio + settings.MIN_OCCUPANCY_MINUTES

        vehiculos = {solicitud.get("vehiculo_id")}
        conductores = {solicitud.get("conductor_id")}
        for asignacion in solicitud.get("vehicle_assignments") or []:
            vehiculos.add(asignacion.get("vehiculo_id"))
            conductores.add(asignacion.get("conductor_id"))
        vehiculos.discard(None)
        conductores.discard(None)

        return [
            o for o in self.cargar_ocupaciones(solicitud["fecha"], str(solicitud["_id"]), solo_iniciadas=True)
            if hay_traslape(inicio, fin, o.inicio, o.fin)
            and (vehiculos.intersection(o.vehiculos) or conductores.intersection(o.conductores))
        ]
