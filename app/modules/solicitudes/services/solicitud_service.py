import re
from datetime import datetime
from math import ceil
from typing import Dict, List, Optional, Tuple
from bson import ObjectId
from app.core.config import settings
from app.core.exceptions import (
    ForbiddenError, InternalError, NotFoundError, ServiceError, ValidationError
)
from app.modules.auth.schemas.actor import (
    Actor, Rol, ROLES_COMERCIAL, ROLES_CONTABILIDAD, ROLES_COORDINACION
)
from app.modules.auth.services.user_service import UserService
from app.modules.clientes.service import ClienteService
from app.modules.contratos.services.contrato_service import ContratoService
from app.modules.contratos.services.tarifas import estimar_desde_contrato
from app.modules.disponibilidad.models.asignacion import ChargeMode, ModoConfirmacion
from app.modules.disponibilidad.services.asignacion_service import AsignacionService, accounting_vacio
from app.modules.disponibilidad.services.disponibilidad_service import (
    DisponibilidadService, fecha_a_datetime, parse_hora
)
from app.modules.flota.service import FlotaService
from app.modules.gastos.service import GastoService
from app.modules.lugares.service import LugarService
from app.modules.notificaciones.model import EventoNotificacion
from app.modules.notificaciones.service import NotificationDispatcher, notificar
from app.modules.seccion_pagos.services.seccion_pagos_service import SeccionPagosService
from app.modules.solicitudes.models.solicitud import (
    AccountingStatus, ServiceStatus, Solicitud, StatusSolicitud, avanzar_accounting
)
from app.modules.solicitudes.views import proyectar_solicitud
from app.modules.utils.core.code_generator.code_generator import generate_he
import logging

logger = logging.getLogger(__name__)

ROLES_INICIO_SERVICIO = [Rol.COORDINADOR, Rol.ADMIN, Rol.SUPERADMIN]


def _serializar(doc: dict) -> dict:
    doc["id"] = str(doc["_id"])
    del doc["_id"]
    return doc


def _requiere_rol(actor: Actor, roles: List[Rol], mensaje: str = "No tienes permisos para esta operación") -> None:
    if actor.role not in roles:
        raise ForbiddenError(mensaje)


def campos_principales(asignaciones: List[dict]) -> dict:
    principal = asignaciones[0]
    return {
        "vehiculo_id": principal["vehiculo_id"],
        "placa": principal["placa"],
        "flota": principal.get("flota"),
        "conductor_id": principal["conductor_id"],
        "conductor": principal.get("conductor_nombre"),
        "conductor_phone": principal.get("conductor_phone"),
    }


class SolicitudService:
    """Ciclo de vida de una solicitud de servicio: aceptación, ejecución y liquidación."""

    def __init__(
        self,
        db,
        flota_service: Optional[FlotaService] = None,
        asignacion_service: Optional[AsignacionService] = None,
        disponibilidad_service: Optional[DisponibilidadService] = None,
        contrato_service: Optional[ContratoService] = None,
        seccion_pagos_service: Optional[SeccionPagosService] = None,
        gasto_service: Optional[GastoService] = None,
        lugar_service: Optional[LugarService] = None,
        cliente_service: Optional[ClienteService] = None,
        dispatcher: Optional[NotificationDispatcher] = None
    ):
        self.db = db
        self.collection = db["solicitudes"]
        self.flota_service = flota_service or FlotaService(db)
        self.disponibilidad_service = disponibilidad_service or DisponibilidadService(db)
        self.asignacion_service = asignacion_service or AsignacionService(
            db, self.flota_service, self.disponibilidad_service
        )
        self.cliente_service = cliente_service or ClienteService(db)
        self.contrato_service = contrato_service or ContratoService(db, self.cliente_service)
        self.seccion_pagos_service = seccion_pagos_service or SeccionPagosService(db)
        self.gasto_service = gasto_service or GastoService(db, self.flota_service)
        self.lugar_service = lugar_service or LugarService(db)
        self.user_service = UserService(db)
        self.dispatcher = dispatcher or NotificationDispatcher(db)

    # ------------------------------------------------------------------
    # Utilidades internas
    # ------------------------------------------------------------------

    def _find(self, solicitud_id: str, company_id: Optional[str] = None) -> dict:
        if not solicitud_id or not ObjectId.is_valid(solicitud_id):
            raise NotFoundError("Solicitud no encontrada")

        solicitud = self.collection.find_one({"_id": ObjectId(solicitud_id)})
        if not solicitud or (company_id and solicitud.get("company_id") != company_id):
            raise NotFoundError("Solicitud no encontrada")
        return solicitud

    def _reload(self, solicitud: dict) -> dict:
        return self.collection.find_one({"_id": solicitud["_id"]})

    def _notificar_cliente(self, solicitud: dict, evento: EventoNotificacion) -> None:
        try:
            cliente = self.cliente_service.get_cliente_by_id(solicitud.get("cliente_id")) or {}
            destinatarios = [cliente.get("email"), solicitud.get("contacto_email")]
            notificar(self.dispatcher, evento, destinatarios, {
                "solicitud_id": str(solicitud["_id"]),
                "he": solicitud.get("he"),
                "cliente": cliente.get("nombre"),
                "fecha": solicitud["fecha"].strftime("%Y-%m-%d"),
                "hora_inicio": solicitud.get("hora_inicio")
            })
        except Exception as e:
            logger.warning(f"No se pudo preparar la notificación {evento}: {str(e)}")

    def _notificar_coordinadores(self, solicitud: dict) -> None:
        try:
            coordinadores = self.user_service.get_users_by_roles(
                solicitud["company_id"], [Rol.COORDINADOR.value, Rol.ADMIN.value]
            )
            notificar(
                self.dispatcher,
                EventoNotificacion.SOLICITUD_CREADA_CLIENTE,
                [u.get("email") for u in coordinadores],
                {
                    "solicitud_id": str(solicitud["_id"]),
                    "cliente": solicitud.get("cliente_nombre"),
                    "fecha": solicitud["fecha"].strftime("%Y-%m-%d"),
                    "hora_inicio": solicitud.get("hora_inicio"),
                    "origen": solicitud.get("origen"),
                    "destino": solicitud.get("destino"),
                    "n_pasajeros": solicitud.get("n_pasajeros")
                }
            )
        except Exception as e:
            logger.warning(f"No se pudo notificar a los coordinadores: {str(e)}")

    def _validar_contrato_cliente(self, contrato_id: str, solicitud: dict) -> dict:
        contrato = self.contrato_service.get_contrato(contrato_id, solicitud["company_id"])
        if contrato["client_id"] != solicitud["cliente_id"]:
            raise ValidationError("El contrato no pertenece al cliente de la solicitud")
        return contrato

    def _resolver_he(self, trabajo: dict, he: Optional[str], prefijo: Optional[str]) -> str:
        if he:
            query = {"company_id": trabajo["company_id"], "he": he}
            if trabajo.get("_id"):
                query["_id"] = {"$ne": trabajo["_id"]}
            if self.collection.find_one(query):
                raise ValidationError(f"El número HE {he} ya está en uso")
            return he

        if trabajo.get("he"):
            return trabajo["he"]

        return generate_he(
            self.db,
            trabajo["company_id"],
            prefijo or settings.HE_PREFIX_DEFAULT,
            settings.HE_LENGTH
        )

    def _planear_cargos(self, trabajo: dict, asignaciones: List[dict]) -> List[Tuple[str, float]]:
        """
        Cargos a descontar de contratos. Se cobran los montos por vehículo;
        si ninguno trae monto se usa el monto de la solicitud.
        """
        dentro = ChargeMode.WITHIN_CONTRACT.value
        por_vehiculo = [a for a in asignaciones if a["contract_charge_mode"] == dentro]
        solicitud_dentro = trabajo.get("contract_charge_mode") == dentro

        if not por_vehiculo and not solicitud_dentro:
            return []

        cargos: Dict[str, float] = {}
        if any(a["contract_charge_amount"] > 0 for a in por_vehiculo):
            for asignacion in por_vehiculo:
                if asignacion["contract_charge_amount"] <= 0:
                    raise ValidationError(
                        f"El vehículo {asignacion['placa']} cobra dentro de contrato sin un monto mayor a cero"
                    )
                if not asignacion.get("contract_id"):
                    raise ValidationError(f"El vehículo {asignacion['placa']} cobra dentro de contrato sin contrato asociado")
                contrato_id = asignacion["contract_id"]
                cargos[contrato_id] = round(cargos.get(contrato_id, 0) + asignacion["contract_charge_amount"], 2)
        elif solicitud_dentro and float(trabajo.get("contract_charge_amount") or 0) > 0:
            if not trabajo.get("contract_id"):
                raise ValidationError("Debe indicar el contrato para cobrar dentro del contrato")
            cargos[trabajo["contract_id"]] = float(trabajo["contract_charge_amount"])
        else:
            raise ValidationError("El cobro dentro del contrato requiere un monto mayor a cero")

        for contrato_id in cargos:
            self._validar_contrato_cliente(contrato_id, trabajo)

        return list(cargos.items())

    def _ejecutar_cargos(self, cargos: List[Tuple[str, float]], solicitud_id: str, actor: Actor,
                         he: Optional[str]) -> List[Tuple[str, float]]:
        realizados = []
        try:
            for contrato_id, monto in cargos:
                self.contrato_service.cargar_contrato(
                    contrato_id, monto,
                    solicitud_id=solicitud_id,
                    usuario=actor.id,
                    notas=f"Cargo por servicio {he or solicitud_id}"
                )
                realizados.append((contrato_id, monto))
        except Exception:
            self._revertir_cargos(realizados, solicitud_id, actor)
            raise
        return realizados

    def _revertir_cargos(self, realizados: List[Tuple[str, float]], solicitud_id: str, actor: Actor) -> None:
        for contrato_id, monto in realizados:
            try:
                self.contrato_service.revertir_cargo(
                    contrato_id, monto,
                    solicitud_id=solicitud_id,
                    usuario=actor.id,
                    notas="Reversión por fallo en la aceptación de la solicitud"
                )
            except Exception as e:
                logger.error(f"No se pudo revertir el cargo de {monto} en contrato {contrato_id}: {str(e)}")

    def _preparar_aceptacion(self, trabajo: dict, payload: dict, actor: Actor,
                             excluir_solicitud_id: Optional[str]) -> Tuple[dict, List[Tuple[str, float]]]:
        company_id = trabajo["company_id"]

        trabajo["contract_id"] = payload.get("contract_id") or trabajo.get("contract_id")
        trabajo["contract_charge_mode"] = payload.get("contract_charge_mode") or ChargeMode.NO_CONTRACT.value
        trabajo["contract_charge_amount"] = float(payload.get("contract_charge_amount") or 0)

        if payload.get("vehicle_assignments"):
            entradas = payload["vehicle_assignments"]
        else:
            entradas = [{
                "placa": payload.get("placa"),
                "conductor_id": payload.get("conductor_id"),
                "assigned_passengers": trabajo["n_pasajeros"]
            }]

        asignaciones = self.asignacion_service.confirmar(
            trabajo, entradas, ModoConfirmacion.EXACTO, company_id, excluir_solicitud_id
        )

        origen = payload.get("origen") or trabajo["origen"]
        destino = payload.get("destino") or trabajo["destino"]
        lugar_origen = self.lugar_service.resolve_lugar(origen, company_id)
        lugar_destino = self.lugar_service.resolve_lugar(destino, company_id)

        horas = payload.get("estimated_hours") if payload.get("estimated_hours") is not None else trabajo.get("estimated_hours")
        km = payload.get("estimated_km") if payload.get("estimated_km") is not None else trabajo.get("estimated_km")

        estimacion = {"pricing_mode": payload.get("pricing_mode"), "pricing_rate": None, "estimated_price": None}
        if trabajo["contract_id"]:
            contrato = self._validar_contrato_cliente(trabajo["contract_id"], trabajo)
            estimacion = estimar_desde_contrato(contrato, payload.get("pricing_mode"), horas, km)

        he = self._resolver_he(trabajo, payload.get("he"), payload.get("he_prefix"))
        cargos = self._planear_cargos(trabajo, asignaciones)

        campos = {
            "he": he,
            "origen": origen,
            "destino": destino,
            "origen_location_id": lugar_origen["id"],
            "destino_location_id": lugar_destino["id"],
            "estimated_hours": horas,
            "estimated_km": km,
            **estimacion,
            "contract_id": trabajo["contract_id"],
            "contract_charge_mode": trabajo["contract_charge_mode"],
            "contract_charge_amount": trabajo["contract_charge_amount"],
            "vehicle_assignments": asignaciones,
            **campos_principales(asignaciones),
            "cargos_contrato": [{"contract_id": c, "monto": m} for c, m in cargos],
            "status": StatusSolicitud.ACCEPTED.value,
            "service_status": ServiceStatus.NOT_STARTED.value,
            "approved_by": actor.id,
            "approved_at": datetime.now()
        }
        return campos, cargos

    def _liquidacion(self, solicitud: dict) -> Tuple[dict, Dict[str, float]]:
        solicitud_id = str(solicitud["_id"])
        gastos_por_vehiculo = self.gasto_service.gastos_por_vehiculo(solicitud_id)
        total_gastos = self.gasto_service.total_gastos(solicitud_id=solicitud_id)

        valor_a_facturar = float(solicitud.get("valor_a_facturar") or 0)
        valor_cancelado = float(solicitud.get("valor_cancelado") or 0)

        utilidad = round(valor_a_facturar - valor_cancelado - total_gastos, 2)
        porcentaje = round(utilidad / valor_a_facturar * 100, 2) if valor_a_facturar > 0 else 0

        campos = {
            "total_gastos_operacionales": total_gastos,
            "utilidad": utilidad,
            "porcentaje_utilidad": porcentaje,
            "accounting_status": self._estado_contable(solicitud, gastos_por_vehiculo)
        }
        return campos, gastos_por_vehiculo

    def _estado_contable(self, solicitud: dict, gastos_por_vehiculo: Dict[str, float]) -> str:
        estado = solicitud.get("accounting_status") or AccountingStatus.NO_INICIADO.value

        if float(solicitud.get("valor_a_facturar") or 0) > 0 and float(solicitud.get("valor_cancelado") or 0) > 0:
            estado = avanzar_accounting(estado, AccountingStatus.PENDIENTE_OPERACIONAL.value)

        asignaciones = solicitud.get("vehicle_assignments") or []
        if (
            estado == AccountingStatus.PENDIENTE_OPERACIONAL.value
            and asignaciones
            and all(a["vehiculo_id"] in gastos_por_vehiculo for a in asignaciones)
        ):
            estado = avanzar_accounting(estado, AccountingStatus.OPERACIONAL_COMPLETO.value)

        return estado

    # ------------------------------------------------------------------
    # Creación
    # ------------------------------------------------------------------

    def create_by_client(self, actor: Actor, payload: dict) -> dict:
        try:
            _requiere_rol(actor, [Rol.CLIENTE], "Solo un cliente puede registrar esta solicitud")
            if not actor.cliente_id:
                raise ForbiddenError("El usuario no está asociado a un cliente")

            cliente = self.cliente_service.get_cliente_by_id(actor.cliente_id)
            if not cliente:
                raise NotFoundError("Cliente no encontrado")

            parse_hora(payload["hora_inicio"])

            solicitud_model = Solicitud(
                company_id=cliente["company_id"],
                cliente_id=cliente["id"],
                cliente_nombre=cliente["nombre"],
                contacto_nombre=payload.get("contacto_nombre") or cliente.get("contacto_nombre") or actor.full_name,
                contacto_telefono=payload.get("contacto_telefono") or cliente.get("telefono"),
                contacto_email=actor.email,
                fecha=fecha_a_datetime(payload["fecha"]),
                hora_inicio=payload["hora_inicio"],
                origen=payload["origen"],
                destino=payload["destino"],
                descripcion=payload.get("descripcion"),
                n_pasajeros=payload["n_pasajeros"],
                tipo_vehiculo=payload.get("tipo_vehiculo"),
                estimated_km=payload.get("estimated_km"),
                estimated_hours=payload.get("estimated_hours"),
                created_by=actor.id
            )

            result = self.collection.insert_one(solicitud_model.model_dump())
            creada = self.collection.find_one({"_id": result.inserted_id})

            logger.info(f"Solicitud {result.inserted_id} registrada por el cliente {cliente['id']}")
            self._notificar_coordinadores(creada)
            return _serializar(creada)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al crear solicitud de cliente: {str(e)}")
            raise InternalError("No se pudo crear la solicitud")

    def create_by_coordinator(self, actor: Actor, payload: dict) -> dict:
        try:
            _requiere_rol(actor, ROLES_COORDINACION)

            cliente = self.cliente_service.get_cliente_by_id(payload["cliente_id"])
            if not cliente or cliente["company_id"] != actor.company_id:
                raise NotFoundError("Cliente no encontrado")

            parse_hora(payload["hora_inicio"])

            solicitud = Solicitud(
                company_id=actor.company_id,
                cliente_id=cliente["id"],
                cliente_nombre=cliente["nombre"],
                contacto_nombre=payload.get("contacto_nombre") or cliente.get("contacto_nombre"),
                contacto_telefono=payload.get("contacto_telefono") or cliente.get("telefono"),
                contacto_email=cliente.get("email"),
                fecha=fecha_a_datetime(payload["fecha"]),
                hora_inicio=payload["hora_inicio"],
                origen=payload["origen"],
                destino=payload["destino"],
                descripcion=payload.get("descripcion"),
                n_pasajeros=payload["n_pasajeros"],
                tipo_vehiculo=payload.get("tipo_vehiculo"),
                estimated_km=payload.get("estimated_km"),
                estimated_hours=payload.get("estimated_hours"),
                valor_a_facturar=payload.get("valor_a_facturar"),
                valor_cancelado=payload.get("valor_cancelado"),
                created_by=actor.id
            ).model_dump()
            solicitud["_id"] = ObjectId()
            solicitud_id = str(solicitud["_id"])

            campos, cargos = self._preparar_aceptacion(solicitud, payload, actor, None)
            solicitud.update(campos)
            if solicitud["valor_a_facturar"] is not None:
                solicitud.update({"assigned_sales_by": actor.id, "assigned_sales_at": datetime.now()})
            if solicitud["valor_cancelado"] is not None:
                solicitud.update({"assigned_costs_by": actor.id, "assigned_costs_at": datetime.now()})

            realizados = self._ejecutar_cargos(cargos, solicitud_id, actor, solicitud["he"])
            try:
                self.collection.insert_one(solicitud)
            except Exception:
                self._revertir_cargos(realizados, solicitud_id, actor)
                raise

            self.seccion_pagos_service.sync_from_assignments(solicitud, usuario=actor.id)
            creada = self.recalcular_liquidacion(solicitud_id)

            logger.info(f"Solicitud {solicitud['he']} creada y aceptada por {actor.id}")
            self._notificar_cliente(solicitud, EventoNotificacion.SOLICITUD_APROBADA)
            return creada

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al crear solicitud de coordinador: {str(e)}")
            raise InternalError("No se pudo crear la solicitud")

    # ------------------------------------------------------------------
    # Aprobación
    # ------------------------------------------------------------------

    def accept(self, solicitud_id: str, actor: Actor, payload: dict) -> dict:
        try:
            _requiere_rol(actor, ROLES_COORDINACION)
            solicitud = self._find(solicitud_id, actor.company_id)

            if solicitud["status"] != StatusSolicitud.PENDING.value:
                raise ValidationError("Solo se pueden aceptar solicitudes pendientes")

            trabajo = dict(solicitud)
            campos, cargos = self._preparar_aceptacion(trabajo, payload, actor, solicitud_id)
            realizados = self._ejecutar_cargos(cargos, solicitud_id, actor, campos["he"])

            result = self.collection.update_one(
                {"_id": solicitud["_id"], "status": StatusSolicitud.PENDING.value},
                {"$set": campos}
            )
            if result.modified_count == 0:
                self._revertir_cargos(realizados, solicitud_id, actor)
                raise ValidationError("La solicitud ya fue procesada por otro usuario")

            aceptada = self._reload(solicitud)
            self.seccion_pagos_service.sync_from_assignments(
                aceptada, self.gasto_service.gastos_por_vehiculo(solicitud_id), actor.id
            )

            logger.info(f"Solicitud {solicitud_id} aceptada con HE {campos['he']}")
            self._notificar_cliente(aceptada, EventoNotificacion.SOLICITUD_APROBADA)
            return _serializar(aceptada)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al aceptar solicitud: {str(e)}")
            raise InternalError("No se pudo aceptar la solicitud")

    def reject(self, solicitud_id: str, actor: Actor, motivo: Optional[str] = None) -> dict:
        try:
            _requiere_rol(actor, ROLES_COORDINACION)
            solicitud = self._find(solicitud_id, actor.company_id)

            if solicitud["status"] != StatusSolicitud.PENDING.value:
                raise ValidationError("Solo se pueden rechazar solicitudes pendientes")

            result = self.collection.update_one(
                {"_id": solicitud["_id"], "status": StatusSolicitud.PENDING.value},
                {"$set": {
                    "status": StatusSolicitud.REJECTED.value,
                    "rejected_by": actor.id,
                    "rejected_at": datetime.now(),
                    "motivo_rechazo": motivo
                }}
            )
            if result.modified_count == 0:
                raise ValidationError("La solicitud ya fue procesada por otro usuario")

            return _serializar(self._reload(solicitud))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al rechazar solicitud: {str(e)}")
            raise InternalError("No se pudo rechazar la solicitud")

    # ------------------------------------------------------------------
    # Asignación posterior a la sugerencia
    # ------------------------------------------------------------------

    def suggest_vehicles(self, solicitud_id: str, actor: Actor, seats_preferidos: Optional[int] = None) -> dict:
        try:
            solicitud = self._find(solicitud_id, actor.company_id)
            vehiculos = self.flota_service.list_vehiculos(solicitud["company_id"], solicitud.get("tipo_vehiculo"))
            return self.asignacion_service.sugerir(vehiculos, solicitud["n_pasajeros"], seats_preferidos)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al sugerir vehículos: {str(e)}")
            raise InternalError("No se pudo sugerir vehículos")

    def assign_multiple_vehicles(self, solicitud_id: str, actor: Actor, asignaciones: List[dict]) -> dict:
        try:
            _requiere_rol(actor, ROLES_COORDINACION)
            solicitud = self._find(solicitud_id, actor.company_id)

            if solicitud["status"] != StatusSolicitud.ACCEPTED.value:
                raise ValidationError("Solo se pueden asignar vehículos a solicitudes aceptadas")
            if solicitud["service_status"] in (ServiceStatus.STARTED.value, ServiceStatus.FINISHED.value):
                raise ValidationError("No se pueden reasignar vehículos de un servicio iniciado o finalizado")

            confirmadas = self.asignacion_service.confirmar(
                solicitud, asignaciones, ModoConfirmacion.CUBRIR, actor.company_id, solicitud_id
            )

            # Conserva los soportes contables de los vehículos que siguen asignados
            previas = {a["vehiculo_id"]: a for a in solicitud.get("vehicle_assignments") or []}
            for asignacion in confirmadas:
                previa = previas.get(asignacion["vehiculo_id"])
                if previa:
                    asignacion["accounting"] = previa.get("accounting") or accounting_vacio()
                    asignacion["contract_charge_amount"] = previa.get("contract_charge_amount", 0)

            campos = {
                "vehicle_assignments": confirmadas,
                **campos_principales(confirmadas),
                "assigned_vehicles_by": actor.id,
                "assigned_vehicles_at": datetime.now()
            }
            if solicitud["service_status"] == ServiceStatus.SIN_ASIGNACION.value:
                campos["service_status"] = ServiceStatus.NOT_STARTED.value

            self.collection.update_one({"_id": solicitud["_id"]}, {"$set": campos})
            actualizada = self._reload(solicitud)

            self.seccion_pagos_service.sync_from_assignments(
                actualizada, self.gasto_service.gastos_por_vehiculo(solicitud_id), actor.id
            )
            return self.recalcular_liquidacion(solicitud_id)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al asignar vehículos: {str(e)}")
            raise InternalError("No se pudo asignar los vehículos")

    # ------------------------------------------------------------------
    # Ejecución
    # ------------------------------------------------------------------

    def start(self, solicitud_id: str, actor: Actor) -> dict:
        try:
            _requiere_rol(actor, ROLES_INICIO_SERVICIO, "No tienes permisos para iniciar el servicio")
            solicitud = self._find(solicitud_id, actor.company_id)

            if solicitud["status"] != StatusSolicitud.ACCEPTED.value:
                raise ValidationError("La solicitud debe estar aceptada para iniciar el servicio")
            if solicitud["service_status"] == ServiceStatus.STARTED.value:
                raise ValidationError("El servicio ya fue iniciado")
            if solicitud["service_status"] == ServiceStatus.FINISHED.value:
                raise ValidationError("El servicio ya finalizó")
            if solicitud["service_status"] != ServiceStatus.NOT_STARTED.value:
                raise ValidationError("La solicitud no tiene vehículos asignados")

            conflictos = self.disponibilidad_service.conflictos_en_ejecucion(solicitud)
            if conflictos:
                referencias = ", ".join(c.he or c.solicitud_id for c in conflictos)
                raise ValidationError(
                    f"El vehículo o el conductor ya están en un servicio iniciado: {referencias}"
                )

            result = self.collection.update_one(
                {"_id": solicitud["_id"], "service_status": ServiceStatus.NOT_STARTED.value},
                {"$set": {
                    "service_status": ServiceStatus.STARTED.value,
                    "started_by": actor.id,
                    "started_at": datetime.now()
                }}
            )
            if result.modified_count == 0:
                raise ValidationError("El servicio ya fue iniciado")

            logger.info(f"Servicio {solicitud.get('he')} iniciado por {actor.id}")
            return _serializar(self._reload(solicitud))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al iniciar servicio: {str(e)}")
            raise InternalError("No se pudo iniciar el servicio")

    def finish(self, solicitud_id: str, actor: Actor, payload: dict) -> dict:
        try:
            _requiere_rol(actor, ROLES_INICIO_SERVICIO, "No tienes permisos para finalizar el servicio")
            solicitud = self._find(solicitud_id, actor.company_id)

            if solicitud["service_status"] != ServiceStatus.STARTED.value:
                raise ValidationError("Solo se pueden finalizar servicios iniciados")
            if not payload.get("hora_final"):
                raise ValidationError("La hora final es requerida")

            minutos_final = parse_hora(payload["hora_final"])
            minutos_inicio = parse_hora(solicitud["hora_inicio"])

            fecha_final = fecha_a_datetime(payload.get("fecha_final") or solicitud["fecha"])
            inicio = solicitud["fecha"].replace(hour=minutos_inicio // 60, minute=minutos_inicio % 60)
            final = fecha_final.replace(hour=minutos_final // 60, minute=minutos_final % 60)

            if final < inicio:
                raise ValidationError("La fecha y hora final no pueden ser anteriores al inicio del servicio")

            total_horas = round((final - inicio).total_seconds() / 3600, 2)
            finalizada = {
                **solicitud,
                "hora_final": payload["hora_final"],
                "fecha_final": fecha_final,
                "total_horas": total_horas
            }

            # La liquidación se calcula antes de persistir la transición
            liquidacion, gastos_por_vehiculo = self._liquidacion(finalizada)
            finalizada.update(liquidacion)
            self.seccion_pagos_service.recalcular(finalizada, gastos_por_vehiculo)

            result = self.collection.update_one(
                {"_id": solicitud["_id"], "service_status": ServiceStatus.STARTED.value},
                {"$set": {
                    "service_status": ServiceStatus.FINISHED.value,
                    "hora_final": payload["hora_final"],
                    "fecha_final": fecha_final,
                    "total_horas": total_horas,
                    "finished_by": actor.id,
                    "finished_at": datetime.now(),
                    **liquidacion
                }}
            )
            if result.modified_count == 0:
                raise ValidationError("El servicio ya fue finalizado")

            logger.info(f"Servicio {solicitud.get('he')} finalizado: {total_horas} horas")
            return _serializar(self._reload(solicitud))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al finalizar servicio: {str(e)}")
            raise InternalError("No se pudo finalizar el servicio")

    # ------------------------------------------------------------------
    # Liquidación
    # ------------------------------------------------------------------

    def recalcular_liquidacion(self, solicitud_id: str) -> dict:
        try:
            solicitud = self._find(solicitud_id)
            liquidacion, gastos_por_vehiculo = self._liquidacion(solicitud)

            self.collection.update_one({"_id": solicitud["_id"]}, {"$set": liquidacion})
            actualizada = self._reload(solicitud)

            if actualizada.get("vehicle_assignments"):
                self.seccion_pagos_service.recalcular(actualizada, gastos_por_vehiculo)

            return _serializar(actualizada)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al recalcular liquidación: {str(e)}")
            raise InternalError("No se pudo recalcular la liquidación")

    def set_financial_values(self, solicitud_id: str, actor: Actor, valor_a_facturar: float) -> dict:
        try:
            _requiere_rol(actor, ROLES_COMERCIAL, "Solo comercial puede asignar el valor a facturar")
            solicitud = self._find(solicitud_id, actor.company_id)

            if solicitud["status"] != StatusSolicitud.ACCEPTED.value:
                raise ValidationError("La solicitud debe estar aceptada")
            if valor_a_facturar is None or valor_a_facturar < 0:
                raise ValidationError("El valor a facturar no puede ser negativo")

            self.collection.update_one({"_id": solicitud["_id"]}, {"$set": {
                "valor_a_facturar": valor_a_facturar,
                "assigned_sales_by": actor.id,
                "assigned_sales_at": datetime.now()
            }})
            return self.recalcular_liquidacion(solicitud_id)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al asignar valor a facturar: {str(e)}")
            raise InternalError("No se pudo asignar el valor a facturar")

    def set_costs(self, solicitud_id: str, actor: Actor, valor_cancelado: float) -> dict:
        try:
            _requiere_rol(actor, ROLES_COORDINACION, "Solo coordinación puede asignar el valor cancelado")
            solicitud = self._find(solicitud_id, actor.company_id)

            if solicitud["status"] != StatusSolicitud.ACCEPTED.value:
                raise ValidationError("La solicitud debe estar aceptada")
            if valor_cancelado is None or valor_cancelado < 0:
                raise ValidationError("El valor cancelado no puede ser negativo")

            self.collection.update_one({"_id": solicitud["_id"]}, {"$set": {
                "valor_cancelado": valor_cancelado,
                "assigned_costs_by": actor.id,
                "assigned_costs_at": datetime.now()
            }})
            return self.recalcular_liquidacion(solicitud_id)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al asignar valor cancelado: {str(e)}")
            raise InternalError("No se pudo asignar el valor cancelado")

    def verify_operationals(self, solicitud_id: str, company_id: Optional[str] = None) -> dict:
        solicitud = self._find(solicitud_id, company_id)
        gastos_por_vehiculo = self.gasto_service.gastos_por_vehiculo(solicitud_id)

        vehiculos = [
            {
                "vehiculo_id": a["vehiculo_id"],
                "placa": a["placa"],
                "tiene_gastos": a["vehiculo_id"] in gastos_por_vehiculo,
                "total_gastos": gastos_por_vehiculo.get(a["vehiculo_id"], 0)
            }
            for a in solicitud.get("vehicle_assignments") or []
        ]
        faltantes = [v["placa"] for v in vehiculos if not v["tiene_gastos"]]

        return {
            "solicitud_id": solicitud_id,
            "completo": bool(vehiculos) and not faltantes,
            "vehiculos": vehiculos,
            "faltantes": faltantes
        }

    def update_financial_data(self, solicitud_id: str, actor: Actor, cambios: dict) -> dict:
        try:
            _requiere_rol(actor, ROLES_CONTABILIDAD + [Rol.COORDINADOR])
            solicitud = self._find(solicitud_id, actor.company_id)

            cambios = {k: v for k, v in cambios.items() if v is not None}
            if not cambios:
                raise ValidationError("No hay datos para actualizar")

            self.collection.update_one({"_id": solicitud["_id"]}, {"$set": cambios})
            return _serializar(self._reload(solicitud))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al actualizar datos financieros: {str(e)}")
            raise InternalError("No se pudo actualizar la información financiera")

    def update_assignment_accounting(self, solicitud_id: str, vehiculo_id: str, actor: Actor, cambios: dict) -> dict:
        try:
            _requiere_rol(actor, ROLES_CONTABILIDAD)
            solicitud = self._find(solicitud_id, actor.company_id)

            asignaciones = solicitud.get("vehicle_assignments") or []
            objetivo = next((a for a in asignaciones if a["vehiculo_id"] == vehiculo_id), None)
            if objetivo is None:
                raise NotFoundError("El vehículo no está asignado a la solicitud")

            accounting = {**accounting_vacio(), **(objetivo.get("accounting") or {})}
            accounting.update(cambios)

            factura = cambios.get("factura") or {}
            if factura.get("numero"):
                faltantes = []
                for asignacion in asignaciones:
                    datos = accounting if asignacion is objetivo else (asignacion.get("accounting") or {})
                    if not datos.get("prefactura") or not datos.get("preliquidacion"):
                        faltantes.append(asignacion["placa"])
                if faltantes:
                    raise ValidationError(
                        "Para asignar la factura todos los vehículos deben tener prefactura y "
                        f"preliquidación. Vehículos pendientes: {', '.join(faltantes)}"
                    )

            objetivo["accounting"] = accounting
            campos = {"vehicle_assignments": asignaciones}

            facturados = all(((a.get("accounting") or {}).get("factura") or {}).get("numero") for a in asignaciones)
            if factura.get("numero") and facturados:
                campos.update({
                    "accounting_status": AccountingStatus.FACTURADO.value,
                    "n_factura": factura["numero"],
                    "invoiced_by": actor.id,
                    "invoiced_at": datetime.now()
                })

            self.collection.update_one({"_id": solicitud["_id"]}, {"$set": campos})
            return _serializar(self._reload(solicitud))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al actualizar contabilidad del vehículo: {str(e)}")
            raise InternalError("No se pudo actualizar la contabilidad del vehículo")

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def get_solicitud(self, solicitud_id: str, actor: Actor) -> dict:
        try:
            solicitud = self._find(solicitud_id, actor.company_id)

            if actor.role == Rol.CLIENTE and solicitud.get("cliente_id") != actor.cliente_id:
                raise ForbiddenError("La solicitud no pertenece a tu organización")
            if actor.role == Rol.CONDUCTOR:
                conductores = {solicitud.get("conductor_id")}
                conductores.update(a.get("conductor_id") for a in solicitud.get("vehicle_assignments") or [])
                if actor.id not in conductores:
                    raise ForbiddenError("No estás asignado a esta solicitud")

            return proyectar_solicitud(_serializar(solicitud), actor.role)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al obtener solicitud: {str(e)}")
            raise InternalError("No se pudo obtener la solicitud")

    def list_solicitudes(self, actor: Actor, filtros: Optional[dict] = None, page: int = 1, page_size: int = 10) -> dict:
        try:
            if page < 1 or page_size < 1:
                raise ValidationError("La página y su tamaño deben ser mayores a cero")

            filtros = filtros or {}
            query = {"company_id": actor.company_id}

            if actor.role == Rol.CLIENTE:
                query["cliente_id"] = actor.cliente_id
            elif actor.role == Rol.CONDUCTOR:
                query["$or"] = [
                    {"conductor_id": actor.id},
                    {"vehicle_assignments.conductor_id": actor.id}
                ]
            elif filtros.get("cliente_id"):
                query["cliente_id"] = filtros["cliente_id"]

            for campo in ("status", "service_status", "accounting_status"):
                if filtros.get(campo):
                    query[campo] = filtros[campo]

            if filtros.get("he"):
                query["he"] = {"$regex": re.escape(filtros["he"].strip()), "$options": "i"}

            rango = {}
            if filtros.get("fecha_desde"):
                rango["$gte"] = fecha_a_datetime(filtros["fecha_desde"])
            if filtros.get("fecha_hasta"):
                rango["$lte"] = fecha_a_datetime(filtros["fecha_hasta"])
            if rango:
                query["fecha"] = rango

            total = self.collection.count_documents(query)
            skip = (page - 1) * page_size

            solicitudes = list(
                self.collection.find(query)
                .sort([("fecha", -1), ("hora_inicio", -1)])
                .skip(skip)
                .limit(page_size)
            )

            total_pages = ceil(total / page_size) if total > 0 else 0
            return {
                "items": [proyectar_solicitud(_serializar(s), actor.role) for s in solicitudes],
                "total": total,
                "page": page,
                "page_size": page_size,
                "total_pages": total_pages,
                "has_next": page < total_pages,
                "has_prev": page > 1
            }

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al listar solicitudes: {str(e)}")
            raise InternalError("No se pudieron listar las solicitudes")
