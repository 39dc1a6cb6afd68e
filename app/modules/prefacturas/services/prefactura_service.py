import re
from datetime import datetime
from typing import List, Optional
from bson import ObjectId
from app.core.exceptions import (
    ForbiddenError, InternalError, NotFoundError, ServiceError, ValidationError
)
from app.modules.auth.schemas.actor import Actor, Rol
from app.modules.gastos.service import GastoService
from app.modules.notificaciones.model import EventoNotificacion
from app.modules.notificaciones.service import NotificationDispatcher, notificar
from app.modules.clientes.service import ClienteService
from app.modules.prefacturas.models.prefactura import (
    EstadoPrefactura, EventoPrefactura, HistorialPrefactura, Prefactura
)
from app.modules.solicitudes.views import proyectar_solicitud
from app.modules.solicitudes.models.solicitud import (
    AccountingStatus, StatusSolicitud, avanzar_accounting
)
import logging

logger = logging.getLogger(__name__)

ROLES_PREFACTURA = [Rol.CONTABILIDAD, Rol.COMERCIAL, Rol.ADMIN, Rol.SUPERADMIN]


def clean_client_name(nombre: str) -> str:
    limpio = (nombre or "").strip().upper()
    limpio = re.sub(r"\s+", "_", limpio)
    limpio = re.sub(r"[^A-Z0-9_]", "", limpio)
    limpio = re.sub(r"_+", "_", limpio)
    return limpio.strip("_")


def _clave_natural(valor: str):
    return [int(t) if t.isdigit() else t for t in re.split(r"(\d+)", valor or "")]


def build_numero(secuencias: List[str], cliente_nombre: str, prefijo: str = "PREF") -> str:
    """
    {prefijo}_{he}_{CLIENTE} para una solicitud y {prefijo}_MULTI_{min}-{max}_{CLIENTE}
    para varias. El rango usa orden natural, que coincide con el orden de
    texto cuando los HE tienen ceros a la izquierda.
    """
    nombre = clean_client_name(cliente_nombre)
    if len(secuencias) == 1:
        return f"{prefijo}_{secuencias[0]}_{nombre}"

    ordenadas = sorted(secuencias, key=_clave_natural)
    return f"{prefijo}_MULTI_{ordenadas[0]}-{ordenadas[-1]}_{nombre}"


class PrefacturaService:
    def __init__(
        self,
        db,
        gasto_service: Optional[GastoService] = None,
        cliente_service: Optional[ClienteService] = None,
        dispatcher: Optional[NotificationDispatcher] = None
    ):
        self.db = db
        self.solicitudes = db["solicitudes"]
        self.historial = db["prefactura_historial"]
        self.gasto_service = gasto_service or GastoService(db)
        self.cliente_service = cliente_service or ClienteService(db)
        self.dispatcher = dispatcher or NotificationDispatcher(db)

    def _find(self, solicitud_id: str, company_id: Optional[str] = None) -> dict:
        if not solicitud_id or not ObjectId.is_valid(solicitud_id):
            raise NotFoundError("Solicitud no encontrada")

        solicitud = self.solicitudes.find_one({"_id": ObjectId(solicitud_id)})
        if not solicitud or (company_id and solicitud.get("company_id") != company_id):
            raise NotFoundError(f"Solicitud {solicitud_id} no encontrada")
        return solicitud

    def _prefactura(self, solicitud: dict) -> dict:
        prefactura = solicitud.get("prefactura")
        if not prefactura or not prefactura.get("numero"):
            raise ValidationError("La solicitud no tiene prefactura generada")
        return prefactura

    def _registrar(self, solicitud: dict, tipo: EventoPrefactura, usuario: Optional[str],
                   estado: Optional[str], notas: Optional[str] = None) -> None:
        entrada = HistorialPrefactura(
            solicitud_id=str(solicitud["_id"]),
            numero=solicitud["prefactura"]["numero"],
            tipo=tipo,
            usuario=usuario,
            estado_resultante=estado,
            notas=notas
        )
        self.historial.insert_one(entrada.model_dump())

    def _actualizar(self, solicitud: dict, campos: dict) -> dict:
        self.solicitudes.update_one({"_id": solicitud["_id"]}, {"$set": campos})
        actualizada = self.solicitudes.find_one({"_id": solicitud["_id"]})
        actualizada["id"] = str(actualizada.pop("_id"))
        return actualizada

    def _validar_generacion(self, solicitud: dict) -> None:
        he = solicitud.get("he") or str(solicitud["_id"])

        if solicitud.get("status") != StatusSolicitud.ACCEPTED.value:
            raise ValidationError(f"La solicitud {he} no está aceptada")

        if solicitud.get("valor_a_facturar") is None or solicitud.get("valor_cancelado") is None:
            raise ValidationError(
                f"La solicitud {he} debe tener valor a facturar y valor cancelado definidos"
            )

        prefactura = solicitud.get("prefactura")
        if prefactura and prefactura.get("numero") and not prefactura.get("rechazada"):
            raise ValidationError(f"La solicitud {he} ya tiene la prefactura {prefactura['numero']}")

        asignaciones = solicitud.get("vehicle_assignments") or []
        if not asignaciones:
            raise ValidationError(f"La solicitud {he} no tiene vehículos asignados")

        gastos_por_vehiculo = self.gasto_service.gastos_por_vehiculo(str(solicitud["_id"]))
        faltantes = [a["placa"] for a in asignaciones if a["vehiculo_id"] not in gastos_por_vehiculo]
        if faltantes:
            raise ValidationError(
                f"Faltan gastos operacionales en la solicitud {he} para los vehículos: {', '.join(faltantes)}"
            )

    def _campos_generacion(self, solicitud: dict, prefactura: Prefactura, actor: Actor) -> dict:
        return {
            "prefactura": prefactura.model_dump(),
            "accounting_status": avanzar_accounting(
                solicitud.get("accounting_status"), AccountingStatus.PREFACTURA_PENDIENTE.value
            ),
            "generated_prefactura_by": actor.id,
            "generated_prefactura_at": prefactura.fecha_generacion
        }

    def generate(self, solicitud_id: str, actor: Actor) -> dict:
        try:
            if actor.role not in ROLES_PREFACTURA:
                raise ForbiddenError("No tienes permisos para generar prefacturas")

            solicitud = self._find(solicitud_id, actor.company_id)
            self._validar_generacion(solicitud)

            prefactura = Prefactura(
                numero=build_numero([solicitud.get("he") or str(solicitud["_id"])], solicitud.get("cliente_nombre")),
                generada_por=actor.id,
                solicitudes=[solicitud_id]
            )
            actualizada = self._actualizar(solicitud, self._campos_generacion(solicitud, prefactura, actor))

            solicitud["prefactura"] = actualizada["prefactura"]
            self._registrar(solicitud, EventoPrefactura.GENERADA, actor.id, prefactura.estado)
            logger.info(f"Prefactura {prefactura.numero} generada")
            return actualizada

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al generar prefactura: {str(e)}")
            raise InternalError("No se pudo generar la prefactura")

    def generate_multiple(self, solicitud_ids: List[str], actor: Actor) -> List[dict]:
        try:
            if actor.role not in ROLES_PREFACTURA:
                raise ForbiddenError("No tienes permisos para generar prefacturas")
            if len(set(solicitud_ids)) < 2:
                raise ValidationError("La prefactura múltiple requiere al menos dos solicitudes distintas")

            solicitudes = [self._find(sid, actor.company_id) for sid in dict.fromkeys(solicitud_ids)]

            clientes = {s.get("cliente_id") for s in solicitudes}
            if len(clientes) > 1:
                raise ValidationError("Todas las solicitudes deben pertenecer al mismo cliente")

            for solicitud in solicitudes:
                self._validar_generacion(solicitud)

            prefactura = Prefactura(
                numero=build_numero(
                    [s.get("he") or str(s["_id"]) for s in solicitudes],
                    solicitudes[0].get("cliente_nombre")
                ),
                generada_por=actor.id,
                solicitudes=[str(s["_id"]) for s in solicitudes]
            )

            actualizadas = []
            for solicitud in solicitudes:
                actualizada = self._actualizar(solicitud, self._campos_generacion(solicitud, prefactura, actor))
                solicitud["prefactura"] = actualizada["prefactura"]
                self._registrar(solicitud, EventoPrefactura.GENERADA, actor.id, prefactura.estado)
                actualizadas.append(actualizada)

            logger.info(f"Prefactura {prefactura.numero} generada para {len(actualizadas)} solicitudes")
            return actualizadas

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al generar prefactura múltiple: {str(e)}")
            raise InternalError("No se pudo generar la prefactura")

    def _aprobar(self, solicitud: dict, actor: Actor, reenviar: bool, notas: Optional[str],
                 evento: EventoPrefactura) -> dict:
        prefactura = self._prefactura(solicitud)

        if prefactura.get("rechazada"):
            raise ValidationError("La prefactura fue rechazada; debe generarse nuevamente")

        if prefactura.get("aprobada"):
            if not reenviar:
                raise ValidationError("La prefactura ya fue aprobada")
            self._registrar(solicitud, EventoPrefactura.REENVIO_APROBACION, actor.id, prefactura.get("estado"), notas)
            actualizada = dict(solicitud)
            actualizada["id"] = str(actualizada.pop("_id"))
            return actualizada

        ahora = datetime.now()
        campos = {
            "prefactura.aprobada": True,
            "prefactura.estado": EstadoPrefactura.ACEPTADA.value,
            "prefactura.aprobada_por": actor.id,
            "prefactura.fecha_aprobacion": ahora,
            "accounting_status": avanzar_accounting(
                solicitud.get("accounting_status"), AccountingStatus.LISTO_PARA_FACTURACION.value
            )
        }
        actualizada = self._actualizar(solicitud, campos)
        self._registrar(solicitud, evento, actor.id, EstadoPrefactura.ACEPTADA.value, notas)
        return actualizada

    def _rechazar(self, solicitud: dict, actor: Actor, notas: Optional[str], evento: EventoPrefactura) -> dict:
        prefactura = self._prefactura(solicitud)

        if solicitud.get("accounting_status") == AccountingStatus.FACTURADO.value:
            raise ValidationError("La solicitud ya fue facturada")
        if prefactura.get("rechazada"):
            raise ValidationError("La prefactura ya fue rechazada")

        campos = {
            "prefactura.aprobada": False,
            "prefactura.rechazada": True,
            "prefactura.estado": EstadoPrefactura.RECHAZADA.value,
            "prefactura.rechazada_por": actor.id,
            "prefactura.fecha_rechazo": datetime.now(),
            # Se devuelve para permitir generar una nueva prefactura
            "accounting_status": AccountingStatus.OPERACIONAL_COMPLETO.value
        }
        actualizada = self._actualizar(solicitud, campos)
        self._registrar(solicitud, evento, actor.id, EstadoPrefactura.RECHAZADA.value, notas)
        return actualizada

    def approve(self, solicitud_id: str, actor: Actor, reenviar: bool = False, notas: Optional[str] = None) -> dict:
        try:
            if actor.role not in ROLES_PREFACTURA:
                raise ForbiddenError("No tienes permisos para aprobar prefacturas")
            solicitud = self._find(solicitud_id, actor.company_id)
            return self._aprobar(solicitud, actor, reenviar, notas, EventoPrefactura.APROBADA)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al aprobar prefactura: {str(e)}")
            raise InternalError("No se pudo aprobar la prefactura")

    def reject(self, solicitud_id: str, actor: Actor, notas: Optional[str] = None) -> dict:
        try:
            if actor.role not in ROLES_PREFACTURA:
                raise ForbiddenError("No tienes permisos para rechazar prefacturas")
            solicitud = self._find(solicitud_id, actor.company_id)
            return self._rechazar(solicitud, actor, notas, EventoPrefactura.RECHAZADA)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al rechazar prefactura: {str(e)}")
            raise InternalError("No se pudo rechazar la prefactura")

    def send_to_client(self, solicitud_id: str, actor: Actor, notas: Optional[str] = None) -> dict:
        try:
            if actor.role not in ROLES_PREFACTURA:
                raise ForbiddenError("No tienes permisos para enviar prefacturas")

            solicitud = self._find(solicitud_id, actor.company_id)
            prefactura = self._prefactura(solicitud)

            actualizada = self._actualizar(solicitud, {
                "prefactura.enviada_al_cliente": True,
                "prefactura.fecha_envio": datetime.now(),
                "prefactura.enviada_por": actor.id
            })
            self._registrar(solicitud, EventoPrefactura.ENVIADA, actor.id, prefactura.get("estado"), notas)

            try:
                cliente = self.cliente_service.get_cliente_by_id(solicitud.get("cliente_id")) or {}
                notificar(
                    self.dispatcher,
                    EventoNotificacion.PREFACTURA_ENVIADA,
                    [cliente.get("email"), solicitud.get("contacto_email")],
                    {"solicitud_id": solicitud_id, "he": solicitud.get("he"), "numero": prefactura["numero"]}
                )
            except Exception as e:
                logger.warning(f"No se pudo notificar el envío de la prefactura: {str(e)}")

            return actualizada

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al enviar prefactura: {str(e)}")
            raise InternalError("No se pudo enviar la prefactura")

    def _find_para_cliente(self, solicitud_id: str, actor: Actor) -> dict:
        if actor.role != Rol.CLIENTE:
            raise ForbiddenError("Solo el cliente puede responder la prefactura")

        solicitud = self._find(solicitud_id)
        if not actor.cliente_id or solicitud.get("cliente_id") != actor.cliente_id:
            raise ForbiddenError("La solicitud no pertenece a tu organización")

        prefactura = self._prefactura(solicitud)
        if not prefactura.get("enviada_al_cliente"):
            raise ValidationError("La prefactura no ha sido enviada al cliente")
        return solicitud

    def client_approve(self, solicitud_id: str, actor: Actor, notas: Optional[str] = None) -> dict:
        try:
            solicitud = self._find_para_cliente(solicitud_id, actor)
            aprobada = self._aprobar(solicitud, actor, False, notas, EventoPrefactura.APROBADA_CLIENTE)
            return proyectar_solicitud(aprobada, actor.role)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al aprobar prefactura por cliente: {str(e)}")
            raise InternalError("No se pudo aprobar la prefactura")

    def client_reject(self, solicitud_id: str, actor: Actor, notas: Optional[str] = None) -> dict:
        try:
            solicitud = self._find_para_cliente(solicitud_id, actor)
            rechazada = self._rechazar(solicitud, actor, notas, EventoPrefactura.RECHAZADA_CLIENTE)
            return proyectar_solicitud(rechazada, actor.role)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al rechazar prefactura por cliente: {str(e)}")
            raise InternalError("No se pudo rechazar la prefactura")

    def get_historial(self, solicitud_id: str) -> List[dict]:
        entradas = []
        for entrada in self.historial.find({"solicitud_id": solicitud_id}).sort([("fecha", 1), ("_id", 1)]):
            entrada["id"] = str(entrada.pop("_id"))
            entradas.append(entrada)
        return entradas

    def get_historial_envios(self, solicitud_id: str) -> List[dict]:
        return [e for e in self.get_historial(solicitud_id) if e["tipo"] == EventoPrefactura.ENVIADA.value]
