"""
Proyecciones de una solicitud según el rol de quien la consulta.

Cada función construye un diccionario nuevo; el documento almacenado nunca
se modifica.
"""
from copy import deepcopy
from app.modules.auth.schemas.actor import Rol

CAMPOS_COSTO = {
    "valor_cancelado",
    "total_gastos_operacionales",
    "utilidad",
    "porcentaje_utilidad",
    "doc_soporte",
    "fecha_cancelado",
    "n_egreso",
    "assigned_costs_by",
    "assigned_costs_at",
}

CAMPOS_CONTRATO = {
    "contract_charge_mode",
    "contract_charge_amount",
    "pricing_rate",
    "cargos_contrato",
}

CAMPOS_FACTURACION = {
    "valor_a_facturar",
    "estimated_price",
    "pricing_mode",
    "contract_id",
    "accounting_status",
    "prefactura",
    "n_factura",
    "assigned_sales_by",
    "assigned_sales_at",
    "generated_prefactura_by",
    "generated_prefactura_at",
}

CAMPOS_ASIGNACION_PRIVADOS = {
    "contract_id",
    "contract_charge_mode",
    "contract_charge_amount",
    "accounting",
    "owner",
}

CAMPOS_PREFACTURA_CLIENTE = ("numero", "estado", "enviada_al_cliente", "fecha_envio", "fecha_generacion")


def _sin(documento: dict, excluidos: set) -> dict:
    return {k: deepcopy(v) for k, v in documento.items() if k not in excluidos}


def vista_completa(solicitud: dict) -> dict:
    return deepcopy(solicitud)


def vista_conductor(solicitud: dict) -> dict:
    vista = _sin(solicitud, CAMPOS_COSTO | CAMPOS_CONTRATO | CAMPOS_FACTURACION)
    vista["vehicle_assignments"] = [
        _sin(a, CAMPOS_ASIGNACION_PRIVADOS) for a in solicitud.get("vehicle_assignments") or []
    ]
    return vista


def vista_cliente(solicitud: dict) -> dict:
    vista = _sin(solicitud, CAMPOS_COSTO | CAMPOS_CONTRATO | {"assigned_sales_by", "generated_prefactura_by"})
    vista["vehicle_assignments"] = [
        _sin(a, CAMPOS_ASIGNACION_PRIVADOS) for a in solicitud.get("vehicle_assignments") or []
    ]

    prefactura = solicitud.get("prefactura")
    vista["prefactura"] = (
        {k: prefactura.get(k) for k in CAMPOS_PREFACTURA_CLIENTE} if prefactura else None
    )
    return vista


def proyectar_solicitud(solicitud: dict, rol: Rol) -> dict:
    rol = Rol(rol)
    if rol == Rol.CONDUCTOR:
        return vista_conductor(solicitud)
    if rol == Rol.CLIENTE:
        return vista_cliente(solicitud)
    return vista_completa(solicitud)
