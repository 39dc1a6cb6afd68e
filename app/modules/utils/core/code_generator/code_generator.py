from typing import Optional
from pymongo import ReturnDocument
from pymongo.collection import Collection
from app.core.exceptions import ValidationError


def generate_sequential_code(
    *,
    counters_collection: Collection,
    target_collection: Collection,
    sequence_name: str,
    field_name: str,
    prefix: str = "",
    length: int = 6,
    scope: Optional[dict] = None
) -> str:
    """
    Genera códigos como:
    HE-000001
    LUG-000123

    ``scope`` restringe la verificación de duplicados (p. ej. por empresa).
    """

    # Incremento atómico del contador
    counter = counters_collection.find_one_and_update(
        {"_id": sequence_name},
        {
            "$inc": {"seq": 1},
            "$setOnInsert": {"prefix": prefix}
        },
        upsert=True,
        return_document=ReturnDocument.AFTER
    )

    seq_number = counter["seq"]

    numeric_part = str(seq_number).zfill(length)
    code = f"{prefix}{numeric_part}"

    query = {field_name: code}
    if scope:
        query.update(scope)
    if target_collection.find_one(query):
        raise ValidationError(f"Código duplicado detectado: {code}")

    return code


def generate_he(db, company_id: str, prefix: str, length: int) -> str:
    """Número HE: secuencia independiente por empresa y por prefijo."""
    return generate_sequential_code(
        counters_collection=db["counters"],
        target_collection=db["solicitudes"],
        sequence_name=f"he:{company_id}:{prefix}",
        field_name="he",
        prefix=prefix,
        length=length,
        scope={"company_id": company_id}
    )
