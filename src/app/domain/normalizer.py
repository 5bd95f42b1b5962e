"""Normalizer: converte documentos brutos de email em EmailRecord.

Transformação pura e tolerante: timestamps malformados viram None (ou
"agora" quando o campo é obrigatório), nunca exceção. Normalizar um
registro já normalizado não altera nada.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from app.domain.email_record import INBOUND_PROVIDERS, EmailRecord

logger = logging.getLogger(__name__)

_EPOCH_MS_PATTERN = re.compile(r"^\d{10,}$")

_TIMESTAMP_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "sentAt": "sent_at",
    "receivedAt": "received_at",
    "generatedAt": "generated_at",
}

# Campos calculados aqui; o valor bruto do produtor é descartado.
_MANAGED_KEYS = frozenset(
    {
        "id",
        *_TIMESTAMP_FIELDS,
        "scheduledSendTime",
        "timestamp",
        "date",
        "type",
        "emailType",
        "status",
        "provider",
        "ownerId",
        "assignedTo",
        "starred",
        "deleted",
        "isSentEmail",
    }
)


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _now_iso() -> str:
    return _iso(datetime.now(UTC))


def ts_to_iso(value: Any) -> str | None:
    """Converte timestamp (datetime, string ISO, epoch ms) para string ISO.

    Strings passam inalteradas. Qualquer outra coisa vira None.
    """
    try:
        if value is None or value == "" or isinstance(value, bool):
            return None
        if isinstance(value, datetime):
            return _iso(value)
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)):
            return _iso(datetime.fromtimestamp(value / 1000, tz=UTC))
        return None
    except (OverflowError, OSError, ValueError):
        return None


def ts_to_ms(value: Any) -> int | None:
    """Converte timestamp para epoch em milissegundos (comparação numérica)."""
    try:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return int(value)
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=UTC)
            return int(value.timestamp() * 1000)
        if isinstance(value, str):
            text = value.strip()
            if _EPOCH_MS_PATTERN.match(text):
                return int(text)
            if not text:
                return None
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return int(parsed.timestamp() * 1000)
        return None
    except (OverflowError, OSError, ValueError):
        return None


def derive_email_type(data: Mapping[str, Any], default_type: str = "sent") -> str:
    """Deriva emailType: type > emailType existente > provider > padrão do feed."""
    explicit = data.get("type") or data.get("emailType")
    if explicit:
        return str(explicit)
    if data.get("provider") in INBOUND_PROVIDERS:
        return "received"
    return default_type


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return _iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    # DocumentReference, GeoPoint e afins
    return str(value)


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def normalize_email_doc(
    doc_id: str,
    data: Mapping[str, Any],
    *,
    default_type: str = "sent",
    now: datetime | None = None,
) -> EmailRecord:
    """Normaliza um documento da collection `emails`.

    Args:
        doc_id: ID do documento (prevalece sobre `id` no payload).
        data: Payload bruto (Firestore to_dict() ou dict do cache).
        default_type: emailType quando nada no payload o determina.
        now: Relógio para o fallback de timestamp/date (testes).

    Returns:
        EmailRecord com timestamps ISO e scheduledSendTime em ms.
    """
    timestamps = {field: ts_to_iso(data.get(raw)) for raw, field in _TIMESTAMP_FIELDS.items()}
    fallback_now = _iso(now) if now is not None else None

    def _now() -> str:
        return fallback_now or _now_iso()

    existing_timestamp = data.get("timestamp") if isinstance(data.get("timestamp"), str) else None
    timestamp = (
        timestamps["sent_at"]
        or timestamps["received_at"]
        or timestamps["created_at"]
        or existing_timestamp
        or _now()
    )

    record_date = data.get("date")
    if not record_date or not isinstance(record_date, str):
        record_date = (
            timestamps["received_at"]
            or timestamps["sent_at"]
            or timestamps["created_at"]
            or existing_timestamp
            or _now()
        )

    extras = {
        str(key): _json_safe(value)
        for key, value in data.items()
        if key not in _MANAGED_KEYS and key not in EmailRecord.model_fields
    }

    return EmailRecord(
        id=str(doc_id),
        type=_optional_str(data.get("type")),
        email_type=derive_email_type(data, default_type),
        status=_optional_str(data.get("status")),
        provider=_optional_str(data.get("provider")),
        owner_id=_optional_str(data.get("ownerId")),
        assigned_to=_optional_str(data.get("assignedTo")),
        scheduled_send_time=ts_to_ms(data.get("scheduledSendTime")),
        timestamp=timestamp,
        date=record_date,
        starred=bool(data.get("starred")),
        deleted=bool(data.get("deleted")),
        is_sent_email=bool(data.get("isSentEmail")),
        **timestamps,
        **extras,
    )


def upgrade_cached_emails(
    items: Iterable[Mapping[str, Any] | None],
) -> tuple[list[EmailRecord], bool]:
    """Re-normaliza a lista lida do cache persistido.

    Entradas sem id são descartadas. `changed` indica que scheduledSendTime,
    timestamp ou date mudaram (cache gravado por versão antiga) e que o
    cache deve ser regravado.
    """
    upgraded: list[EmailRecord] = []
    changed = False
    for item in items or []:
        if not isinstance(item, Mapping) or not item.get("id"):
            continue
        record = normalize_email_doc(str(item["id"]), item)
        if (
            item.get("scheduledSendTime") != record.scheduled_send_time
            or item.get("timestamp") != record.timestamp
            or item.get("date") != record.date
        ):
            changed = True
        upgraded.append(record)

    if changed:
        logger.debug("cached_emails_upgraded", extra={"count": len(upgraded)})
    return upgraded, changed
