"""EmailRecord: formato canônico de um email após normalização.

Os documentos da collection `emails` chegam de vários produtores
(sequências, webhook de entrega, composição manual) com campos
heterogêneos. Depois de app.domain.normalizer tudo circula como
EmailRecord: campos conhecidos tipados, demais campos do produtor
preservados como extras (subject, html, to, sequenceId...).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

EmailType = Literal["sent", "received", "scheduled"]

EmailStatus = Literal[
    "pending",
    "pending_approval",
    "approved",
    "sending",
    "sent",
    "delivered",
    "error",
    "rejected",
    "not_generated",
    "generating",
]

INBOUND_PROVIDERS = frozenset({"sendgrid_inbound", "gmail_api"})

NO_SUBJECT_PLACEHOLDER = "(No Subject)"


class EmailRecord(BaseModel):
    """Email normalizado (imutável).

    Timestamps são strings ISO-8601 (ou None); scheduled_send_time é epoch
    em milissegundos para comparação numérica. Serializado com aliases
    camelCase, o mesmo formato do documento no Firestore.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str
    type: str | None = None
    email_type: str | None = None
    status: str | None = None
    provider: str | None = None
    owner_id: str | None = None
    assigned_to: str | None = None

    created_at: str | None = None
    updated_at: str | None = None
    sent_at: str | None = None
    received_at: str | None = None
    generated_at: str | None = None
    scheduled_send_time: int | None = None
    timestamp: str
    date: str

    starred: bool = False
    deleted: bool = False
    is_sent_email: bool = False

    def extra_field(self, name: str, default: Any = None) -> Any:
        """Lê um campo do produtor que não faz parte do modelo."""
        return (self.model_extra or {}).get(name, default)

    @property
    def has_content(self) -> bool:
        return any(self.extra_field(name) for name in ("html", "text", "content"))

    @property
    def has_subject(self) -> bool:
        subject = self.extra_field("subject")
        if not isinstance(subject, str):
            return False
        stripped = subject.strip()
        return bool(stripped) and stripped != NO_SUBJECT_PLACEHOLDER

    @property
    def recipient(self) -> str:
        """Destinatário em minúsculas (`to` ou `recipientEmail`)."""
        raw = self.extra_field("to") or self.extra_field("recipientEmail")
        if isinstance(raw, dict):
            raw = raw.get("email") or raw.get("address") or ""
        elif isinstance(raw, list):
            raw = raw[0] if raw else ""
        return str(raw or "").strip().lower()

    def belongs_to(self, identity_email: str) -> bool:
        """True se a identidade é dona (ownerId) ou responsável (assignedTo)."""
        email = (identity_email or "").strip().lower()
        if not email:
            return False
        owner = (self.owner_id or "").strip().lower()
        assigned = (self.assigned_to or "").strip().lower()
        return email in (owner, assigned)

    def with_status(self, status: str, updated_at: str) -> EmailRecord:
        return self.model_copy(update={"status": status, "updated_at": updated_at})

    def to_cache_dict(self) -> dict[str, Any]:
        """Dict JSON-safe com aliases camelCase (formato do cache persistido)."""
        return self.model_dump(mode="json", by_alias=True)
