"""Deterministic pt-BR rendering of drafts and proposal summaries."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional
from uuid import UUID

from proposal_bot.schemas.conversation import ProposalDraft

FIELD_LABELS = {
    "client_name": "nome do cliente",
    "client_email": "e-mail do cliente",
    "client_phone": "telefone do cliente",
    "title": "título",
    "service_description": "descrição do serviço",
    "detailed_description": "descrição detalhada",
    "value": "valor",
    "delivery_time": "prazo de entrega",
    "validity_date": "validade",
    "observations": "observações",
}

STATUS_LABELS = {
    "rascunho": "📝 Rascunho",
    "enviada": "📤 Enviada",
    "visualizada": "👀 Visualizada",
    "aceita": "✅ Aceita",
    "rejeitada": "❌ Rejeitada",
}


@dataclass(frozen=True)
class ProposalSummary:
    id: UUID
    title: str
    client_name: Optional[str]
    value: Optional[Decimal]
    status: str


def format_brl(value: Optional[Decimal]) -> str:
    """Decimal("1500") -> "R$ 1.500,00"."""
    if value is None:
        return "R$ -"
    amount = Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    integer, _, cents = f"{abs(amount):.2f}".partition(".")
    groups = []
    while len(integer) > 3:
        groups.insert(0, integer[-3:])
        integer = integer[:-3]
    groups.insert(0, integer)
    return f"{sign}R$ {'.'.join(groups)},{cents}"


def status_label(status: Optional[str]) -> str:
    if not status:
        return "-"
    return STATUS_LABELS.get(status, status.capitalize())


def format_missing_fields(fields: Iterable[str]) -> str:
    return "\n".join(f"• {FIELD_LABELS.get(name, name)}" for name in fields)


def format_proposal_line(index: int, summary: ProposalSummary) -> str:
    client = summary.client_name or "sem cliente"
    return f"{index}. {summary.title} | {client} | {format_brl(summary.value)} | {status_label(summary.status)}"


def format_proposal_list(summaries: list[ProposalSummary]) -> str:
    if not summaries:
        return "Você ainda não tem propostas criadas."
    lines = [format_proposal_line(i, summary) for i, summary in enumerate(summaries, start=1)]
    return "📋 *Suas últimas propostas:*\n\n" + "\n".join(lines)


def format_draft(draft: ProposalDraft) -> str:
    lines = [
        f"*Cliente:* {draft.client_name or '-'}",
        f"*Título:* {draft.title or '-'}",
        f"*Valor:* {format_brl(draft.value)}",
        f"*Prazo:* {draft.delivery_time or '-'}",
    ]
    if draft.client_email:
        lines.append(f"*E-mail:* {draft.client_email}")
    if draft.validity_date:
        lines.append(f"*Validade:* {draft.validity_date.strftime('%d/%m/%Y')}")
    return "\n".join(lines)
