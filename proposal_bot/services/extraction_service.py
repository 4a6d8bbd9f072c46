"""Free text -> ProposalDraft through the external extraction model."""

import json
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from proposal_bot.config import settings
from proposal_bot.logging_config import get_logger
from proposal_bot.schemas.conversation import ProposalDraft
from proposal_bot.services.llm import LLMProvider, LLMProviderError, get_default_provider
from proposal_bot.services.validators import is_valid_email, parse_flexible_date, parse_money

logger = get_logger("extraction_service")

EXTRACTION_ATTEMPTS = 2

SYSTEM_PROMPT = """Você extrai dados de propostas comerciais a partir da mensagem de um prestador de serviço.
Hoje é {today}.

Retorne APENAS um objeto JSON com exatamente estas chaves:
- "client_name": nome do cliente ou empresa destinatária
- "client_email": e-mail do cliente
- "client_phone": telefone do cliente
- "title": título curto da proposta (ex: "Reforma de banheiro")
- "service_description": resumo do serviço em uma frase
- "detailed_description": descrição detalhada do que será feito
- "value": valor total em número, sem símbolo de moeda (ex: 3000.00)
- "delivery_time": prazo de entrega como texto (ex: "10 dias")
- "validity_date": data de validade da proposta no formato YYYY-MM-DD
- "observations": observações adicionais

Use null para qualquer informação que não foi mencionada. Nunca invente valores."""

# Portuguese keys some model versions answer with
KEY_ALIASES = {
    "cliente": "client_name",
    "nome_cliente": "client_name",
    "email": "client_email",
    "telefone": "client_phone",
    "titulo": "title",
    "servico": "service_description",
    "descricao": "detailed_description",
    "valor": "value",
    "prazo": "delivery_time",
    "validade": "validity_date",
    "observacoes": "observations",
}

TEXT_FIELDS = (
    "client_name",
    "client_phone",
    "title",
    "service_description",
    "detailed_description",
    "delivery_time",
    "observations",
)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class ExtractionError(Exception):
    """The extraction service timed out, failed or answered something unusable."""


@dataclass
class ExtractionResult:
    draft: ProposalDraft
    missing_fields: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields


def extract_proposal(
    text: str,
    provider: Optional[LLMProvider] = None,
    *,
    timeout_seconds: Optional[float] = None,
    today: Optional[date] = None,
) -> ExtractionResult:
    """
    Send ``text`` untouched to the extraction model and parse its answer.

    Completeness is recomputed here from the draft, whatever the model claims.
    One retry, then ExtractionError.
    """
    provider = provider or get_default_provider()
    timeout = timeout_seconds if timeout_seconds is not None else settings.extraction_timeout_seconds
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT.format(today=(today or date.today()).isoformat())},
        {"role": "user", "content": text},
    ]

    last_error: Optional[Exception] = None
    for attempt in range(1, EXTRACTION_ATTEMPTS + 1):
        try:
            response = provider.generate(
                messages,
                temperature=0.0,
                max_tokens=800,
                timeout_seconds=timeout,
                json_mode=True,
            )
            draft = parse_extraction_payload(response.content)
        except (LLMProviderError, ExtractionError) as e:
            last_error = e
            logger.warning(
                "Extraction attempt failed",
                extra={"context": {"attempt": attempt, "error": str(e)}},
            )
            continue

        missing = draft.missing_required_fields()
        logger.info(
            "Extraction finished",
            extra={"context": {"attempt": attempt, "missing_fields": missing}},
        )
        return ExtractionResult(draft=draft, missing_fields=missing)

    raise ExtractionError(f"Extraction failed after {EXTRACTION_ATTEMPTS} attempts: {last_error}")


def parse_extraction_payload(content: str) -> ProposalDraft:
    """Lenient mapping of the model's JSON onto ProposalDraft."""
    raw = _CODE_FENCE_RE.sub("", (content or "").strip())
    if not raw:
        raise ExtractionError("Empty extraction response")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Extraction response is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionError("Extraction response is not a JSON object")

    data = {KEY_ALIASES.get(key, key): value for key, value in data.items()}

    fields: dict[str, Any] = {}
    for name in TEXT_FIELDS:
        value = _clean_text(data.get(name))
        if value:
            fields[name] = value

    email = _clean_text(data.get("client_email"))
    if email and is_valid_email(email):
        fields["client_email"] = email

    amount = _parse_amount(data.get("value"))
    if amount is not None and amount > 0:
        fields["value"] = amount

    validity = parse_flexible_date(_clean_text(data.get("validity_date")))
    if validity:
        fields["validity_date"] = validity

    return ProposalDraft(**fields)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "n/a", "não informado"}:
        return None
    return text


def _parse_amount(value: Any):
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return parse_money(f"{value:.2f}")
    return parse_money(str(value))
