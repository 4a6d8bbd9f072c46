"""
Proposal conversation state machine.

``advance`` is a pure function of (session, inbound message, precomputed
collaborator results). It never touches the database or the network: the
conversation service resolves identity and runs extraction beforehand
(see ``needs_identity`` / ``needs_extraction``) and executes the returned
action afterwards, feeding its outcome to ``after_commit`` / ``after_email``
/ ``after_listing``.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union
from uuid import UUID

from proposal_bot.config import settings
from proposal_bot.schemas.conversation import (
    Channel,
    Choice,
    Identity,
    InboundKind,
    InboundMessage,
    OutboundMessage,
    ProposalDraft,
    ProposalFlow,
)
from proposal_bot.services.extraction_service import ExtractionError, ExtractionResult
from proposal_bot.services.formatting import ProposalSummary, format_draft, format_missing_fields, format_proposal_list
from proposal_bot.services.phone_utils import normalize_phone
from proposal_bot.services.result import Result
from proposal_bot.services.validators import is_valid_email, parse_br_date, parse_money

RESTART_COMMANDS = {"/start", "começar", "comecar", "reiniciar", "menu inicial"}

MAX_EXTRACTION_FAILURES = settings.max_extraction_failures
RECENT_PROPOSALS_LIMIT = settings.recent_proposals_limit


class Step(str, Enum):
    START = "start"
    MAIN_MENU = "main_menu"
    DESCRIBE_PROJECT = "describe_project"
    COLLECT_CLIENT_NAME = "collect_client_name"
    COLLECT_CLIENT_EMAIL = "collect_client_email"
    COLLECT_CLIENT_PHONE = "collect_client_phone"
    COLLECT_TITLE = "collect_title"
    COLLECT_SERVICE_DESCRIPTION = "collect_service_description"
    COLLECT_DETAILED_DESCRIPTION = "collect_detailed_description"
    COLLECT_VALUE = "collect_value"
    COLLECT_DELIVERY_TIME = "collect_delivery_time"
    COLLECT_VALIDITY_DATE = "collect_validity_date"
    COLLECT_OBSERVATIONS = "collect_observations"
    OFFER_EMAIL_SEND = "offer_email_send"
    ASK_CLIENT_EMAIL = "ask_client_email"
    GET_CLIENT_EMAIL = "get_client_email"


POST_COMMIT_STEPS = (Step.OFFER_EMAIL_SEND, Step.ASK_CLIENT_EMAIL, Step.GET_CLIENT_EMAIL)

MAIN_MENU_CHOICES = [Choice.CREATE_PROPOSAL, Choice.VIEW_STATUS]
POST_COMMIT_CHOICES = [Choice.CREATE_ANOTHER, Choice.VIEW_STATUS, Choice.FINISH]


@dataclass
class SessionState:
    channel: Channel
    external_user_id: str
    step: Step = Step.START
    draft: ProposalDraft = field(default_factory=ProposalDraft)
    flow: ProposalFlow = ProposalFlow.AI
    resolved_operator_id: Optional[UUID] = None
    operator_name: Optional[str] = None
    offered_choices: list[Choice] = field(default_factory=list)
    extraction_failures: int = 0
    last_proposal_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def initial(cls, channel: Channel, external_user_id: str, flow: ProposalFlow) -> "SessionState":
        return cls(channel=channel, external_user_id=external_user_id, flow=flow)

    def evolve(self, **changes) -> "SessionState":
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class CommitAction:
    operator_id: UUID
    draft: ProposalDraft
    # state restored when the commit fails, so the user can retry without retyping
    rollback_state: SessionState


@dataclass(frozen=True)
class SendEmailAction:
    proposal_id: UUID
    recipient_email: str


@dataclass(frozen=True)
class ListProposalsAction:
    operator_id: UUID
    limit: int = RECENT_PROPOSALS_LIMIT


Action = Union[CommitAction, SendEmailAction, ListProposalsAction]
ExtractionOutcome = Union[ExtractionResult, ExtractionError]


@dataclass
class StepOutcome:
    state: Optional[SessionState]  # None: delete the session
    replies: list[OutboundMessage] = field(default_factory=list)
    action: Optional[Action] = None
    reset: bool = False


# --- Messages ---

ONBOARDING_TEXT = (
    "👋 Olá! Sou o assistente de propostas.\n\n"
    "Para começar, compartilhe seu número de telefone para eu identificar sua conta."
)
REJECTION_TEXT = (
    "❌ Não encontrei uma conta com este telefone.\n\n"
    "Verifique se o número está cadastrado no seu perfil ou na sua empresa e envie /start para tentar de novo."
)
UNRECOGNIZED_TEXT = "🤔 Não entendi. Envie /start para recomeçar ou use o menu."
VOICE_FAILED_TEXT = "🎙️ Não consegui entender o áudio. Tente novamente ou envie sua resposta por texto."
MENU_TEXT = "O que você deseja fazer?"
DESCRIBE_PROJECT_TEXT = (
    "📝 Descreva a proposta em uma mensagem (texto ou áudio).\n\n"
    "Inclua o nome do cliente, o que será feito, o valor e o prazo de entrega.\n"
    "_Exemplo: Reforma de banheiro para João, R$ 3000, prazo 10 dias._"
)
EXTRACTION_FAILED_TEXT = (
    "⚠️ Não consegui processar sua descrição agora. "
    "Envie novamente com mais detalhes: cliente, serviço, valor e prazo."
)
EXTRACTION_FALLBACK_TEXT = "⚠️ Não consegui processar sua descrição. Vamos preencher campo a campo."
COMMITTING_TEXT = "⏳ Criando sua proposta..."
COMMIT_FAILED_TEXT = "❌ Não foi possível salvar a proposta. Seus dados foram mantidos, envie sua resposta novamente."
EMAIL_FAILED_TEXT = (
    "❌ Não consegui enviar o e-mail. A proposta continua salva, "
    "você pode tentar o envio novamente pelo painel."
)
FINISH_TEXT = "👋 Até logo! Envie /start quando quiser criar outra proposta."


def _greeting(name: Optional[str]) -> str:
    if name:
        return f"✅ Olá, {name}! Identifiquei sua conta.\n\n{MENU_TEXT}"
    return f"✅ Identifiquei sua conta.\n\n{MENU_TEXT}"


# --- Structured chain ---


@dataclass(frozen=True)
class FieldStep:
    field_name: str
    prompt: str
    invalid_text: str
    parse: Callable[[str], object]
    optional: bool = False


def _parse_text(text: str):
    return text.strip() or None


def _parse_email(text: str):
    text = text.strip()
    return text if is_valid_email(text) else None


def _parse_phone(text: str):
    return text.strip() if len(normalize_phone(text)) >= 8 else None


def _parse_value(text: str):
    amount = parse_money(text)
    return amount if amount is not None and amount > 0 else None


FIELD_STEPS: dict[Step, FieldStep] = {
    Step.COLLECT_CLIENT_NAME: FieldStep(
        "client_name", "👤 Qual o nome do cliente?", "Informe o nome do cliente.", _parse_text
    ),
    Step.COLLECT_CLIENT_EMAIL: FieldStep(
        "client_email",
        "📧 Qual o e-mail do cliente? (ou Pular)",
        "❌ E-mail inválido. Envie um e-mail como nome@empresa.com ou Pular.",
        _parse_email,
        optional=True,
    ),
    Step.COLLECT_CLIENT_PHONE: FieldStep(
        "client_phone",
        "📱 Qual o telefone do cliente? (ou Pular)",
        "❌ Telefone inválido. Envie com DDD, por exemplo 11 99999-9999, ou Pular.",
        _parse_phone,
        optional=True,
    ),
    Step.COLLECT_TITLE: FieldStep(
        "title", "🏷️ Qual o título da proposta?", "Informe um título para a proposta.", _parse_text
    ),
    Step.COLLECT_SERVICE_DESCRIPTION: FieldStep(
        "service_description",
        "🛠️ Descreva o serviço em uma frase.",
        "Informe uma descrição curta do serviço.",
        _parse_text,
    ),
    Step.COLLECT_DETAILED_DESCRIPTION: FieldStep(
        "detailed_description",
        "📄 Descreva em detalhes o que será feito.",
        "Informe a descrição detalhada.",
        _parse_text,
    ),
    Step.COLLECT_VALUE: FieldStep(
        "value",
        "💰 Qual o valor total? (ex: 1.500,00)",
        "❌ Valor inválido. Envie apenas o número, por exemplo 1.500,00.",
        _parse_value,
    ),
    Step.COLLECT_DELIVERY_TIME: FieldStep(
        "delivery_time", "⏱️ Qual o prazo de entrega? (ex: 10 dias)", "Informe o prazo de entrega.", _parse_text
    ),
    Step.COLLECT_VALIDITY_DATE: FieldStep(
        "validity_date",
        "📅 Até quando a proposta é válida? Use DD/MM/AAAA (ou Pular)",
        "❌ Data inválida. Use o formato DD/MM/AAAA, por exemplo 20/07/2025, ou Pular.",
        parse_br_date,
        optional=True,
    ),
    Step.COLLECT_OBSERVATIONS: FieldStep(
        "observations", "🗒️ Alguma observação? (ou Pular)", "Envie a observação ou Pular.", _parse_text, optional=True
    ),
}

STRUCTURED_CHAIN = list(FIELD_STEPS)


def next_empty_step(draft: ProposalDraft, after: Optional[Step] = None) -> Optional[Step]:
    """First chain step past ``after`` whose field is still empty."""
    start = STRUCTURED_CHAIN.index(after) + 1 if after else 0
    for step in STRUCTURED_CHAIN[start:]:
        if not draft.is_filled(FIELD_STEPS[step].field_name):
            return step
    return None


def _field_prompt(step: Step) -> OutboundMessage:
    field_step = FIELD_STEPS[step]
    return OutboundMessage(text=field_step.prompt, quick_replies=[Choice.SKIP] if field_step.optional else [])


# --- Helpers ---


def is_restart_command(inbound: InboundMessage) -> bool:
    if inbound.kind == InboundKind.CONTACT_SHARE or not inbound.text:
        return False
    return inbound.text.strip().casefold() in RESTART_COMMANDS


def resolve_choice(state: SessionState, inbound: InboundMessage) -> Optional[Choice]:
    """Adapter-matched label first, then a number picked from the last menu."""
    if inbound.choice:
        return inbound.choice
    text = (inbound.text or "").strip()
    if text.isdigit() and state.offered_choices:
        index = int(text)
        if 1 <= index <= len(state.offered_choices):
            return state.offered_choices[index - 1]
    return None


def _reply(state: Optional[SessionState], *replies: OutboundMessage, action: Optional[Action] = None, reset=False):
    """Build the outcome and remember the choices offered by the last menu."""
    if state is not None:
        offered = next((list(r.quick_replies) for r in reversed(replies) if r.quick_replies), [])
        state = state.evolve(offered_choices=offered)
    return StepOutcome(state=state, replies=list(replies), action=action, reset=reset)


def _menu(text: str = MENU_TEXT) -> OutboundMessage:
    return OutboundMessage(text=text, quick_replies=list(MAIN_MENU_CHOICES))


def _onboarding() -> OutboundMessage:
    return OutboundMessage(text=ONBOARDING_TEXT, request_contact=True)


def _unrecognized(state: SessionState) -> StepOutcome:
    return StepOutcome(
        state=state,
        replies=[OutboundMessage(text=UNRECOGNIZED_TEXT, quick_replies=list(state.offered_choices))],
    )


def _post_commit_prompt(draft: ProposalDraft) -> tuple[Step, OutboundMessage]:
    if draft.client_email:
        text = f"📧 Deseja enviar a proposta agora para *{draft.client_email}*?"
        return Step.OFFER_EMAIL_SEND, OutboundMessage(
            text=text, quick_replies=[Choice.YES, Choice.NO, *POST_COMMIT_CHOICES]
        )
    text = "📧 Deseja enviar a proposta por e-mail ao cliente?"
    return Step.ASK_CLIENT_EMAIL, OutboundMessage(text=text, quick_replies=[Choice.YES, Choice.NO, *POST_COMMIT_CHOICES])


def _commit(state: SessionState, draft: ProposalDraft, rollback_step: Step) -> StepOutcome:
    """Move to the email offer right away; the commit itself runs as the returned action."""
    if not state.resolved_operator_id:
        return _reply(SessionState.initial(state.channel, state.external_user_id, state.flow), _onboarding(), reset=True)

    rollback_state = state.evolve(step=rollback_step, draft=draft, offered_choices=[])
    next_step, _ = _post_commit_prompt(draft)
    committed = state.evolve(step=next_step, draft=draft, extraction_failures=0, offered_choices=[])
    action = CommitAction(operator_id=state.resolved_operator_id, draft=draft, rollback_state=rollback_state)
    return StepOutcome(state=committed, replies=[OutboundMessage(text=COMMITTING_TEXT)], action=action)


def _enter_proposal_flow(state: SessionState) -> StepOutcome:
    fresh = state.evolve(draft=ProposalDraft(), extraction_failures=0, last_proposal_id=None)
    if state.flow == ProposalFlow.AI:
        return _reply(fresh.evolve(step=Step.DESCRIBE_PROJECT), OutboundMessage(text=DESCRIBE_PROJECT_TEXT))
    first = STRUCTURED_CHAIN[0]
    return _reply(
        fresh.evolve(step=first),
        OutboundMessage(text="📝 Vamos criar sua proposta."),
        _field_prompt(first),
    )


def _list_proposals(state: SessionState) -> StepOutcome:
    if not state.resolved_operator_id:
        return _reply(SessionState.initial(state.channel, state.external_user_id, state.flow), _onboarding(), reset=True)
    action = ListProposalsAction(operator_id=state.resolved_operator_id)
    return StepOutcome(state=state.evolve(step=Step.MAIN_MENU, draft=ProposalDraft()), action=action)


def _back_to_menu(state: SessionState, text: str = MENU_TEXT) -> StepOutcome:
    return _reply(state.evolve(step=Step.MAIN_MENU, draft=ProposalDraft()), _menu(text))


# --- Step handlers ---


def _handle_start(state: SessionState, inbound: InboundMessage, identity: Optional[Identity]) -> StepOutcome:
    if inbound.kind != InboundKind.CONTACT_SHARE:
        return _reply(state, _onboarding())

    if identity is None or not identity.is_known_operator:
        return StepOutcome(state=None, replies=[OutboundMessage(text=REJECTION_TEXT)])

    resolved = state.evolve(
        step=Step.MAIN_MENU,
        resolved_operator_id=identity.operator_id,
        operator_name=identity.display_name,
    )
    return _reply(resolved, _menu(_greeting(identity.display_name)))


def _handle_main_menu(state: SessionState, inbound: InboundMessage) -> StepOutcome:
    choice = resolve_choice(state, inbound)
    if choice in (Choice.CREATE_PROPOSAL, Choice.CREATE_ANOTHER):
        return _enter_proposal_flow(state)
    if choice == Choice.VIEW_STATUS:
        return _list_proposals(state)
    return _unrecognized(state)


def _handle_describe_project(
    state: SessionState, inbound: InboundMessage, extraction: Optional[ExtractionOutcome]
) -> StepOutcome:
    if not inbound.text or extraction is None:
        return _unrecognized(state)

    if isinstance(extraction, ExtractionError):
        failures = state.extraction_failures + 1
        if failures >= MAX_EXTRACTION_FAILURES:
            first = next_empty_step(state.draft)
            fallback = state.evolve(flow=ProposalFlow.STRUCTURED, extraction_failures=0)
            if first is None:
                return _commit(fallback, state.draft, Step.DESCRIBE_PROJECT)
            return _reply(
                fallback.evolve(step=first), OutboundMessage(text=EXTRACTION_FALLBACK_TEXT), _field_prompt(first)
            )
        return _reply(state.evolve(extraction_failures=failures), OutboundMessage(text=EXTRACTION_FAILED_TEXT))

    draft = state.draft.merged_with(extraction.draft)
    missing = draft.missing_required_fields()
    if missing:
        text = (
            "📝 Entendi parte da proposta. Ainda preciso de:\n\n"
            f"{format_missing_fields(missing)}\n\n"
            "Envie essas informações na próxima mensagem."
        )
        return _reply(state.evolve(draft=draft, extraction_failures=0), OutboundMessage(text=text))

    return _commit(state.evolve(extraction_failures=0), draft, Step.DESCRIBE_PROJECT)


def _handle_field_step(state: SessionState, inbound: InboundMessage) -> StepOutcome:
    field_step = FIELD_STEPS[state.step]
    choice = resolve_choice(state, inbound)

    if field_step.optional and choice == Choice.SKIP:
        draft = state.draft
    else:
        if not inbound.text:
            return _unrecognized(state)
        parsed = field_step.parse(inbound.text)
        if parsed is None:
            return _reply(state, OutboundMessage(text=field_step.invalid_text, quick_replies=list(state.offered_choices)))
        draft = state.draft.model_copy(update={field_step.field_name: parsed})

    next_step = next_empty_step(draft, after=state.step)
    if next_step is not None:
        return _reply(state.evolve(step=next_step, draft=draft), _field_prompt(next_step))

    if not draft.is_complete():
        # a required field earlier in the chain is still empty
        missing_step = next_empty_step(draft)
        return _reply(state.evolve(step=missing_step, draft=draft), _field_prompt(missing_step))

    return _commit(state, draft, state.step)


def _handle_post_commit(state: SessionState, inbound: InboundMessage) -> StepOutcome:
    choice = resolve_choice(state, inbound)

    if choice == Choice.CREATE_ANOTHER:
        return _enter_proposal_flow(state)
    if choice == Choice.VIEW_STATUS:
        return _list_proposals(state)
    if choice == Choice.FINISH:
        return StepOutcome(state=None, replies=[OutboundMessage(text=FINISH_TEXT)])

    if state.step == Step.GET_CLIENT_EMAIL:
        if choice == Choice.NO:
            return _back_to_menu(state)
        email = (inbound.text or "").strip()
        if not is_valid_email(email):
            return _reply(
                state,
                OutboundMessage(text="❌ E-mail inválido. Envie um e-mail como nome@empresa.com.", quick_replies=[Choice.NO]),
            )
        return _send_email(state, email)

    if choice == Choice.NO:
        return _back_to_menu(state)
    if choice == Choice.YES:
        if state.step == Step.OFFER_EMAIL_SEND and state.draft.client_email:
            return _send_email(state, state.draft.client_email)
        return _reply(
            state.evolve(step=Step.GET_CLIENT_EMAIL),
            OutboundMessage(text="📧 Qual o e-mail do cliente?", quick_replies=[Choice.NO]),
        )
    return _unrecognized(state)


def _send_email(state: SessionState, email: str) -> StepOutcome:
    if not state.last_proposal_id:
        return _back_to_menu(state)
    draft = state.draft.model_copy(update={"client_email": email})
    action = SendEmailAction(proposal_id=state.last_proposal_id, recipient_email=email)
    return StepOutcome(
        state=state.evolve(draft=draft, offered_choices=[]),
        replies=[OutboundMessage(text=f"📤 Enviando para {email}...")],
        action=action,
    )


# --- Public API ---


def needs_identity(state: SessionState, inbound: InboundMessage) -> bool:
    return state.step == Step.START and inbound.kind == InboundKind.CONTACT_SHARE and bool(inbound.contact_phone)


def needs_extraction(state: SessionState, inbound: InboundMessage) -> bool:
    return state.step == Step.DESCRIBE_PROJECT and bool(inbound.text) and not is_restart_command(inbound)


def advance(
    state: SessionState,
    inbound: InboundMessage,
    identity: Optional[Identity] = None,
    extraction: Optional[ExtractionOutcome] = None,
) -> StepOutcome:
    """Compute the next session, replies and side-effect action for one inbound message."""
    if is_restart_command(inbound):
        fresh = SessionState.initial(state.channel, state.external_user_id, state.flow)
        return _reply(fresh, _onboarding(), reset=True)

    if state.step == Step.START:
        return _handle_start(state, inbound, identity)

    if inbound.kind == InboundKind.VOICE_TRANSCRIPT and not inbound.text:
        return StepOutcome(
            state=state, replies=[OutboundMessage(text=VOICE_FAILED_TEXT, quick_replies=list(state.offered_choices))]
        )

    if state.step == Step.MAIN_MENU:
        return _handle_main_menu(state, inbound)
    if state.step == Step.DESCRIBE_PROJECT:
        return _handle_describe_project(state, inbound, extraction)
    if state.step in FIELD_STEPS:
        return _handle_field_step(state, inbound)
    if state.step in POST_COMMIT_STEPS:
        return _handle_post_commit(state, inbound)
    return _unrecognized(state)


def after_commit(state: SessionState, action: CommitAction, result: Result[UUID]) -> StepOutcome:
    if not result.ok:
        return _reply(action.rollback_state, OutboundMessage(text=COMMIT_FAILED_TEXT))

    _, prompt = _post_commit_prompt(action.draft)
    committed = state.evolve(last_proposal_id=result.value)
    summary = OutboundMessage(text=f"✅ Proposta criada!\n\n{format_draft(action.draft)}")
    return _reply(committed, summary, prompt)


def after_email(state: SessionState, result: Result[str]) -> StepOutcome:
    if result.ok:
        text = f"✅ Proposta enviada por e-mail!\n\n🔗 {result.value}"
    else:
        text = EMAIL_FAILED_TEXT
    return _back_to_menu(state, f"{text}\n\n{MENU_TEXT}")


def after_listing(state: SessionState, proposals: list[ProposalSummary]) -> StepOutcome:
    return _reply(state.evolve(step=Step.MAIN_MENU), _menu(f"{format_proposal_list(proposals)}\n\n{MENU_TEXT}"))
