from datetime import datetime, timedelta
from typing import Callable

from loguru import logger

from ledgerbot.bot import messages
from ledgerbot.bot.events import MediaMessage
from ledgerbot.db.repository import LedgerRepository
from ledgerbot.errors import UpstreamUnavailable
from ledgerbot.groups.registrar import MonitoringRegistrar
from ledgerbot.llm.analyzer import ExpenseAnalyzer
from ledgerbot.models.schemas import Button, Category, ExpenseAnalysis, PendingExpense
from ledgerbot.whatsapp.client import ZApiClient

SUPPORTED_IMAGE_MIMETYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
SUPPORTED_DOCUMENT_MIMETYPES = SUPPORTED_IMAGE_MIMETYPES | {"application/pdf"}


class IntakeOrchestrator:
    """Turns a media message from a monitored group into a pending expense awaiting confirmation.

    Every failure on this path is logged and swallowed: nobody is waiting on a
    reply, and a bad AI read must not flood the group with error messages.
    """

    def __init__(
        self,
        gateway: ZApiClient,
        analyzer: ExpenseAnalyzer,
        ledger: LedgerRepository,
        registrar: MonitoringRegistrar,
        expiry_minutes: int = 5,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.gateway = gateway
        self.analyzer = analyzer
        self.ledger = ledger
        self.registrar = registrar
        self.expiry_minutes = expiry_minutes
        self.clock = clock

    async def handle_media(self, event: MediaMessage) -> PendingExpense | None:
        monitored = self.registrar.active_monitoring_for(event.group_id)
        if monitored is None:
            logger.debug("Group {} is not monitored; ignoring message {}", event.group_id, event.message_id)
            return None

        if self.ledger.is_message_registered(event.message_id):
            logger.info("Message {} was already registered; skipping", event.message_id)
            return None

        category_names = [c.name for c in self.ledger.list_categories()]
        try:
            analysis = await self._analyze(event, category_names)
        except UpstreamUnavailable as e:
            logger.warning("Dropping message {}: {}", event.message_id, e.message)
            return None

        if analysis is None:
            logger.warning("No usable expense in message {} from {}", event.message_id, event.participant_phone)
            return None

        category = self.ledger.get_category_by_name(analysis.category_name)
        if category is None:
            logger.warning(
                "AI suggested unknown category {!r} for message {}; dropping",
                analysis.category_name,
                event.message_id,
            )
            return None

        description = analysis.description
        if event.caption:
            description = f"{description} ({event.caption})"

        now = self.clock()
        pending = self.ledger.create_pending(
            PendingExpense(
                value=analysis.value,
                description=description,
                suggested_category_id=category.id,
                source_message_id=event.message_id,
                source_group_id=event.group_id,
                participant_phone=event.participant_phone,
                attachment_url=event.url,
                attachment_mimetype=event.mimetype,
                profile_id=monitored.profile_id,
                status="awaiting_validation",
                created_at=now,
                expires_at=now + timedelta(minutes=self.expiry_minutes),
            )
        )
        if pending is None:
            logger.info("Message {} was registered concurrently; skipping", event.message_id)
            return None

        logger.info(
            "Pending expense #{} created: {} in {} from {}",
            pending.id,
            messages.format_brl(analysis.value),
            category.name,
            event.participant_phone,
        )
        await self._send_prompt(pending, category, analysis)
        return pending

    async def _analyze(self, event: MediaMessage, category_names: list[str]) -> ExpenseAnalysis | None:
        if event.kind == "audio":
            data = await self.gateway.download_attachment(event.url)
            text = await self.analyzer.transcribe_audio(data)
            if not text:
                logger.info("Audio message {} produced no transcription", event.message_id)
                return None
            return await self.analyzer.analyze_text(text, category_names)

        mimetype = event.mimetype or ("image/jpeg" if event.kind == "image" else None)
        if mimetype not in SUPPORTED_DOCUMENT_MIMETYPES:
            logger.warning("Unsupported attachment type {} in message {}", mimetype, event.message_id)
            return None
        data = await self.gateway.download_attachment(event.url)
        return await self.analyzer.analyze_image(data, event.caption, category_names, mimetype)

    async def _send_prompt(self, pending: PendingExpense, category: Category, analysis: ExpenseAnalysis) -> None:
        text = messages.confirmation_prompt(
            value=analysis.value,
            category_name=category.name,
            description=analysis.description,
            total=self.ledger.total_expenses(pending.profile_id),
            window_minutes=self.expiry_minutes,
        )
        buttons = [Button(id=messages.edit_button_id(pending.id), label="✏️ Corrigir categoria")]
        try:
            await self.gateway.send_buttons(pending.source_group_id, text, buttons)
        except UpstreamUnavailable as e:
            # The record stays; the reaper confirms it with the suggested category
            logger.warning("Confirmation prompt for pending #{} not sent: {}", pending.id, e.message)
