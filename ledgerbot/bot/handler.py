from loguru import logger

from ledgerbot.bot.confirmation import ConfirmationStateMachine
from ledgerbot.bot.events import ButtonReply, ListReply, MediaMessage, parse_inbound
from ledgerbot.bot.intake import IntakeOrchestrator
from ledgerbot.errors import LedgerError


class WebhookHandler:
    """Entry point for every Z-API callback: parse once, then route by event type."""

    def __init__(self, intake: IntakeOrchestrator, confirmation: ConfirmationStateMachine):
        self.intake = intake
        self.confirmation = confirmation

    async def handle(self, payload: dict) -> None:
        event = parse_inbound(payload)
        if event is None:
            logger.debug("Ignoring webhook payload {}", payload.get("messageId"))
            return

        try:
            if isinstance(event, MediaMessage):
                await self.intake.handle_media(event)
            elif isinstance(event, ButtonReply):
                await self.confirmation.handle_edit_click(event)
            elif isinstance(event, ListReply):
                await self.confirmation.handle_category_selection(event)
        except LedgerError as e:
            logger.error("Error handling {} {}: {}", event.type, event.message_id, e.message)
