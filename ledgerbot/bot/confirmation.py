from datetime import datetime, timedelta
from typing import Callable

from loguru import logger

from ledgerbot.bot import messages
from ledgerbot.bot.events import ButtonReply, ListReply
from ledgerbot.db.repository import LedgerRepository
from ledgerbot.models.schemas import Expense, ListOption, OptionList, PendingExpense
from ledgerbot.utils.phone import normalize_phone
from ledgerbot.whatsapp.client import ZApiClient


class ConfirmationStateMachine:
    """Drives a pending expense from awaiting_validation to a confirmed Expense.

    awaiting_validation --edit click--> awaiting_category_reply --list reply--> resolved

    Resolution goes through ``LedgerRepository.resolve_pending``, which deletes
    the record in the same step that writes the Expense, so a second reply for
    the same record finds nothing to resolve.
    """

    def __init__(
        self,
        gateway: ZApiClient,
        ledger: LedgerRepository,
        expiry_minutes: int = 5,
        country_code: str = "55",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.expiry_minutes = expiry_minutes
        self.country_code = country_code
        self.clock = clock

    def _same_sender(self, pending: PendingExpense, phone: str) -> bool:
        if not pending.participant_phone:
            return True
        return normalize_phone(pending.participant_phone, self.country_code) == normalize_phone(
            phone, self.country_code
        )

    async def handle_edit_click(self, event: ButtonReply) -> PendingExpense | None:
        pending_id = messages.parse_edit_button_id(event.selected_id)
        if pending_id is None:
            logger.debug("Ignoring unknown button {!r}", event.selected_id)
            return None

        now = self.clock()
        pending = self.ledger.get_pending(pending_id)
        if pending is None or pending.source_group_id != event.group_id or pending.expires_at <= now:
            logger.info("Edit click on pending #{} that is no longer open", pending_id)
            await self.gateway.send_text(event.group_id, messages.NO_LONGER_PENDING)
            return None

        if not self._same_sender(pending, event.participant_phone):
            logger.info("{} tried to edit pending #{} sent by {}", event.participant_phone, pending_id, pending.participant_phone)
            await self.gateway.send_text(
                event.group_id, messages.not_the_sender(event.participant_phone, pending.participant_phone)
            )
            return None

        updated = self.ledger.begin_category_edit(pending_id, now + timedelta(minutes=self.expiry_minutes))
        if updated is None:
            await self.gateway.send_text(event.group_id, messages.NO_LONGER_PENDING)
            return None

        options = [
            ListOption(
                id=messages.category_option_id(pending_id, category.id),
                title=category.name,
                description="Sugerida" if category.id == updated.suggested_category_id else "",
            )
            for category in self.ledger.list_categories()
        ]
        await self.gateway.send_list(
            event.group_id,
            messages.category_list_prompt(updated.value or 0.0, updated.description),
            OptionList(title="Categorias", button_label="Escolher categoria", options=options),
        )
        logger.info("Category list sent for pending #{} ({} options)", pending_id, len(options))
        return updated

    async def handle_category_selection(self, event: ListReply) -> Expense | None:
        parsed = messages.parse_category_option_id(event.selected_id)
        if parsed is None:
            logger.debug("Ignoring unknown list option {!r}", event.selected_id)
            return None
        pending_id, category_id = parsed

        category = self.ledger.get_category(category_id)
        pending = self.ledger.get_pending(pending_id)
        if category is None or pending is None or pending.source_group_id != event.group_id:
            logger.info("Category selection for pending #{} / category {} failed", pending_id, category_id)
            await self.gateway.send_text(event.group_id, messages.SELECTION_FAILED)
            return None

        if not self._same_sender(pending, event.participant_phone):
            await self.gateway.send_text(
                event.group_id, messages.not_the_sender(event.participant_phone, pending.participant_phone)
            )
            return None

        expense = self.ledger.resolve_pending(pending_id, category.id)
        if expense is None:
            logger.info("Pending #{} was resolved by someone else first", pending_id)
            await self.gateway.send_text(event.group_id, messages.SELECTION_FAILED)
            return None

        logger.info("Pending #{} confirmed as expense #{} in {}", pending_id, expense.id, category.name)
        await self.gateway.send_text(
            event.group_id,
            messages.category_updated(expense.id, category.name, self.ledger.total_expenses(expense.profile_id)),
        )
        return expense
