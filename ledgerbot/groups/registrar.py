from loguru import logger

from ledgerbot.db.repository import AccountRepository
from ledgerbot.errors import AccessDenied, NotFound, ValidationFailure
from ledgerbot.groups.directory import GroupDirectoryCache
from ledgerbot.models.schemas import GroupSummary, MonitoredGroup, MonitoringOutcome, User
from ledgerbot.utils.phone import normalize_phone


class MonitoringRegistrar:
    """Chooses which group each profile monitors. A profile never has two active groups."""

    def __init__(
        self,
        accounts: AccountRepository,
        directory: GroupDirectoryCache,
        admin_emails: list[str] | None = None,
        country_code: str = "55",
    ):
        self.accounts = accounts
        self.directory = directory
        self.admin_emails = {email.lower() for email in admin_emails or []}
        self.country_code = country_code

    def is_plan_active(self, user: User) -> bool:
        if user.email.lower() in self.admin_emails:
            return True
        return self.accounts.has_active_subscription(user.id)

    def active_monitoring_for(self, group_id: str) -> MonitoredGroup | None:
        """The active monitoring row for a chat, provided its profile owner still has a plan."""
        monitored = self.accounts.get_active_monitored_group(group_id)
        if monitored is None:
            return None
        profile = self.accounts.get_profile(monitored.profile_id)
        owner = self.accounts.get_user(profile.user_id) if profile else None
        if owner is None:
            logger.warning("Monitored group {} has no profile owner", group_id)
            return None
        if not self.is_plan_active(owner):
            logger.warning("Owner {} of group {} has no active plan; ignoring", owner.id, group_id)
            return None
        return monitored

    def _require_user(self, user_id: int) -> User:
        user = self.accounts.get_user(user_id)
        if user is None:
            raise NotFound("Usuário não encontrado.")
        return user

    async def available_groups(self, requester_user_id: int) -> list[GroupSummary]:
        """Groups the requester takes part in, i.e. the ones they may pick for monitoring."""
        user = self._require_user(requester_user_id)
        phone = normalize_phone(user.phone, self.country_code)
        if not phone:
            return []
        return await self.directory.lookup_groups_for(phone)

    async def set_active_group(
        self, group_id: str, profile_id: int, requester_user_id: int
    ) -> tuple[MonitoredGroup, MonitoringOutcome]:
        if not group_id or not str(group_id).strip():
            raise ValidationFailure("O ID do grupo é obrigatório.")
        if not profile_id or not requester_user_id:
            raise ValidationFailure("O ID do perfil e do usuário são obrigatórios.")

        user = self._require_user(requester_user_id)
        profile = self.accounts.get_profile(profile_id)
        if profile is None:
            raise NotFound("Perfil não encontrado.")
        if profile.user_id != user.id:
            raise AccessDenied("Este perfil não pertence a você.")

        if not self.is_plan_active(user):
            logger.warning("User {} tried to monitor a group without an active plan", user.id)
            raise AccessDenied("Seu plano não está ativo. Renove a assinatura para monitorar grupos.")

        groups = await self.available_groups(user.id)
        target = next((g for g in groups if g.group_id == group_id), None)
        if target is None:
            logger.warning("User {} is not a known participant of group {}", user.id, group_id)
            raise NotFound("Grupo não encontrado entre os grupos dos quais você participa.")

        group, outcome = self.accounts.activate_group(target.group_id, target.name, profile.id)
        logger.info(
            "Profile {} now monitors group {} ({}): {}", profile.id, target.name, target.group_id, outcome.value
        )
        return group, outcome
