import threading
from functools import lru_cache

from tinydb import TinyDB

from ledgerbot.bot.confirmation import ConfirmationStateMachine
from ledgerbot.bot.handler import WebhookHandler
from ledgerbot.bot.intake import IntakeOrchestrator
from ledgerbot.bot.reaper import PendingExpenseReaper
from ledgerbot.config import get_settings
from ledgerbot.db.repository import AccountRepository, LedgerRepository
from ledgerbot.groups.directory import GroupDirectoryCache
from ledgerbot.groups.registrar import MonitoringRegistrar
from ledgerbot.llm.analyzer import ExpenseAnalyzer
from ledgerbot.whatsapp.client import ZApiClient

settings = get_settings()

# TinyDB rewrites the whole file on every write, so both repositories share one lock
_db_lock = threading.RLock()


@lru_cache
def get_db() -> TinyDB:
    return TinyDB(settings.db_path)


@lru_cache
def get_ledger() -> LedgerRepository:
    return LedgerRepository(get_db(), _db_lock)


@lru_cache
def get_accounts() -> AccountRepository:
    return AccountRepository(get_db(), _db_lock)


@lru_cache
def get_gateway() -> ZApiClient:
    return ZApiClient(
        instance_id=settings.zapi_instance_id,
        token=settings.zapi_token,
        client_token=settings.zapi_client_token,
        base_url=settings.zapi_base_url,
        timeout=settings.zapi_timeout_seconds,
    )


@lru_cache
def get_analyzer() -> ExpenseAnalyzer:
    return ExpenseAnalyzer(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        transcription_model=settings.transcription_model,
    )


@lru_cache
def get_directory() -> GroupDirectoryCache:
    return GroupDirectoryCache(
        get_gateway(),
        ttl_seconds=settings.group_cache_ttl_seconds,
        cache_file=settings.group_cache_file,
        roster_delay_seconds=settings.roster_fetch_delay_seconds,
        country_code=settings.default_country_code,
    )


@lru_cache
def get_registrar() -> MonitoringRegistrar:
    return MonitoringRegistrar(
        get_accounts(),
        get_directory(),
        admin_emails=settings.admin_emails,
        country_code=settings.default_country_code,
    )


@lru_cache
def get_reaper() -> PendingExpenseReaper:
    return PendingExpenseReaper(get_ledger(), interval_seconds=settings.reaper_interval_seconds)


@lru_cache
def get_webhook_handler() -> WebhookHandler:
    intake = IntakeOrchestrator(
        get_gateway(),
        get_analyzer(),
        get_ledger(),
        get_registrar(),
        expiry_minutes=settings.pending_expiry_minutes,
    )
    confirmation = ConfirmationStateMachine(
        get_gateway(),
        get_ledger(),
        expiry_minutes=settings.pending_expiry_minutes,
        country_code=settings.default_country_code,
    )
    return WebhookHandler(intake, confirmation)
