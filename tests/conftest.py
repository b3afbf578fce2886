import asyncio
from datetime import datetime, timedelta

import pytest
from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from ledgerbot.db.repository import AccountRepository, LedgerRepository
from ledgerbot.errors import UpstreamUnavailable
from ledgerbot.groups.directory import GroupDirectoryCache
from ledgerbot.groups.registrar import MonitoringRegistrar
from ledgerbot.models.schemas import (
    Category,
    GatewayGroup,
    Participant,
    Profile,
    Subscription,
    User,
)

OWNER_PHONE = "(11) 98765-4321"
OWNER_PHONE_NORMALIZED = "5511987654321"
OTHER_PHONE = "5521999990000"


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGateway:
    """Stands in for ZApiClient: canned groups and attachments, records everything sent."""

    def __init__(self):
        self.groups: list[GatewayGroup] = []
        self.rosters: dict[str, list[str] | Exception] = {}
        self.attachments: dict[str, bytes] = {}
        self.fail_list = False
        self.roster_gate: asyncio.Event | None = None
        self.list_calls = 0
        self.sent: list[tuple] = []

    async def list_groups(self):
        self.list_calls += 1
        await asyncio.sleep(0)
        if self.fail_list:
            raise UpstreamUnavailable("Z-API down")
        return list(self.groups)

    async def fetch_group_roster(self, group_id):
        if self.roster_gate is not None:
            await self.roster_gate.wait()
        await asyncio.sleep(0)
        roster = self.rosters.get(group_id, [])
        if isinstance(roster, Exception):
            raise roster
        return [Participant(phone=phone) for phone in roster]

    async def download_attachment(self, url):
        if url not in self.attachments:
            raise UpstreamUnavailable("media gone")
        return self.attachments[url]

    async def send_text(self, chat_id, text):
        self.sent.append(("text", chat_id, text, None))

    async def send_buttons(self, chat_id, text, buttons):
        self.sent.append(("buttons", chat_id, text, buttons))

    async def send_list(self, chat_id, text, option_list):
        self.sent.append(("list", chat_id, text, option_list))


class FakeAnalyzer:
    def __init__(self):
        self.result = None
        self.transcription = None
        self.calls: list[tuple] = []

    async def analyze_image(self, data, caption, known_category_names, mimetype="image/jpeg"):
        self.calls.append(("image", data, caption, tuple(known_category_names), mimetype))
        return self.result

    async def analyze_text(self, text, known_category_names):
        self.calls.append(("text", text, tuple(known_category_names)))
        return self.result

    async def transcribe_audio(self, data):
        self.calls.append(("audio", data))
        return self.transcription


async def drain(rounds: int = 50) -> None:
    """Let scheduled background tasks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 10, 12, 0, 0))


@pytest.fixture
def db():
    database = TinyDB(storage=MemoryStorage)
    yield database
    database.close()


@pytest.fixture
def ledger(db):
    repo = LedgerRepository(db)
    for category_id, name in [(1, "Alimentação"), (2, "Marcenaria"), (3, "Outros"), (5, "Elétrica")]:
        repo.add_category(Category(id=category_id, name=name))
    return repo


@pytest.fixture
def accounts(db):
    repo = AccountRepository(db)
    repo.add_user(User(id=1, email="dono@example.com", phone=OWNER_PHONE))
    repo.add_user(User(id=2, email="sem-plano@example.com", phone=OTHER_PHONE))
    repo.add_user(User(id=3, email="admin@example.com", phone=OTHER_PHONE))
    repo.add_profile(Profile(id=1, user_id=1, name="Casa"))
    repo.add_profile(Profile(id=2, user_id=2, name="Outro"))
    repo.add_profile(Profile(id=3, user_id=3, name="Admin"))
    repo.add_subscription(Subscription(user_id=1, status="active", expires_at=datetime(2099, 1, 1)))
    return repo


@pytest.fixture
def gateway():
    gw = FakeGateway()
    gw.groups = [
        GatewayGroup(group_id="g1", name="Obra Casa"),
        GatewayGroup(group_id="g2", name="Família"),
        GatewayGroup(group_id="g3", name="Trabalho"),
    ]
    gw.rosters = {
        "g1": [OWNER_PHONE_NORMALIZED, OTHER_PHONE],
        "g2": ["11 98765-4321"],
        "g3": ["+55 (21) 99999-0000"],
    }
    return gw


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def directory(gateway, clock):
    cache = GroupDirectoryCache(gateway, ttl_seconds=300, clock=clock)
    asyncio.run(cache.refresh())
    return cache


@pytest.fixture
def registrar(accounts, directory):
    return MonitoringRegistrar(accounts, directory, admin_emails=["Admin@example.com"])
