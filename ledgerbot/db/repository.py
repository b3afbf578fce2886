import threading
from datetime import datetime

from tinydb import Query, TinyDB
from tinydb.table import Document

from ledgerbot.models.schemas import (
    Category,
    Expense,
    MonitoredGroup,
    MonitoringOutcome,
    PendingExpense,
    Profile,
    Subscription,
    User,
)


class _Repository:
    """Shared plumbing: every public method runs under one lock so it is a single atomic step."""

    def __init__(self, db: TinyDB, lock=None):
        self.db = db
        self.lock = lock or threading.RLock()

    @staticmethod
    def _insert(table, model) -> int:
        data = model.model_dump(mode="json")
        doc_id = data.pop("id", None)
        if doc_id is not None:
            return table.insert(Document(data, doc_id=doc_id))
        return table.insert(data)


class LedgerRepository(_Repository):
    """Categories, pending expenses and the expense ledger."""

    def __init__(self, db: TinyDB, lock=None):
        super().__init__(db, lock)
        self.categories = db.table("categories")
        self.pending = db.table("pending_expenses")
        self.expenses = db.table("expenses")

    # ── categories ──

    def add_category(self, category: Category) -> Category:
        with self.lock:
            doc_id = self._insert(self.categories, category)
        return category.model_copy(update={"id": doc_id})

    def get_category(self, id: int) -> Category | None:
        with self.lock:
            doc = self.categories.get(doc_id=id)
        if doc is None:
            return None
        return Category(id=doc.doc_id, **doc)

    def get_category_by_name(self, name: str) -> Category | None:
        Cat = Query()
        with self.lock:
            docs = self.categories.search(Cat.name == name)
        if not docs:
            return None
        doc = min(docs, key=lambda d: d.doc_id)
        return Category(id=doc.doc_id, **doc)

    def list_categories(self) -> list[Category]:
        with self.lock:
            docs = self.categories.all()
        return sorted((Category(id=doc.doc_id, **doc) for doc in docs), key=lambda c: c.id)

    # ── pending expenses ──

    def is_message_registered(self, source_message_id: str) -> bool:
        """True once a message has produced a pending record or a confirmed expense."""
        Row = Query()
        with self.lock:
            return self.pending.contains(Row.source_message_id == source_message_id) or self.expenses.contains(
                Row.source_message_id == source_message_id
            )

    def create_pending(self, pending: PendingExpense) -> PendingExpense | None:
        """Insert a pending expense unless the source message was already registered."""
        with self.lock:
            if self.is_message_registered(pending.source_message_id):
                return None
            doc_id = self._insert(self.pending, pending)
        return pending.model_copy(update={"id": doc_id})

    def get_pending(self, id: int) -> PendingExpense | None:
        with self.lock:
            doc = self.pending.get(doc_id=id)
        if doc is None:
            return None
        return PendingExpense(id=doc.doc_id, **doc)

    def get_pending_by_message(self, source_message_id: str) -> PendingExpense | None:
        Pe = Query()
        with self.lock:
            doc = self.pending.get(Pe.source_message_id == source_message_id)
        if doc is None:
            return None
        return PendingExpense(id=doc.doc_id, **doc)

    def list_pending(self) -> list[PendingExpense]:
        with self.lock:
            docs = self.pending.all()
        return [PendingExpense(id=doc.doc_id, **doc) for doc in docs]

    def list_expired_pending(self, now: datetime) -> list[PendingExpense]:
        return [p for p in self.list_pending() if p.expires_at <= now]

    def begin_category_edit(self, id: int, expires_at: datetime) -> PendingExpense | None:
        """Move a still-open record to awaiting_category_reply and push its deadline out."""
        with self.lock:
            doc = self.pending.get(doc_id=id)
            if doc is None or doc["status"] not in ("awaiting_validation", "awaiting_category_reply"):
                return None
            self.pending.update(
                {"status": "awaiting_category_reply", "expires_at": expires_at.isoformat()},
                doc_ids=[id],
            )
            return self.get_pending(id)

    def resolve_pending(
        self, id: int, category_id: int, expired_before: datetime | None = None
    ) -> Expense | None:
        """Convert a pending record into an Expense and delete it, first caller wins.

        Returns None when the record is already gone, or when expired_before is
        given and the record's deadline has been pushed past it.
        """
        with self.lock:
            doc = self.pending.get(doc_id=id)
            if doc is None:
                return None
            pending = PendingExpense(id=doc.doc_id, **doc)
            if expired_before is not None and pending.expires_at > expired_before:
                return None
            expense = Expense(
                value=pending.value or 0.0,
                description=pending.description,
                date=pending.created_at,
                category_id=category_id,
                source_message_id=pending.source_message_id,
                profile_id=pending.profile_id,
            )
            expense_id = self._insert(self.expenses, expense)
            self.pending.remove(doc_ids=[id])
        return expense.model_copy(update={"id": expense_id})

    def discard_pending(self, id: int) -> bool:
        with self.lock:
            if not self.pending.contains(doc_id=id):
                return False
            self.pending.remove(doc_ids=[id])
        return True

    # ── expenses ──

    def get_expenses(self, profile_id: int | None = None) -> list[Expense]:
        with self.lock:
            if profile_id is None:
                docs = self.expenses.all()
            else:
                Ex = Query()
                docs = self.expenses.search(Ex.profile_id == profile_id)
        return [Expense(id=doc.doc_id, **doc) for doc in docs]

    def total_expenses(self, profile_id: int | None = None) -> float:
        return round(sum(e.value for e in self.get_expenses(profile_id)), 2)


class AccountRepository(_Repository):
    """Users, profiles, subscriptions and monitored groups."""

    def __init__(self, db: TinyDB, lock=None):
        super().__init__(db, lock)
        self.users = db.table("users")
        self.profiles = db.table("profiles")
        self.subscriptions = db.table("subscriptions")
        self.monitored = db.table("monitored_groups")

    def add_user(self, user: User) -> User:
        with self.lock:
            doc_id = self._insert(self.users, user)
        return user.model_copy(update={"id": doc_id})

    def get_user(self, id: int) -> User | None:
        with self.lock:
            doc = self.users.get(doc_id=id)
        if doc is None:
            return None
        return User(id=doc.doc_id, **doc)

    def add_profile(self, profile: Profile) -> Profile:
        with self.lock:
            doc_id = self._insert(self.profiles, profile)
        return profile.model_copy(update={"id": doc_id})

    def get_profile(self, id: int) -> Profile | None:
        with self.lock:
            doc = self.profiles.get(doc_id=id)
        if doc is None:
            return None
        return Profile(id=doc.doc_id, **doc)

    def add_subscription(self, subscription: Subscription) -> Subscription:
        with self.lock:
            doc_id = self._insert(self.subscriptions, subscription)
        return subscription.model_copy(update={"id": doc_id})

    def has_active_subscription(self, user_id: int, now: datetime | None = None) -> bool:
        now = now or datetime.now()
        Sub = Query()
        with self.lock:
            docs = self.subscriptions.search((Sub.user_id == user_id) & (Sub.status == "active"))
        for doc in docs:
            sub = Subscription(id=doc.doc_id, **doc)
            if sub.expires_at is None or sub.expires_at > now:
                return True
        return False

    def get_active_monitored_group(self, group_id: str) -> MonitoredGroup | None:
        Mg = Query()
        with self.lock:
            docs = self.monitored.search((Mg.group_id == group_id) & (Mg.is_active == True))  # noqa: E712
        if not docs:
            return None
        doc = min(docs, key=lambda d: d.doc_id)
        return MonitoredGroup(id=doc.doc_id, **doc)

    def list_monitored_groups(self, profile_id: int) -> list[MonitoredGroup]:
        Mg = Query()
        with self.lock:
            docs = self.monitored.search(Mg.profile_id == profile_id)
        return [MonitoredGroup(id=doc.doc_id, **doc) for doc in docs]

    def activate_group(
        self, group_id: str, name: str, profile_id: int
    ) -> tuple[MonitoredGroup, MonitoringOutcome]:
        """Make group_id the only active monitored group of the profile."""
        Mg = Query()
        with self.lock:
            self.monitored.update(
                {"is_active": False},
                (Mg.profile_id == profile_id) & (Mg.group_id != group_id) & (Mg.is_active == True),  # noqa: E712
            )
            doc = self.monitored.get((Mg.profile_id == profile_id) & (Mg.group_id == group_id))
            if doc is None:
                group = MonitoredGroup(group_id=group_id, name=name, profile_id=profile_id)
                doc_id = self._insert(self.monitored, group)
                return group.model_copy(update={"id": doc_id}), MonitoringOutcome.CREATED

            if doc["is_active"]:
                outcome = MonitoringOutcome.ALREADY_ACTIVE
            else:
                self.monitored.update({"is_active": True, "name": name}, doc_ids=[doc.doc_id])
                outcome = MonitoringOutcome.REACTIVATED
            updated = self.monitored.get(doc_id=doc.doc_id)
        return MonitoredGroup(id=updated.doc_id, **updated), outcome
