"""Tests for SelectionReconciler: refresh, clears, notices, guard skips, stale drops."""

from __future__ import annotations

from src.app.workspace.guard import MutationGuard, SessionState
from src.app.workspace.lookup import LookupIndex
from src.app.workspace.notices import ITEM_DELETED_MESSAGE, NoticeBoard
from src.app.workspace.schemas import Account, Contact, WorkspaceSnapshot
from src.app.workspace.selection import ReconcileOutcome, SelectionReconciler


# ── Helpers ──────────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _contact(contact_id: str, account_id: str, name: str = "Jane Roe") -> Contact:
    return Contact(id=contact_id, account_id=account_id, name=name, email="jane@acme.com")


def _account(account_id: str, company: str = "Acme", contacts: list[Contact] | None = None) -> Account:
    return Account(id=account_id, company=company, contacts=contacts or [])


def _snapshot(version: int, *accounts: Account) -> tuple[WorkspaceSnapshot, LookupIndex]:
    snapshot = WorkspaceSnapshot(version=version, accounts=list(accounts))
    return snapshot, LookupIndex.build(snapshot.accounts, version)


def _wire() -> tuple[SessionState, MutationGuard, NoticeBoard, SelectionReconciler, FakeClock]:
    clock = FakeClock()
    state = SessionState()
    guard = MutationGuard(state)
    notices = NoticeBoard(ttl_seconds=3.0, clock=clock)
    reconciler = SelectionReconciler(state, guard, notices)
    return state, guard, notices, reconciler, clock


# ── Idle / Refresh ───────────────────────────────────────────────────────────


class TestRefresh:
    def test_no_selection_is_idle(self):
        state, _, notices, reconciler, _ = _wire()
        outcome = reconciler.reconcile(*_snapshot(1, _account("a1")))
        assert outcome == ReconcileOutcome.IDLE
        assert state.selected_account is None
        assert notices.raised_count == 0

    def test_selected_account_replaced_with_fresh_object(self):
        state, _, notices, reconciler, _ = _wire()
        state.selected_account = _account("a1", company="Old Name")

        outcome = reconciler.reconcile(*_snapshot(1, _account("a1", company="New Name")))

        assert outcome == ReconcileOutcome.REFRESHED
        assert state.selected_account.company == "New Name"
        assert notices.raised_count == 0

    def test_selected_contact_replaced_with_fresh_object(self):
        state, _, _, reconciler, _ = _wire()
        state.selected_account = _account("a1", contacts=[_contact("c1", "a1")])
        state.selected_contact = _contact("c1", "a1")

        fresh = _account("a1", contacts=[_contact("c1", "a1", name="Jane Renamed")])
        reconciler.reconcile(*_snapshot(1, fresh))

        assert state.selected_contact.name == "Jane Renamed"


# ── Clears ───────────────────────────────────────────────────────────────────


class TestClears:
    def test_account_removed_clears_both_and_notifies_once(self):
        state, _, notices, reconciler, _ = _wire()
        state.selected_account = _account("a1", contacts=[_contact("c1", "a1")])
        state.selected_contact = _contact("c1", "a1")

        outcome = reconciler.reconcile(*_snapshot(1, _account("a2")))

        assert outcome == ReconcileOutcome.ACCOUNT_CLEARED
        assert state.selected_account is None
        assert state.selected_contact is None
        assert notices.raised_count == 1
        assert notices.current.message == ITEM_DELETED_MESSAGE

        # Further snapshots without the account do not notify again.
        reconciler.reconcile(*_snapshot(2, _account("a2")))
        reconciler.reconcile(*_snapshot(3))
        assert notices.raised_count == 1

    def test_contact_removed_clears_contact_only(self):
        state, _, notices, reconciler, _ = _wire()
        state.selected_account = _account("a1", contacts=[_contact("c1", "a1")])
        state.selected_contact = _contact("c1", "a1")

        outcome = reconciler.reconcile(*_snapshot(1, _account("a1")))

        assert outcome == ReconcileOutcome.CONTACT_CLEARED
        assert state.selected_account is not None
        assert state.selected_contact is None
        assert notices.raised_count == 1

    def test_contact_moved_to_other_account_clears_contact(self):
        state, _, notices, reconciler, _ = _wire()
        state.selected_account = _account("a1", contacts=[_contact("c1", "a1")])
        state.selected_contact = _contact("c1", "a1")

        outcome = reconciler.reconcile(
            *_snapshot(1, _account("a1"), _account("a2", contacts=[_contact("c1", "a2")]))
        )

        assert outcome == ReconcileOutcome.CONTACT_CLEARED
        assert state.selected_account.id == "a1"
        assert state.selected_contact is None
        assert notices.raised_count == 1

    def test_notice_self_dismisses_after_ttl(self):
        state, _, notices, reconciler, clock = _wire()
        state.selected_account = _account("a1")

        reconciler.reconcile(*_snapshot(1))
        assert notices.current is not None

        clock.now += 2.9
        assert notices.current is not None
        clock.now += 0.2
        assert notices.current is None


# ── Guard Interaction ────────────────────────────────────────────────────────


class TestGuardedSnapshots:
    def test_in_flight_snapshot_skipped_and_flag_consumed(self):
        state, _, notices, reconciler, _ = _wire()
        state.selected_account = _account("a1")
        state.write_in_flight = True

        outcome = reconciler.reconcile(*_snapshot(1))

        assert outcome == ReconcileOutcome.SKIPPED
        assert state.write_in_flight is False
        assert state.selected_account is not None
        assert notices.raised_count == 0
        assert reconciler.skipped_since_settle is True

    def test_next_snapshot_after_skip_is_reconciled(self):
        state, _, notices, reconciler, _ = _wire()
        state.selected_account = _account("a1")
        state.write_in_flight = True

        reconciler.reconcile(*_snapshot(1))
        outcome = reconciler.reconcile(*_snapshot(2))

        assert outcome == ReconcileOutcome.ACCOUNT_CLEARED
        assert notices.raised_count == 1


# ── Ordering ─────────────────────────────────────────────────────────────────


class TestOrdering:
    def test_older_snapshot_never_supersedes_newer(self):
        state, _, notices, reconciler, _ = _wire()
        state.selected_account = _account("a1", company="Old")

        reconciler.reconcile(*_snapshot(5, _account("a1", company="Newest")))
        outcome = reconciler.reconcile(*_snapshot(4))

        assert outcome == ReconcileOutcome.STALE
        assert state.selected_account.company == "Newest"
        assert notices.raised_count == 0

    def test_same_version_redelivery_is_applied(self):
        state, _, _, reconciler, _ = _wire()
        state.selected_account = _account("a1")

        reconciler.reconcile(*_snapshot(3, _account("a1")))
        outcome = reconciler.reconcile(*_snapshot(3, _account("a1")))

        assert outcome == ReconcileOutcome.REFRESHED
