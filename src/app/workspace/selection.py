"""Selection reconciliation -- keeps the open detail view in step with the collection.

On every snapshot the reconciler decides whether the session's selected
account and contact should be refreshed in place, cleared, or left alone:

1. No account selected: nothing to do.
2. Selected account absent from the snapshot: clear account and contact
   selection and raise the transient "item deleted" notice. Otherwise swap in
   the fresh account object so displayed fields are never stale.
3. Selected contact absent, or now held by a different account than the
   selected one (it was moved): clear the contact selection only and raise the
   notice. Otherwise swap in the fresh contact object.

If the session has a guarded write in flight, the snapshot is skipped and
the flag consumed. The reconciler never raises to its caller.
"""

from __future__ import annotations

from enum import Enum

import structlog

from src.app.core.monitoring import selection_clears_total
from src.app.workspace.guard import MutationGuard, SessionState
from src.app.workspace.lookup import LookupIndex
from src.app.workspace.notices import NoticeBoard
from src.app.workspace.schemas import WorkspaceSnapshot

logger = structlog.get_logger(__name__)


class ReconcileOutcome(str, Enum):
    """What a reconciliation pass did to the selection."""

    IDLE = "idle"
    REFRESHED = "refreshed"
    ACCOUNT_CLEARED = "account_cleared"
    CONTACT_CLEARED = "contact_cleared"
    SKIPPED = "skipped"
    STALE = "stale"


class SelectionReconciler:
    """Re-derives the session's selection from each delivered snapshot.

    Args:
        state: Session state holding the selection and the in-flight flag.
        guard: Guard owning the in-flight flag for this session.
        notices: Board on which vanished-entity notices are raised.
    """

    def __init__(
        self,
        state: SessionState,
        guard: MutationGuard,
        notices: NoticeBoard,
    ) -> None:
        self._state = state
        self._guard = guard
        self._notices = notices
        self._last_version: int | None = None
        self.skipped_since_settle = False

    def reconcile(self, snapshot: WorkspaceSnapshot, index: LookupIndex) -> ReconcileOutcome:
        """Apply one snapshot to the selection.

        Args:
            snapshot: Snapshot as delivered by the store.
            index: Lookup index built from that snapshot.

        Returns:
            The ReconcileOutcome for this pass.
        """
        if self._last_version is not None and snapshot.version < self._last_version:
            logger.debug(
                "selection.stale_snapshot_ignored",
                version=snapshot.version,
                last_version=self._last_version,
            )
            return ReconcileOutcome.STALE

        if self._guard.active:
            self._guard.consume()
            self.skipped_since_settle = True
            logger.debug("selection.skipped_guarded_snapshot", version=snapshot.version)
            return ReconcileOutcome.SKIPPED

        self._last_version = snapshot.version
        return self._apply(index)

    def _apply(self, index: LookupIndex) -> ReconcileOutcome:
        state = self._state
        if state.selected_account is None:
            return ReconcileOutcome.IDLE

        account = index.get_account(state.selected_account.id)
        if account is None:
            logger.info(
                "selection.account_cleared",
                account_id=state.selected_account.id,
                contact_id=state.selected_contact_id,
            )
            state.selected_account = None
            state.selected_contact = None
            self._notices.raise_notice()
            selection_clears_total.labels(scope="account").inc()
            return ReconcileOutcome.ACCOUNT_CLEARED

        state.selected_account = account

        if state.selected_contact is not None:
            ref = index.get_contact(state.selected_contact.id)
            if ref is None or ref.parent.id != account.id:
                logger.info(
                    "selection.contact_cleared",
                    account_id=account.id,
                    contact_id=state.selected_contact.id,
                    moved_to=ref.parent.id if ref is not None else None,
                )
                state.selected_contact = None
                self._notices.raise_notice()
                selection_clears_total.labels(scope="contact").inc()
                return ReconcileOutcome.CONTACT_CLEARED
            state.selected_contact = ref.contact

        return ReconcileOutcome.REFRESHED
