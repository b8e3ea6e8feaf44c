"""RotationOrchestrator: the fail-safe rotation state machine.

States and transitions::

    PRECHECK ──► CREATING ──► VERIFY_NEW ──► DISABLE_OLD ──► VERIFY_AFTER_DISABLE ──► COMMIT ──► COMMITTED
                                 │                                   │
                                 ▼                                   ▼
                            ROLLBACK_NEW ──► ABORTED           REENABLE_OLD ──► ABORTED

Each state has one handler that performs the state's single store or
verifier action and returns the next state. Handlers never raise for
protocol failures; they record an :class:`~key_rotation.models.AbortReason`
on the session and move to ABORTED.

The only automatic retry is the bounded poll in VERIFY_NEW. There is no
in-process locking: running two sessions for the same identity at once can
break the two-credential ceiling, so callers must serialise invocations.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from key_rotation.config import RotationPolicy
from key_rotation.errors import (
    CreationError,
    DeleteOldError,
    DisableError,
    PostDisableVerificationError,
    PreconditionError,
    PropagationTimeout,
    RollbackError,
    StoreError,
    VerificationError,
)
from key_rotation.models import (
    AbortReason,
    Aborted,
    Committed,
    Credential,
    CredentialStatus,
    Identity,
    Outcome,
    RotationSession,
    RotationState,
    Target,
)
from key_rotation.stores.base import CredentialStore
from key_rotation.verifiers.base import Verifier
from key_rotation.waiter import PropagationWaiter

logger = logging.getLogger(__name__)

CommitHook = Callable[[RotationSession, Committed], None]


class RotationOrchestrator:
    """Drive one rotation session from PRECHECK to a terminal outcome.

    Parameters
    ----------
    store:
        Backend holding the identity's credentials.
    verifier:
        Proves a credential works against the session target.
    waiter:
        Bounded poller used while the new credential propagates.
    policy:
        Attempt cap, poll interval, and per-verification timeout.
    commit_hooks:
        Best-effort callables run after a commit. Their failures are logged
        and never change the outcome.
    """

    def __init__(
        self,
        store: CredentialStore,
        verifier: Verifier,
        waiter: Optional[PropagationWaiter] = None,
        policy: Optional[RotationPolicy] = None,
        commit_hooks: Optional[list[CommitHook]] = None,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._waiter = waiter or PropagationWaiter()
        self._policy = policy or RotationPolicy()
        self._commit_hooks = list(commit_hooks or [])
        self._handlers: dict[RotationState, Callable[[RotationSession], RotationState]] = {
            RotationState.PRECHECK: self._precheck,
            RotationState.CREATING: self._create,
            RotationState.VERIFY_NEW: self._verify_new,
            RotationState.ROLLBACK_NEW: self._rollback_new,
            RotationState.DISABLE_OLD: self._disable_old,
            RotationState.VERIFY_AFTER_DISABLE: self._verify_after_disable,
            RotationState.REENABLE_OLD: self._reenable_old,
            RotationState.COMMIT: self._commit,
        }

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def rotate(self, identity: Identity, target: Target) -> Outcome:
        """Run a full session for *identity*, verifying against *target*."""
        return self.execute(RotationSession(identity=identity, target=target))

    def execute(self, session: RotationSession) -> Outcome:
        """Step *session* until it reaches a terminal state."""
        logger.info("Starting rotation for %s (target %s)", session.identity, session.target)
        while not session.state.is_terminal:
            self.step(session)

        outcome = self.outcome(session)
        if isinstance(outcome, Committed):
            logger.info(
                "Rotation committed for %s: new credential %s",
                session.identity,
                outcome.new_credential.credential_id,
            )
            self._run_commit_hooks(session, outcome)
        elif outcome.fatal:
            logger.critical(
                "Rotation for %s could not restore a known-good state: %s. "
                "Manual intervention required.",
                session.identity,
                outcome.error,
            )
        else:
            logger.error(
                "Rotation for %s aborted (%s): %s",
                session.identity,
                outcome.reason.value,
                outcome.error,
            )
        return outcome

    def step(self, session: RotationSession) -> RotationState:
        """Run the handler for the session's current state and advance it.

        Raises
        ------
        ValueError
            If the session is already terminal.
        """
        if session.state.is_terminal:
            raise ValueError(f"Session is already {session.state.value}")
        current = session.state
        next_state = self._handlers[current](session)
        session.advance(next_state)
        logger.info("%s: %s -> %s", session.identity, current.value, next_state.value)
        return next_state

    @staticmethod
    def outcome(session: RotationSession) -> Outcome:
        """Build the outcome of a terminal session."""
        if session.state == RotationState.COMMITTED and session.new_credential is not None:
            return Committed(identity=session.identity, new_credential=session.new_credential)
        if session.state == RotationState.ABORTED and session.abort_reason and session.error:
            return Aborted(
                identity=session.identity,
                reason=session.abort_reason,
                last_good_credential=session.last_good_credential,
                error=session.error,
            )
        raise ValueError(f"Session in state {session.state.value} has no outcome")

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    def _precheck(self, session: RotationSession) -> RotationState:
        try:
            existing = self._store.list(session.identity)
        except StoreError as exc:
            return session.abort(AbortReason.STORE_UNAVAILABLE, exc, None)

        session.existing = existing
        old = existing[0] if existing else None
        if len(existing) >= self._store.credential_limit:
            error = PreconditionError(
                f"{session.identity} already has {len(existing)} credentials "
                f"(limit {self._store.credential_limit}); nothing was changed"
            )
            return session.abort(AbortReason.TOO_MANY_CREDENTIALS, error, old)

        session.old_credential = old
        if old is not None:
            logger.info("Current credential for %s: %s", session.identity, old.credential_id)
        return RotationState.CREATING

    def _create(self, session: RotationSession) -> RotationState:
        try:
            session.new_credential = self._store.create(session.identity)
        except StoreError as exc:
            error = CreationError(f"Could not create a credential for {session.identity}: {exc}")
            error.__cause__ = exc
            return session.abort(AbortReason.CREATION_FAILED, error, session.old_credential)
        logger.info("Created credential %s", session.new_credential.credential_id)
        return RotationState.VERIFY_NEW

    def _verify_new(self, session: RotationSession) -> RotationState:
        result = self._waiter.poll_until(
            lambda: self._poll_check(session),
            max_attempts=self._policy.max_attempts,
            interval=self._policy.poll_interval,
        )
        session.verify_attempts += result.attempts
        if result.timed_out:
            session.error = PropagationTimeout(
                f"Credential {self._new_id(session)} did not verify against "
                f"{session.target} after {result.attempts} attempts"
            )
            return RotationState.ROLLBACK_NEW

        logger.info("New credential verified after %d attempt(s)", result.attempts)
        if session.old_credential is None:
            return RotationState.COMMITTED
        return RotationState.DISABLE_OLD

    def _rollback_new(self, session: RotationSession) -> RotationState:
        new_id = self._new_id(session)
        try:
            self._store.delete(new_id)
        except Exception as exc:
            logger.exception("Could not delete unverified credential %s", new_id)
            error = RollbackError(
                f"Unverified credential {new_id} could not be deleted and is orphaned: {exc}"
            )
            error.__cause__ = exc
            return session.abort(AbortReason.ROLLBACK_ERROR, error, session.old_credential)

        logger.warning("Deleted unverified credential %s", new_id)
        error = session.error or PropagationTimeout(f"Credential {new_id} never verified")
        return session.abort(AbortReason.NEW_CREDENTIAL_UNVERIFIED, error, session.old_credential)

    def _disable_old(self, session: RotationSession) -> RotationState:
        old = self._old(session)
        if old.status != CredentialStatus.ACTIVE:
            logger.info("Credential %s is already %s", old.credential_id, old.status.value)
            return RotationState.VERIFY_AFTER_DISABLE
        try:
            self._store.set_status(old.credential_id, CredentialStatus.INACTIVE)
        except StoreError as exc:
            error = DisableError(f"Could not disable {old.credential_id}; it is still active: {exc}")
            error.__cause__ = exc
            return session.abort(AbortReason.DISABLE_FAILED, error, old)
        return RotationState.VERIFY_AFTER_DISABLE

    def _verify_after_disable(self, session: RotationSession) -> RotationState:
        try:
            passed = self._verify(session)
        except VerificationError as exc:
            logger.warning("Post-disable verification errored: %s", exc)
            passed = False
        except Exception as exc:
            logger.warning(
                "Post-disable verification of %s failed unexpectedly: %s",
                self._new_id(session),
                exc,
                exc_info=True,
            )
            passed = False
        if passed:
            return RotationState.COMMIT

        session.error = PostDisableVerificationError(
            f"Credential {self._new_id(session)} stopped verifying after "
            f"{session.old_credential.credential_id if session.old_credential else 'the old credential'} "
            "was disabled"
        )
        return RotationState.REENABLE_OLD

    def _reenable_old(self, session: RotationSession) -> RotationState:
        old = self._old(session)
        # Restore the status observed at PRECHECK. The old credential is not
        # re-verified afterwards.
        try:
            if old.status != CredentialStatus.INACTIVE:
                self._store.set_status(old.credential_id, old.status)
        except Exception as exc:
            logger.exception("Could not re-enable %s", old.credential_id)
            error = RollbackError(
                f"Credential {old.credential_id} could not be re-enabled after "
                f"{self._new_id(session)} failed verification: {exc}"
            )
            error.__cause__ = exc
            return session.abort(AbortReason.ROLLBACK_ERROR, error, None)

        logger.warning("Re-enabled %s after post-disable verification failed", old.credential_id)
        error = session.error or PostDisableVerificationError("Post-disable verification failed")
        return session.abort(AbortReason.POST_DISABLE_VERIFICATION_FAILED, error, old)

    def _commit(self, session: RotationSession) -> RotationState:
        old = self._old(session)
        try:
            self._store.delete(old.credential_id)
        except StoreError as exc:
            error = DeleteOldError(
                f"New credential {self._new_id(session)} is active but {old.credential_id} "
                f"could not be deleted; remove it manually: {exc}"
            )
            error.__cause__ = exc
            return session.abort(AbortReason.DELETE_OLD_FAILED, error, session.new_credential)
        return RotationState.COMMITTED

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _verify(self, session: RotationSession) -> bool:
        return self._verifier.verify(
            self._new(session),
            session.target,
            self._policy.verify_timeout,
        )

    def _poll_check(self, session: RotationSession) -> bool:
        """Verify once; unexpected errors count as a failed attempt."""
        try:
            return self._verify(session)
        except VerificationError:
            raise
        except Exception as exc:
            logger.warning(
                "Verification of %s failed unexpectedly: %s",
                self._new_id(session),
                exc,
                exc_info=True,
            )
            raise VerificationError(f"Verifier error: {exc}") from exc

    @staticmethod
    def _old(session: RotationSession) -> Credential:
        if session.old_credential is None:
            raise ValueError(f"Session for {session.identity} has no old credential")
        return session.old_credential

    @staticmethod
    def _new(session: RotationSession) -> Credential:
        if session.new_credential is None:
            raise ValueError(f"Session for {session.identity} has no new credential")
        return session.new_credential

    @staticmethod
    def _new_id(session: RotationSession) -> str:
        return RotationOrchestrator._new(session).credential_id

    def _run_commit_hooks(self, session: RotationSession, outcome: Committed) -> None:
        for hook in self._commit_hooks:
            name = getattr(hook, "__name__", repr(hook))
            try:
                hook(session, outcome)
            except Exception as exc:
                logger.warning("Post-commit step %s failed: %s", name, exc)
