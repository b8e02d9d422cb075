"""Transaction-scoped tenant binding.

``SessionBinder.bind(context)`` hands out a session whose single
transaction is bound to one tenant:

1. a fresh session is created from the factory and the context is stored
   in its ``info``
2. the connection is checked out and the transaction begun; on PostgreSQL
   ``after_begin`` writes the tenant with ``set_config(..., true)``, which
   the database discards at COMMIT/ROLLBACK
3. the body runs; the session commits on success and rolls back on any
   exception, including cancellation
4. the binding is cleared and the session closed, returning the connection
   to the pool

A failure in steps 1-2 is retried with exponential backoff. The caller
either receives a fully bound session or a ``TenantBindingError``.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from audit.service import ADMIN_SCOPE_OPENED, log_audit_event
from config import get_settings
from observability.metrics import admin_scopes_total, session_bind_failures_total, session_bind_retries_total
from observability.request_id import tenant_id_var

from .binding import AdminScope, bind_admin_scope, bind_context, clear_binding, get_admin_scope, get_bound_tenant
from .context import TenantContext
from .errors import TenantBindingError, TenantContextMissingError

logger = logging.getLogger(__name__)

# PoolTimeoutError: no pooled connection became free within pool_timeout
TRANSIENT_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


@event.listens_for(Session, "after_begin")
def apply_transaction_settings(session: Session, transaction, connection):
    """Write the binding to PostgreSQL as transaction-local settings."""
    if connection.dialect.name != "postgresql":
        return

    settings = get_settings()
    if get_admin_scope(session) is not None:
        connection.execute(
            text("SELECT set_config(:name, 'on', true)"),
            {"name": settings.RLS_BYPASS_SETTING_NAME},
        )
        return

    tenant_id = get_bound_tenant(session)
    if tenant_id is not None:
        connection.execute(
            text("SELECT set_config(:name, :value, true)"),
            {"name": settings.TENANT_SETTING_NAME, "value": str(tenant_id)},
        )


class SessionBinder:
    """Opens tenant-bound and administrative sessions.

    Args:
        session_factory: ``sessionmaker`` producing sessions on the shared engine
        max_attempts: Attempts to open and bind a transaction
        backoff_seconds: Delay before the second attempt, doubled after each failure
        session_info: Extra ``Session.info`` entries for every session (e.g. a cache)
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        session_info: Optional[dict] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.DB_BIND_MAX_RETRIES)
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.DB_BIND_BACKOFF_SECONDS
        self.session_info = dict(session_info or {})

    def _open(self, attach: Callable[[Session], None], scope: str) -> Session:
        delay = self.backoff_seconds
        attempt = 0
        while True:
            attempt += 1
            session = self.session_factory()
            session.info.update(self.session_info)
            try:
                attach(session)
                # Check out the connection and begin now so a bind failure
                # surfaces here rather than at the first statement
                session.connection()
                return session
            except TRANSIENT_ERRORS as exc:
                clear_binding(session)
                session.close()
                if attempt >= self.max_attempts:
                    session_bind_failures_total.labels(scope=scope).inc()
                    logger.error(
                        "Could not open a bound transaction",
                        extra={"attempts": attempt, "scope": scope, "error": type(exc).__name__},
                    )
                    raise TenantBindingError(attempt, exc) from exc
                session_bind_retries_total.labels(scope=scope).inc()
                logger.warning(
                    "Retrying bound transaction",
                    extra={"attempt": attempt, "scope": scope, "delay_seconds": delay},
                )
                time.sleep(delay)
                delay *= 2
            except BaseException:
                clear_binding(session)
                session.close()
                raise

    @contextmanager
    def bind(self, context: Optional[TenantContext]) -> Iterator[Session]:
        """Yield a session whose transaction is bound to ``context``.

        Raises:
            TenantContextMissingError: If no context is given
            TenantBindingError: If the transaction could not be opened
        """
        if context is None:
            raise TenantContextMissingError()

        session = self._open(lambda s: bind_context(s, context), scope="tenant")
        # Exit may run in a different context copy, so no Token.reset
        previous_log_tenant = tenant_id_var.get()
        tenant_id_var.set(str(context.tenant_id))
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            clear_binding(session)
            session.close()
            tenant_id_var.set(previous_log_tenant)

    @contextmanager
    def admin_scope(self, reason: str, actor: str, allow_retenant: bool = False) -> Iterator[Session]:
        """Yield a session with full-dataset access.

        Used by reconciliation and migrations only; no HTTP dependency
        exposes it. Opening is logged and recorded in the audit log.

        Args:
            reason: Why the unfiltered path is needed (required)
            actor: Who is opening it
            allow_retenant: Permit changing a non-null ``tenant_id``

        Raises:
            ValueError: If reason or actor is empty
        """
        if not reason or not reason.strip():
            raise ValueError("An admin scope requires a reason")
        if not actor or not actor.strip():
            raise ValueError("An admin scope requires an actor")

        scope = AdminScope(reason=reason.strip(), actor=actor.strip(), allow_retenant=allow_retenant)
        self._record_admin_scope(scope)
        session = self._open(lambda s: bind_admin_scope(s, scope), scope="admin")
        admin_scopes_total.inc()
        logger.warning(
            "Admin scope opened",
            extra={"actor": scope.actor, "reason": scope.reason, "allow_retenant": allow_retenant},
        )
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            clear_binding(session)
            session.close()

    def _record_admin_scope(self, scope: AdminScope) -> None:
        """Commit the audit entry for an admin scope in its own transaction.

        The entry survives a scope whose work is rolled back.
        """
        session = self._open(lambda s: None, scope="audit")
        try:
            log_audit_event(
                session,
                action=ADMIN_SCOPE_OPENED,
                actor=scope.actor,
                metadata={"reason": scope.reason, "allow_retenant": scope.allow_retenant},
            )
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
