from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from backend.recruiting.observability import MetricsRegistry
from backend.recruiting.store import RecruitingStore

logger = logging.getLogger("talent_core.side_effects")


class BestEffortDispatcher:
    """Runs fire-and-forget work (audit rows, chat messages, notifications).

    Failures are logged and counted, never raised to the caller. Without an executor
    work runs inline; with one it is detached from the request that produced it.
    """

    def __init__(
        self,
        *,
        executor: Optional[Executor] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._executor = executor
        self._metrics = metrics

    @classmethod
    def threaded(
        cls, *, workers: int, metrics: Optional[MetricsRegistry] = None
    ) -> "BestEffortDispatcher":
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="side-effect")
        return cls(executor=executor, metrics=metrics)

    def dispatch(self, kind: str, func: Callable[[], Any]) -> Optional[Future]:
        if self._executor is None:
            self._run(kind, func)
            return None
        return self._executor.submit(self._run, kind, func)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    def _run(self, kind: str, func: Callable[[], Any]) -> bool:
        try:
            func()
            return True
        except Exception:
            logger.exception("side_effect_failed kind=%s", kind)
            if self._metrics is not None:
                self._metrics.record_side_effect_failure(kind)
            return False


class AuditTrail:
    def __init__(self, store: RecruitingStore, dispatcher: BestEffortDispatcher) -> None:
        self.store = store
        self.dispatcher = dispatcher

    def record(
        self,
        action: str,
        *,
        success: bool,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        candidate_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        payload = dict(metadata or {})

        def write() -> None:
            self.store.insert_audit_log(
                action=action,
                success=success,
                user_id=user_id,
                company_id=company_id,
                candidate_id=candidate_id,
                metadata=payload,
            )

        self.dispatcher.dispatch("audit_log", write)


class Notifier:
    """Chat system messages and in-app notifications."""

    def __init__(self, store: RecruitingStore, dispatcher: BestEffortDispatcher) -> None:
        self.store = store
        self.dispatcher = dispatcher

    def application_message(
        self,
        application_id: str,
        text: str,
        *,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Post a system message into the application's conversation, if it has one."""

        def send() -> None:
            conversation = self.store.find_conversation_for_application(application_id)
            if conversation is None:
                return
            self.store.insert_message(
                conversation_id=conversation.id,
                sender_id=None,
                text=text,
                is_system_message=True,
                metadata=metadata,
            )

        self.dispatcher.dispatch("system_message", send)

    def notify_user(
        self,
        user_id: str,
        *,
        type: str,
        title: str,
        description: str,
        link: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        def send() -> None:
            self.store.insert_notification(
                user_id=user_id,
                type=type,
                title=title,
                description=description,
                link=link,
                metadata=metadata,
            )

        self.dispatcher.dispatch("notification", send)
