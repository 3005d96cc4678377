"""
Click recording: the side-channel write path of a redirect.

Responsibilities:
    - Atomically bump the denormalized click counter on the link
    - Persist the rotation cursor (last write wins)
    - Classify the visitor and append an immutable AnalyticEvent

Every write is best effort. Failures are logged and swallowed; none of them
is retried and none can fail the redirect that triggered it. `submit_hit`
queues all three on the BackgroundWorker and returns immediately.
"""

import logging
from typing import Optional

from ..background import BackgroundWorker
from ..models import AnalyticEvent, RotationDecision, Visitor, new_id, utcnow
from ..storage.base import BaseStorage
from .classifier import Classifier

log = logging.getLogger(__name__)


class ClickRecorder:
    def __init__(self, storage: BaseStorage, classifier: Classifier, worker: BackgroundWorker):
        self.storage = storage
        self.classifier = classifier
        self.worker = worker

    # ---- individual writes (each safe to run on a worker thread) -------

    def record(self, link_id: str, event: AnalyticEvent) -> None:
        try:
            self.storage.add_event(event)
        except Exception:
            log.exception("Failed to record analytic event for link %s", link_id)

    def increment_clicks(self, link_id: str) -> None:
        try:
            if not self.storage.increment_click(link_id):
                log.warning("Click increment skipped: link %s no longer exists", link_id)
        except Exception:
            log.exception("Failed to increment clicks for link %s", link_id)

    def persist_cursor(self, link_id: str, index: int) -> None:
        try:
            self.storage.set_last_used_target_index(link_id, index)
        except Exception:
            log.exception("Failed to persist rotation cursor for link %s", link_id)

    def build_event(self, link_id: str, visitor: Visitor) -> AnalyticEvent:
        """Classify the visitor and stamp the event with the current UTC time."""
        c = self.classifier.classify(visitor.ip, visitor.user_agent, visitor.accept_language)
        return AnalyticEvent(
            id=new_id(),
            link_id=link_id,
            timestamp=utcnow(),
            ip_address=c.ip_address,
            user_agent=visitor.user_agent,
            country=c.country,
            city=c.city,
            device_type=c.device_type.value,
            browser=c.browser,
            os=c.os,
            referrer=visitor.referrer or None,
        )

    def record_hit(self, link_id: str, visitor: Visitor) -> None:
        try:
            event = self.build_event(link_id, visitor)
        except Exception:
            log.exception("Failed to classify visitor for link %s", link_id)
            return
        self.record(link_id, event)

    # ---- hot-path entry point ------------------------------------------

    def submit_hit(self, link_id: str, decision: Optional[RotationDecision], visitor: Visitor) -> None:
        """
        Queue the side effects of one hit. Returns without waiting.

        The cursor write is skipped when the decision carries no index.
        """
        self.worker.submit(self.increment_clicks, link_id)
        if decision is not None and decision.next_index_to_persist is not None:
            self.worker.submit(self.persist_cursor, link_id, decision.next_index_to_persist)
        self.worker.submit(self.record_hit, link_id, visitor)
