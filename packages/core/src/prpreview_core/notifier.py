"""EventNotifier: turns lifecycle events into GitHub PR comments.

Only public previews are announced. Posting failures are logged and dropped;
the build has already been stored by the time the event is seen.
"""

from __future__ import annotations

import logging
import threading

from prpreview_core.events import BuildCreated, EventQueue, LifecycleEvent, VisibilityChanged
from prpreview_core.gh.pull_request import add_comment

logger = logging.getLogger(__name__)


def preview_url(pr: int, sha: str, domain_name: str) -> str:
    return f"https://pr{pr}-{sha}.{domain_name}/"


class EventNotifier:
    def __init__(self, repo, domain_name: str):
        self._repo = repo
        self.domain_name = domain_name

    def comment_for(self, event: LifecycleEvent) -> str | None:
        """Return the comment body to post for ``event``, or None if nothing should be posted."""
        if not event.is_public:
            return None
        if isinstance(event, BuildCreated):
            shas = [event.sha]
        elif isinstance(event, VisibilityChanged):
            shas = list(event.shas)
        else:
            return None
        if not shas:
            return None
        return "\n".join(f"You can preview {sha} at {preview_url(event.pr, sha, self.domain_name)}." for sha in shas)

    def handle(self, event: LifecycleEvent) -> bool:
        """Post the comment for ``event``. Returns True if a comment was posted."""
        body = self.comment_for(event)
        if body is None:
            return False
        try:
            add_comment(self._repo, event.pr, body)
        except Exception as e:
            logger.warning("Could not post %s comment on PR #%d (%s): %s", event.type, event.pr, type(e).__name__, e)
            return False
        logger.info("Posted %s comment on PR #%d.", event.type, event.pr)
        return True

    def drain(self, events: EventQueue) -> int:
        """Deliver every event currently queued. Returns the number of events consumed."""
        count = 0
        while True:
            event = events.get_nowait()
            if event is None:
                return count
            self.handle(event)
            count += 1

    def run(self, events: EventQueue, stop: threading.Event, poll_interval: float = 0.5) -> None:
        """Consume events until ``stop`` is set, then deliver what is left."""
        while not stop.is_set():
            event = events.get(timeout=poll_interval)
            if event is not None:
                self.handle(event)
        self.drain(events)
