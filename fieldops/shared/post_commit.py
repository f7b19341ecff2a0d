"""
Best-effort follow-up work that runs after a primary write has committed.

Each task fails independently: its error is logged and recorded, the session is
rolled back so the next task starts from a clean transaction, and nothing is
raised to the caller.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class PostCommitTasks:
    def __init__(self, db: Optional[Session] = None, context: str = ""):
        self.db = db
        self.context = context
        self.tasks: list[tuple[str, Callable[[], None]]] = []
        self.failures: list[tuple[str, str]] = []

    def add(self, name: str, task: Callable[[], None]) -> "PostCommitTasks":
        self.tasks.append((name, task))
        return self

    def run(self) -> list[tuple[str, str]]:
        for name, task in self.tasks:
            try:
                task()
            except Exception as e:
                logger.error(f"⚠️ {self.context} post-commit task '{name}' failed (non-fatal): {e}")
                self.failures.append((name, str(e)))
                if self.db is not None:
                    self.db.rollback()
        return self.failures
