# Copyright 2026 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.
"""Background run coordinator."""

import logging
import time
from threading import Lock, Thread
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

FailureCallback = Callable[[str, str], Any]


class RunCoordinator:
    """Runs one background thread per job.

    Faults escaping the thread target and runs exceeding the job budget are
    reported through ``on_failure(job_id, reason)``.
    """

    def __init__(
        self,
        on_failure: Optional[FailureCallback] = None,
        job_timeout_seconds: float = 900.0,
    ) -> None:
        self._lock = Lock()
        self._threads: dict[str, Thread] = {}
        self._started_at: dict[str, float] = {}
        self._expired: set[str] = set()
        self.on_failure = on_failure
        self.job_timeout_seconds = job_timeout_seconds

    def _cleanup_dead_locked(self) -> None:
        dead = [
            job_id for job_id, thread in self._threads.items() if not thread.is_alive()
        ]
        for job_id in dead:
            self._threads.pop(job_id, None)
            self._started_at.pop(job_id, None)
            self._expired.discard(job_id)

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            self._cleanup_dead_locked()
            thread = self._threads.get(job_id)
            return bool(thread and thread.is_alive())

    def start(self, job_id: str, target: Callable[[], Any]) -> bool:
        """Start background run if not already running."""
        with self._lock:
            self._cleanup_dead_locked()
            thread = self._threads.get(job_id)
            if thread and thread.is_alive():
                return False
            new_thread = Thread(
                target=self._guarded, args=(job_id, target), daemon=True
            )
            self._threads[job_id] = new_thread
            self._started_at[job_id] = time.monotonic()
            new_thread.start()
            return True

    def _guarded(self, job_id: str, target: Callable[[], Any]) -> None:
        try:
            target()
        except Exception as exc:
            logger.exception("Run for job %s crashed", job_id)
            self._report(job_id, f"{type(exc).__name__}: {exc}")

    def _report(self, job_id: str, reason: str) -> None:
        if self.on_failure is not None:
            self.on_failure(job_id, reason)

    def expire_overdue(self) -> list[str]:
        """Fail running jobs that have outlived the job budget.

        The worker thread cannot be killed; it keeps running and its later
        writes are rejected by the job state machine.
        """
        now = time.monotonic()
        with self._lock:
            self._cleanup_dead_locked()
            overdue = [
                job_id
                for job_id, started in self._started_at.items()
                if job_id not in self._expired
                and now - started > self.job_timeout_seconds
            ]
            self._expired.update(overdue)
        for job_id in overdue:
            logger.warning(
                "Job %s exceeded %g s budget", job_id, self.job_timeout_seconds
            )
            self._report(
                job_id, f"exceeded the {self.job_timeout_seconds:g} s time limit"
            )
        return overdue
