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
"""Unit tests for background run coordinator."""

import time
from threading import Event
from unittest.mock import Mock

from provisioner.app.infrastructure.run_coordinator import RunCoordinator


def wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_run_coordinator_rejects_duplicate_running_job():
    coordinator = RunCoordinator()

    def sleeper():
        time.sleep(0.2)

    first = coordinator.start("job-1", sleeper)
    second = coordinator.start("job-1", sleeper)

    assert first is True
    assert second is False
    assert coordinator.is_running("job-1") is True


def test_run_coordinator_allows_restart_after_thread_finishes():
    coordinator = RunCoordinator()

    def quick():
        time.sleep(0.05)

    assert coordinator.start("job-2", quick) is True
    assert wait_until(lambda: not coordinator.is_running("job-2"))
    assert coordinator.start("job-2", quick) is True


def test_escaped_exception_is_reported_as_failure():
    on_failure = Mock()
    coordinator = RunCoordinator(on_failure=on_failure)

    def crash():
        raise RuntimeError("worker lost")

    coordinator.start("job-3", crash)

    assert wait_until(lambda: on_failure.called)
    on_failure.assert_called_once_with("job-3", "RuntimeError: worker lost")


def test_clean_run_reports_nothing():
    on_failure = Mock()
    coordinator = RunCoordinator(on_failure=on_failure)

    coordinator.start("job-4", lambda: None)

    assert wait_until(lambda: not coordinator.is_running("job-4"))
    on_failure.assert_not_called()


def test_expire_overdue_reports_each_job_once():
    on_failure = Mock()
    coordinator = RunCoordinator(on_failure=on_failure, job_timeout_seconds=0.2)
    release = Event()

    coordinator.start("job-5", release.wait)
    assert coordinator.expire_overdue() == []
    time.sleep(0.3)

    assert coordinator.expire_overdue() == ["job-5"]
    assert coordinator.expire_overdue() == []
    on_failure.assert_called_once_with("job-5", "exceeded the 0.2 s time limit")

    release.set()
    assert wait_until(lambda: not coordinator.is_running("job-5"))
