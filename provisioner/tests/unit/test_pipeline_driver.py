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
"""Unit tests for the pipeline driver."""

from unittest.mock import Mock

from provisioner.app.application.job_service import JobService
from provisioner.app.application.pipeline_driver import PipelineConfig, PipelineDriver
from provisioner.app.domain.errors import (
    AuthenticationError,
    CommandError,
    TransportError,
)
from provisioner.app.domain.models import JobParameters, JobStatus, TargetDescriptor
from provisioner.app.infrastructure.in_memory_job_store import InMemoryJobStore
from provisioner.app.infrastructure.in_memory_target_store import InMemoryTargetStore


class FakeSession:
    """Records calls; fails the Nth command if asked to."""

    def __init__(self, fail_on=None, error=None, connect_error=None, output="ok"):
        self.fail_on = fail_on
        self.error = error
        self.connect_error = connect_error
        self.output = output
        self.commands = []
        self.timeouts = []
        self.connected_to = None
        self.disconnect_calls = 0
        self.progress_seen = []
        self.store = None
        self.job_id = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect()

    def connect(self, target):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_to = target
        return self

    def execute_or_fail(self, command, timeout=None):
        if self.store is not None:
            job = self.store.get(self.job_id)
            self.progress_seen.append((job.current_step, job.progress))
        self.commands.append(command)
        self.timeouts.append(timeout)
        if self.fail_on is not None and len(self.commands) == self.fail_on:
            raise self.error
        return self.output

    def disconnect(self):
        self.disconnect_calls += 1


def build(session: FakeSession, domain="example.com", config=None):
    store = InMemoryJobStore()
    targets = InMemoryTargetStore()
    target = targets.add(
        "web-1", TargetDescriptor(address="203.0.113.10", password="secret")
    )
    service = JobService(repository=store)
    job = service.create_job(
        JobParameters(domain=domain, admin_email="admin@example.com"),
        target.target_id,
    )
    factory = Mock(return_value=session)
    driver = PipelineDriver(
        store=store, resolver=targets, session_factory=factory, config=config
    )
    session.store = store
    session.job_id = job.job_id
    return driver, store, service, job, factory


def test_all_steps_succeed():
    session = FakeSession()
    driver, store, _, job, factory = build(session, domain="HTTPS://Example.COM/")

    driver.run(job.job_id)

    result = store.get(job.job_id)
    assert result.status == JobStatus.SUCCEEDED
    assert result.progress == 100
    assert result.current_step == "Completed"
    assert result.result_url == "https://example.com/wp-admin"
    assert result.error_message is None
    assert result.started_at is not None
    assert result.completed_at is not None
    assert result.db_name == "wp_example_com"
    assert result.db_user.startswith("wpu_")
    assert len(session.commands) == 16
    assert session.connected_to.address == "203.0.113.10"
    assert session.disconnect_calls == 1
    factory.assert_called_once_with()


def test_progress_is_recorded_before_each_step_runs():
    session = FakeSession()
    driver, _, _, job, _ = build(session)

    driver.run(job.job_id)

    assert session.progress_seen[0] == ("Running pre-flight checks", 3)
    assert session.progress_seen[6] == ("Creating database", 48)
    assert session.progress_seen[-1] == ("Verifying installation", 98)
    progress = [value for _, value in session.progress_seen]
    assert progress == sorted(progress)


def test_step_timeouts_are_passed_to_session():
    session = FakeSession()
    driver, _, _, job, _ = build(session)

    driver.run(job.job_id)

    assert session.timeouts[1] == 900.0
    assert session.timeouts[0] == 120.0


def test_failing_step_marks_job_failed():
    session = FakeSession(
        fail_on=7, error=CommandError("mysql", 1, "ERROR 1045: Access denied")
    )
    driver, store, _, job, _ = build(session)

    driver.run(job.job_id)

    result = store.get(job.job_id)
    assert result.status == JobStatus.FAILED
    assert result.current_step == "Failed"
    assert "step 7 of 16 'Creating database'" in result.error_message
    assert "Access denied" in result.error_message
    assert result.completed_at is not None
    assert result.result_url is None
    assert len(session.commands) == 7
    assert session.disconnect_calls == 1
    for label in (
        "Running pre-flight checks",
        "Updating system packages",
        "Installing Nginx",
        "Installing MySQL",
        "Installing PHP 8.3",
        "Securing MySQL",
    ):
        assert f"✓ {label}" in result.log
    assert "✓ Creating database" not in result.log
    assert "Step: Creating database (48%)" in result.log
    assert result.progress == 48


def test_non_pending_job_is_left_untouched():
    session = FakeSession()
    driver, store, _, job, factory = build(session)
    store.try_start(job.job_id)
    before = store.get(job.job_id)

    driver.run(job.job_id)

    assert store.get(job.job_id) == before
    factory.assert_not_called()
    assert session.disconnect_calls == 0


def test_second_run_of_finished_job_is_a_no_op():
    session = FakeSession()
    driver, store, _, job, factory = build(session)
    driver.run(job.job_id)
    finished = store.get(job.job_id)

    driver.run(job.job_id)

    assert store.get(job.job_id) == finished
    assert factory.call_count == 1


def test_unknown_job_is_ignored():
    session = FakeSession()
    driver, _, _, _, factory = build(session)

    driver.run("missing-job")

    factory.assert_not_called()


def test_authentication_failure_fails_job_and_closes_session():
    session = FakeSession(connect_error=AuthenticationError("SSH authentication failed"))
    driver, store, _, job, _ = build(session)

    driver.run(job.job_id)

    result = store.get(job.job_id)
    assert result.status == JobStatus.FAILED
    assert result.error_message == "SSH authentication failed"
    assert session.commands == []
    assert session.disconnect_calls == 1


def test_unknown_target_fails_job_without_session():
    session = FakeSession()
    driver, store, _, job, factory = build(session)

    driver.run(job.job_id, target_id="no-such-target")

    result = store.get(job.job_id)
    assert result.status == JobStatus.FAILED
    assert "Target not found" in result.error_message
    factory.assert_not_called()


def test_transport_exhaustion_fails_job():
    session = FakeSession(
        fail_on=2, error=TransportError("Giving up after 3 attempts: reset")
    )
    driver, store, _, job, _ = build(session)

    driver.run(job.job_id)

    result = store.get(job.job_id)
    assert result.status == JobStatus.FAILED
    assert "step 2 of 16 'Updating system packages'" in result.error_message
    assert session.disconnect_calls == 1


def test_catalog_failure_fails_job():
    session = FakeSession()
    driver, store, _, job, factory = build(session)
    driver.catalog_factory = Mock(side_effect=KeyError("boom"))

    driver.run(job.job_id)

    result = store.get(job.job_id)
    assert result.status == JobStatus.FAILED
    assert result.error_message.startswith("Unexpected error: KeyError")
    factory.assert_not_called()


def test_step_output_is_head_truncated_in_log():
    session = FakeSession(output="START" + "x" * 5000 + "END")
    driver, store, _, job, _ = build(session, config=PipelineConfig(step_log_bytes=50))

    driver.run(job.job_id)

    log = store.get(job.job_id).log
    assert "START" in log
    assert "END" not in log
    assert "... [output truncated]" in log


def test_error_message_keeps_step_and_status_with_default_budgets():
    apt_tail = "".join(
        f"Get:{n} http://archive.ubuntu.com/ubuntu jammy/main amd64 pkg{n}\n"
        for n in range(20)
    )
    apt_tail = (apt_tail + "E: broken")[-1000:]
    session = FakeSession(fail_on=7, error=CommandError("mysql", 1, apt_tail))
    driver, store, _, job, _ = build(session)

    driver.run(job.job_id)

    message = store.get(job.job_id).error_message
    assert message.startswith(
        "Failed at step 7 of 16 'Creating database': Command exited with status 1"
    )
    assert message.endswith("E: broken")
    assert len(message.encode("utf-8")) <= 1000


def test_error_message_trims_only_the_output():
    session = FakeSession(
        fail_on=1, error=CommandError("check", 1, "noise " * 500 + "the real cause")
    )
    driver, store, _, job, _ = build(
        session, config=PipelineConfig(error_message_bytes=120)
    )

    driver.run(job.job_id)

    message = store.get(job.job_id).error_message
    assert len(message.encode("utf-8")) <= 120
    assert "step 1 of 16 'Running pre-flight checks'" in message
    assert "status 1" in message
    assert message.endswith("the real cause")


def test_error_message_headline_alone_is_head_trimmed():
    session = FakeSession(fail_on=1, error=CommandError("check", 1, "the real cause"))
    driver, store, _, job, _ = build(
        session, config=PipelineConfig(error_message_bytes=30)
    )

    driver.run(job.job_id)

    assert store.get(job.job_id).error_message == "Failed at step 1 of 16 'Runnin"


def test_failure_after_infrastructure_fail_is_not_overwritten():
    class FailingMidRun(FakeSession):
        def execute_or_fail(self, command, timeout=None):
            if len(self.commands) == 2:
                service.fail_job(self.job_id, "worker lost")
            return super().execute_or_fail(command, timeout)

    session = FailingMidRun()
    driver, store, service, job, _ = build(session)

    driver.run(job.job_id)

    result = store.get(job.job_id)
    assert result.status == JobStatus.FAILED
    assert result.error_message == "Job failed: worker lost"
    assert session.disconnect_calls == 1
