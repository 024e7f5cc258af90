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
"""Error taxonomy for remote execution and pipeline runs."""

from __future__ import annotations


class RemoteSessionError(RuntimeError):
    """Base class for errors raised by a remote session."""


class AuthenticationError(RemoteSessionError):
    """No configured credential was accepted. Never retried."""


class TransportError(RemoteSessionError):
    """Connectivity failure: dropped session, socket timeout, lost output."""


class CommandError(RemoteSessionError):
    """Remote command finished with a non-zero exit status. Never retried."""

    def __init__(self, command: str, exit_code: int, output_tail: str):
        self.command = command
        self.exit_code = exit_code
        self.output_tail = output_tail
        lines = command.strip().splitlines()
        self.first_line = lines[0] if lines else ""
        super().__init__(f"{self.summary}: {self.first_line}\nOutput: {output_tail}")

    @property
    def summary(self) -> str:
        return f"Command exited with status {self.exit_code}"


class StepFailedError(RuntimeError):
    """A pipeline step failed; carries its position for reporting."""

    def __init__(self, ordinal: int, total: int, label: str, cause: Exception):
        self.ordinal = ordinal
        self.total = total
        self.label = label
        self.cause = cause
        super().__init__(f"{self.location}: {cause}")

    @property
    def location(self) -> str:
        return f"Failed at step {self.ordinal} of {self.total} '{self.label}'"
