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
"""Simulation session for API-level scaffolding."""

from __future__ import annotations

import os
import time
from typing import Optional, Tuple

from provisioner.app.domain.errors import TransportError
from provisioner.app.domain.models import TargetDescriptor


class SimulatedRemoteSession:
    """Pretends every command succeeds without touching the network."""

    def __init__(self) -> None:
        self._target: Optional[TargetDescriptor] = None

    def __enter__(self) -> "SimulatedRemoteSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    @property
    def is_connected(self) -> bool:
        return self._target is not None

    def connect(self, target: TargetDescriptor) -> "SimulatedRemoteSession":
        self._target = target
        return self

    def execute(self, command: str, timeout: Optional[float] = None) -> str:
        del timeout
        if self._target is None:
            raise TransportError("Not connected to any server. Call connect() first.")
        delay_ms = int(os.getenv("PROVISIONER_SIMULATED_DELAY_MS", "0").strip() or "0")
        if delay_ms > 0:
            time.sleep(delay_ms / 1000.0)
        line_count = len(command.splitlines())
        return f"simulated run on {self._target.key}: {line_count} lines"

    def execute_or_fail(self, command: str, timeout: Optional[float] = None) -> str:
        return self.execute(command, timeout)

    def test_connectivity(
        self, target: TargetDescriptor
    ) -> Tuple[bool, Optional[str]]:
        self.connect(target)
        self.disconnect()
        return True, None

    def disconnect(self) -> None:
        self._target = None
