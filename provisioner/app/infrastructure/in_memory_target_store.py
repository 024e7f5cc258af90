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
"""Thread-safe in-memory target machine store."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from uuid import uuid4

from provisioner.app.domain.models import TargetDescriptor


@dataclass(frozen=True)
class TargetEntry:
    """Registered target machine."""

    target_id: str
    name: str
    descriptor: TargetDescriptor


class InMemoryTargetStore:
    """Stores target machines and resolves their SSH credentials."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._targets: dict[str, TargetEntry] = {}

    def add(self, name: str, descriptor: TargetDescriptor) -> TargetEntry:
        entry = TargetEntry(target_id=str(uuid4()), name=name, descriptor=descriptor)
        with self._lock:
            self._targets[entry.target_id] = entry
        return entry

    def list(self) -> list[TargetEntry]:
        with self._lock:
            return list(self._targets.values())

    def get(self, target_id: str) -> TargetEntry | None:
        with self._lock:
            return self._targets.get(target_id)

    def resolve(self, target_id: str) -> TargetDescriptor:
        """Connection descriptor for a target, or LookupError."""
        entry = self.get(target_id)
        if entry is None:
            raise LookupError(f"Target not found: {target_id}")
        return entry.descriptor

    def remove(self, target_id: str) -> bool:
        with self._lock:
            return self._targets.pop(target_id, None) is not None
