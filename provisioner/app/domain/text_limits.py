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
"""Byte-budget trimming for step output and failure diagnostics."""

from typing import Tuple


def trim_head(text: str, max_bytes: int) -> Tuple[str, bool]:
    """
    Trim text to max_bytes of UTF-8, keeping the head (earliest content).

    Args:
        text: Text to trim
        max_bytes: Maximum size in bytes

    Returns:
        Tuple of (trimmed_text, was_trimmed)
    """
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text, False
    return encoded[: max(max_bytes, 0)].decode("utf-8", errors="ignore"), True


def trim_tail(text: str, max_bytes: int) -> Tuple[str, bool]:
    """
    Trim text to max_bytes of UTF-8, keeping the tail (latest content).

    Failure diagnostics usually end with the actual error, so this is the
    variant used for error messages.
    """
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text, False
    if max_bytes <= 0:
        return "", True
    return encoded[-max_bytes:].decode("utf-8", errors="ignore"), True


def join_within(
    headline: str, detail: str, max_bytes: int, separator: str = ": "
) -> str:
    """
    Join headline and detail within max_bytes of UTF-8.

    The headline is kept whole when it fits; only the detail gives up its
    head to make room.
    """
    if not detail:
        return trim_head(headline, max_bytes)[0]
    room = max_bytes - len(headline.encode("utf-8")) - len(separator.encode("utf-8"))
    if room <= 0:
        return trim_head(headline, max_bytes)[0]
    tail, _ = trim_tail(detail, room)
    return f"{headline}{separator}{tail}"
