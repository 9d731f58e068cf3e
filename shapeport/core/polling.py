# Copyright 2026 Pramod Kumar Voola
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

# -----------------------------------------------------------------------------
# TRANSLATION POLLING - STATE MACHINE
# -----------------------------------------------------------------------------
# States: SUBMITTED -> POLLING(attempt) -> DONE | FAILED | TIMED_OUT
#
# `advance` is a pure transition driven by one status payload from the
# provider. The dispatcher owns the sleeping and the HTTP calls.
# -----------------------------------------------------------------------------

from dataclasses import dataclass
from enum import Enum


class PollPhase(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_PHASES = (PollPhase.DONE, PollPhase.FAILED, PollPhase.TIMED_OUT)


@dataclass(frozen=True)
class PollState:
    """Where a translation job stands after `attempt` status checks."""

    phase: PollPhase = PollPhase.SUBMITTED
    attempt: int = 0
    result_ids: tuple[str, ...] = ()
    reason: str | None = None

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


def advance(state: PollState, status: dict, max_attempts: int) -> PollState:
    """
    Apply one status response.

    Args:
        state: Current state. Terminal states are returned unchanged.
        status: Translation status payload (`requestState`,
            `resultExternalDataIds`, `failureReason`).
        max_attempts: Polling ceiling; reaching it without DONE/FAILED
            times out.
    """
    if state.terminal:
        return state

    attempt = state.attempt + 1
    request_state = str(status.get("requestState", "")).upper()

    if request_state == "DONE":
        ids = tuple(status.get("resultExternalDataIds") or ())
        return PollState(PollPhase.DONE, attempt, result_ids=ids)
    if request_state == "FAILED":
        reason = status.get("failureReason") or "Unknown"
        return PollState(PollPhase.FAILED, attempt, reason=reason)
    if attempt >= max_attempts:
        return PollState(PollPhase.TIMED_OUT, attempt)
    return PollState(PollPhase.POLLING, attempt)
