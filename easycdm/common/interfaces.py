"""
Interfaces and protocols shared by the CDM implementations.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from easycdm.common.models import Key, KeyMessage, SessionType


class Cdm(Protocol):
    """Capability shared by every key system, local or remote."""

    key_system: str

    def create_session(self, session_type: SessionType = "temporary") -> str: ...

    def generate_request(
        self, session_id: str, init_data: bytes, init_data_type: str = "cenc"
    ) -> KeyMessage: ...

    def update_session(self, session_id: str, response: bytes) -> KeyMessage | None: ...

    def close_session(self, session_id: str) -> None: ...

    def remove_session(self, session_id: str) -> None: ...

    def get_keys(self, session_id: str) -> list[Key]: ...


@runtime_checkable
class PausableCdm(Cdm, Protocol):
    """A CDM whose sessions can be serialized and restored."""

    def pause_session(self, session_id: str) -> str: ...

    def resume_session(self, state: str) -> str: ...
