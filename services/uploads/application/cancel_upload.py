from __future__ import annotations

from services.uploads.application.asset_state_machine import (
    AssetStateMachine,
    Transition,
)
from services.uploads.application.interfaces import SessionRepository
from services.uploads.domain.errors import SessionNotFoundError


class CancelUploadUseCase:
    def __init__(
        self, *, sessions: SessionRepository, state_machine: AssetStateMachine
    ) -> None:
        self._sessions = sessions
        self._state_machine = state_machine

    async def execute(self, session_id: str) -> Transition:
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return await self._state_machine.cancel(session.session_id)
