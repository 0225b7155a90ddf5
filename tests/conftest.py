"""
Fixtures partagées : un faux service Codebreaker en mémoire qui respecte le contrat `Transport`.
"""
from __future__ import annotations

import asyncio
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Tuple, Union

import pytest

from codebreaker.services.observer_hub import Channel
from codebreaker.services.session_service import SessionService
from codebreaker.services.transport import TransportFailure, TransportResponse

Scripted = Union[TransportResponse, BaseException]


def error_body(status: int, error: str, message: str, path: str) -> Dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status,
        "error": error,
        "message": message,
        "path": path,
        "details": {},
    }


class FakeCodebreaker:
    """
    Service distant simulé.
    - Calcule exact/near comme le vrai serveur.
    - `script(method, outcome)` force la prochaine réponse d'une méthode (réponse ou exception).
    - Mesure le nombre d'appels submit_guess simultanés (`max_in_flight`).
    """

    def __init__(
        self,
        secret: str = "AA",
        latency: float = 0.0,
        latencies: Dict[str, float] | None = None,
        reply_delay: float = 0.0,
    ) -> None:
        self.secret = secret
        self.latency = latency
        # délai par méthode (prioritaire sur `latency`)
        self.latencies: Dict[str, float] = dict(latencies or {})
        # délai entre l'enregistrement d'une proposition et la réponse à submit_guess
        self.reply_delay = reply_delay
        self.games: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.scripted: Dict[str, Deque[Scripted]] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self._counter = 0

    # ---------- pilotage ----------
    def script(self, method: str, outcome: Scripted) -> None:
        self.scripted.setdefault(method, deque()).append(outcome)

    def calls_to(self, method: str) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter:04d}"

    async def _enter(self, method: str, *args: Any) -> Scripted | None:
        self.calls.append((method, *args))
        await asyncio.sleep(self.latencies.get(method, self.latency))
        queue = self.scripted.get(method)
        if queue:
            outcome = queue.popleft()
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return None

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def _public(self, game: Dict[str, Any]) -> Dict[str, Any]:
        view = {k: v for k, v in game.items() if k != "secret"}
        view["guesses"] = list(game["guesses"])
        return view

    def _score(self, secret: str, text: str) -> Tuple[int, int]:
        exact = sum(1 for a, b in zip(secret, text) if a == b)
        common = sum((Counter(secret) & Counter(text)).values())
        return exact, common - exact

    # ---------- contrat Transport ----------
    async def create_game(self, pool: str, length: int) -> TransportResponse:
        scripted = await self._enter("create_game", pool, length)
        if scripted is not None:
            return scripted
        game_id = self._next_id("game-")
        self.games[game_id] = {
            "id": game_id,
            "created": self._now(),
            "pool": pool,
            "length": length,
            "solved": False,
            "text": None,
            "guesses": [],
            "secret": self.secret,
        }
        return TransportResponse(201, self._public(self.games[game_id]))

    async def get_game(self, game_id: str) -> TransportResponse:
        scripted = await self._enter("get_game", game_id)
        if scripted is not None:
            return scripted
        game = self.games.get(game_id)
        if game is None:
            return TransportResponse(404, error_body(404, "Not Found", "Game not found", f"/games/{game_id}"))
        return TransportResponse(200, self._public(game))

    async def delete_game(self, game_id: str) -> TransportResponse:
        scripted = await self._enter("delete_game", game_id)
        if scripted is not None:
            return scripted
        if self.games.pop(game_id, None) is None:
            return TransportResponse(404, error_body(404, "Not Found", "Game not found", f"/games/{game_id}"))
        return TransportResponse(204)

    async def submit_guess(self, game_id: str, text: str) -> TransportResponse:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            scripted = await self._enter("submit_guess", game_id, text)
            if scripted is not None:
                return scripted
            game = self.games.get(game_id)
            path = f"/games/{game_id}/guesses"
            if game is None:
                return TransportResponse(404, error_body(404, "Not Found", "Game not found", path))
            if game["solved"]:
                return TransportResponse(409, error_body(409, "Conflict", "Game already solved", path))
            if len(text) != game["length"] or any(ch not in game["pool"] for ch in text):
                return TransportResponse(400, error_body(400, "Bad Request", "Invalid guess", path))
            exact, near = self._score(game["secret"], text)
            guess = {
                "id": self._next_id("guess-"),
                "created": self._now(),
                "text": text,
                "exactMatches": exact,
                "nearMatches": near,
                "solution": exact == game["length"],
            }
            game["guesses"].append(guess)
            if guess["solution"]:
                game["solved"] = True
                game["text"] = game["secret"]
            if self.reply_delay:
                await asyncio.sleep(self.reply_delay)
            return TransportResponse(201, dict(guess))
        finally:
            self.in_flight -= 1

    async def get_guess(self, game_id: str, guess_id: str) -> TransportResponse:
        scripted = await self._enter("get_guess", game_id, guess_id)
        if scripted is not None:
            return scripted
        game = self.games.get(game_id) or {"guesses": []}
        for guess in game["guesses"]:
            if guess["id"] == guess_id:
                return TransportResponse(200, dict(guess))
        return TransportResponse(404, error_body(404, "Not Found", "Guess not found", f"/games/{game_id}/guesses/{guess_id}"))


class Recorder:
    """Observateur qui mémorise tout ce qu'il reçoit, par canal."""

    def __init__(self, service: SessionService) -> None:
        self.received: Dict[Channel, List[Any]] = {channel: [] for channel in Channel}
        for channel in Channel:
            service.subscribe(channel, self.received[channel].append)

    def __getitem__(self, channel: Channel) -> List[Any]:
        return self.received[channel]


@pytest.fixture
def fake() -> FakeCodebreaker:
    return FakeCodebreaker(secret="AA")


@pytest.fixture
def service(fake: FakeCodebreaker) -> SessionService:
    return SessionService(fake)


@pytest.fixture
def recorder(service: SessionService) -> Recorder:
    return Recorder(service)


@pytest.fixture
def network_down() -> TransportFailure:
    return TransportFailure("Codebreaker request failed")
