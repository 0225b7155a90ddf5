"""
Service: session_service.py
Rôle:
- Machine à états d'une session Codebreaker (une partie par instance).
- Seul propriétaire (et seul mutateur) du Game en cache ; les observateurs reçoivent des snapshots.
- Sérialise les propositions (file FIFO, une seule en vol) pour garantir l'ordre des guesses.
- Relaye chaque changement via l'ObserverHub (game, guess, solved, error).

États:
    UNINITIALIZED → STARTING → ACTIVE ⇄ SUBMITTING → COMPLETED
    TERMINATED atteignable depuis tout état (suppression).

API exposée à la couche présentation:
- start_session(pool, length)  → awaitable[Game]   (validation locale levée dès l'appel)
- submit_guess(text)           → awaitable[Guess]  (validation locale levée dès l'appel)
- await get_session(game_id)   → Game
- await get_guess(guess_id)    → Guess  (lecture seule, partie courante)
- await delete_session()       (idempotent : sans effet une fois TERMINATED)
- subscribe(channel, callback) → Subscription

Échecs:
- Toute erreur classifiée est publiée une fois sur le canal ERROR puis levée (`ServiceError`).
- Une exception hors contrat du transport est reclassée SERVER_FAULT ; l'état est toujours restauré.
- Un 409 sur une proposition alors que la session semblait ACTIVE déclenche un rechargement
  de l'état canonique : le serveur a raison contre le cache.
- Une proposition est liée à la partie courante au moment de l'appel : si get_session adopte
  une autre partie avant son envoi, elle échoue (NOT_FOUND local) sans être envoyée.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Collection, Deque, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from codebreaker.models.game import Game, GameBuilder
from codebreaker.models.guess import Guess, GuessBuilder
from .errors import (
    ErrorKind,
    Failure,
    Operation,
    ServiceError,
    SessionStateError,
    failure_from_response,
    failure_from_transport,
    invalid_payload,
    unexpected_failure,
)
from .observer_hub import Channel, Observer, ObserverHub, Subscription
from .transport import Transport, TransportFailure, TransportResponse

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class SessionStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    TERMINATED = "terminated"


_STARTABLE = (SessionStatus.UNINITIALIZED, SessionStatus.TERMINATED)
_PLAYABLE = (SessionStatus.ACTIVE, SessionStatus.SUBMITTING, SessionStatus.COMPLETED)


class SessionService:
    """
    Moteur de session. Une instance est construite à la racine de composition
    (voir `codebreaker.main.build_service`) puis passée aux consommateurs.
    """

    def __init__(self, transport: Transport, hub: Optional[ObserverHub] = None) -> None:
        self._transport = transport
        self.hub = hub or ObserverHub()
        self._status = SessionStatus.UNINITIALIZED
        self._game: Optional[Game] = None
        self._last_guess: Optional[Guess] = None
        # propositions en attente d'envoi : (id de la partie visée, texte, future de l'appelant)
        self._pending: Deque[Tuple[str, str, "asyncio.Future[Guess]"]] = deque()
        self._worker: Optional[asyncio.Task] = None
        # start/get/delete ne sont jamais en vol simultanément
        self._lifecycle_lock = asyncio.Lock()

    # === lecture ===
    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def game(self) -> Optional[Game]:
        return self._game

    @property
    def last_guess(self) -> Optional[Guess]:
        return self._last_guess

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def subscribe(self, channel: Channel, callback: Observer) -> Subscription:
        return self.hub.subscribe(channel, callback)

    # === opérations ===
    def start_session(self, pool: str, length: int) -> "asyncio.Task[Game]":
        """Crée une partie distante ; valide localement avant tout appel."""
        if self._status not in _STARTABLE:
            raise SessionStateError(f"Cannot start a session while {self._status.value}")
        request = self._checked(lambda: GameBuilder().pool(pool).length(length).build())
        loop = asyncio.get_running_loop()
        previous = self._status
        self._status = SessionStatus.STARTING
        return loop.create_task(self._guarded(self._start(request, previous)))

    def submit_guess(self, text: str) -> "asyncio.Future[Guess]":
        """
        Met une proposition en file. Les appels successifs sont envoyés un par un,
        dans l'ordre d'appel, même si l'appelant n'attend pas le résultat précédent.
        """
        if self._status not in _PLAYABLE or self._game is None:
            raise SessionStateError(f"Cannot submit a guess while {self._status.value}")
        game = self._game
        self._checked(lambda: GuessBuilder(game).text(text).build())
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[Guess]" = loop.create_future()
        self._pending.append((game.id, text, future))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return future

    async def get_session(self, game_id: str) -> Game:
        """Recharge et adopte une partie distante (reprise par id), depuis n'importe quel état."""
        async with self._lifecycle_lock:
            game = await self._guarded(self._fetch_game(game_id))
            self._adopt(game)
            logger.info("Session resumed", extra={"game_id": game.id, "solved": game.solved})
            return game

    async def get_guess(self, guess_id: str) -> Guess:
        """Relit une proposition de la partie courante ; ne modifie ni le cache ni l'état."""
        game = self._game
        if game is None or game.id is None:
            raise SessionStateError(f"No session to read guesses from while {self._status.value}")
        return await self._guarded(self._fetch_guess(game.id, guess_id))

    async def delete_session(self) -> None:
        """Supprime la partie courante ; un id déjà absent côté serveur compte comme un succès."""
        if self._status is SessionStatus.TERMINATED:
            logger.info("Session already deleted")
            return
        game = self._game
        if game is None or game.id is None:
            raise SessionStateError(f"No session to delete while {self._status.value}")
        async with self._lifecycle_lock:
            try:
                await self._call(Operation.DELETE_GAME, self._transport.delete_game, game.id, expected=(200, 204))
            except ServiceError as exc:
                if exc.kind is not ErrorKind.NOT_FOUND:
                    self._publish_failure(exc.failure)
                    raise
                logger.info("Session already absent on server", extra={"game_id": game.id})
            self._terminate()
            logger.info("Session deleted", extra={"game_id": game.id})

    # === orchestration ===
    async def _start(self, request: Game, previous: SessionStatus) -> Game:
        async with self._lifecycle_lock:
            try:
                response = await self._call(
                    Operation.CREATE_GAME,
                    self._transport.create_game,
                    request.pool,
                    request.length,
                    expected=(200, 201),
                )
                game = self._parse(Operation.CREATE_GAME, Game, response)
            except ServiceError:
                self._status = previous
                raise
            except Exception as exc:
                self._status = previous
                logger.exception("Unexpected error while starting a session")
                raise ServiceError(unexpected_failure(Operation.CREATE_GAME, exc)) from exc
            self._adopt(game)
            logger.info("Session started", extra={"game_id": game.id, "pool": game.pool, "length": game.length})
            return game

    async def _drain(self) -> None:
        """Worker unique : vide la file des propositions dans l'ordre FIFO."""
        while self._pending:
            game_id, text, future = self._pending.popleft()
            if future.done():
                # l'appelant a abandonné sa future
                continue
            try:
                guess = await self._submit(game_id, text)
            except ServiceError as exc:
                self._publish_failure(exc.failure)
                if not future.done():
                    future.set_exception(exc)
            except Exception as exc:
                self._settle()
                logger.exception("Unexpected error while submitting a guess", extra={"game_id": game_id})
                error = ServiceError(unexpected_failure(Operation.SUBMIT_GUESS, exc))
                error.__cause__ = exc
                self._publish_failure(error.failure)
                if not future.done():
                    future.set_exception(error)
            else:
                if not future.done():
                    future.set_result(guess)

    async def _submit(self, game_id: str, text: str) -> Guess:
        game = self._game
        if game is None or self._status is SessionStatus.TERMINATED:
            raise ServiceError.local(ErrorKind.NOT_FOUND, "Session was deleted before the guess was sent")
        if game.id != game_id:
            raise ServiceError.local(ErrorKind.NOT_FOUND, "Session switched to another game before the guess was sent")
        # la partie a pu être résolue pendant l'attente en file
        request = GuessBuilder(game).text(text).build()

        self._status = SessionStatus.SUBMITTING
        try:
            response = await self._call(
                Operation.SUBMIT_GUESS,
                self._transport.submit_guess,
                game.id,
                request.text,
                expected=(200, 201),
            )
            guess = self._parse(Operation.SUBMIT_GUESS, Guess, response)
            if guess.solution != (guess.exact_matches == game.length):
                raise ServiceError(invalid_payload(
                    Operation.SUBMIT_GUESS, response.status, "solution flag disagrees with exact matches"
                ))
        except ServiceError as exc:
            if exc.kind is ErrorKind.ALREADY_SOLVED and not exc.failure.local:
                await self._reconcile(game.id)
            self._settle()
            raise

        if self._game is None or self._game.id != game.id:
            logger.warning("Guess answered for a session no longer cached", extra={"game_id": game.id})
            self._settle()
            return guess

        if guess.solution:
            self._set_last_guess(guess)
            try:
                canonical = await self._fetch_game(game.id)
                if not canonical.solved:
                    raise ServiceError(invalid_payload(
                        Operation.GET_GAME, 200, "game not solved after a winning guess"
                    ))
            except ServiceError:
                self._settle()
                raise
            self._adopt(canonical)
            logger.info("Session solved", extra={"game_id": game.id, "guesses": len(canonical.guesses)})
        elif guess.id is not None and any(known.id == guess.id for known in self._game.guesses):
            # déjà adoptée via get_session pendant l'envoi
            self._settle()
        else:
            try:
                updated = self._game.with_guess(guess)
            except ValidationError as exc:
                self._settle()
                raise ServiceError(invalid_payload(Operation.SUBMIT_GUESS, response.status, str(exc))) from exc
            self._set_last_guess(guess)
            self._game = updated
            self._status = SessionStatus.ACTIVE
            self.hub.publish(Channel.GAME, updated)
        return guess

    async def _reconcile(self, game_id: str) -> None:
        """Le serveur annonce la partie résolue : on adopte son état canonique."""
        logger.warning("Guess rejected as already solved, reloading canonical state", extra={"game_id": game_id})
        try:
            canonical = await self._fetch_game(game_id)
        except ServiceError as exc:
            logger.warning(
                "Canonical reload failed",
                extra={"game_id": game_id, "kind": exc.kind.value},
            )
            return
        if self._game is not None and self._game.id == game_id:
            self._adopt(canonical)

    async def _fetch_game(self, game_id: str) -> Game:
        response = await self._call(Operation.GET_GAME, self._transport.get_game, game_id, expected=(200,))
        return self._parse(Operation.GET_GAME, Game, response)

    async def _fetch_guess(self, game_id: str, guess_id: str) -> Guess:
        response = await self._call(
            Operation.GET_GUESS, self._transport.get_guess, game_id, guess_id, expected=(200,)
        )
        return self._parse(Operation.GET_GUESS, Guess, response)

    # === état / notifications ===
    def _adopt(self, game: Game) -> None:
        current = self._game
        if current is not None and current.id == game.id and current.solved and not game.solved:
            # solved est monotone : un état canonique plus ancien est ignoré
            logger.warning("Ignoring stale unsolved state", extra={"game_id": game.id})
            return
        if game.guesses:
            if game.guesses[-1] != self._last_guess:
                self._set_last_guess(game.guesses[-1])
        else:
            self._last_guess = None
            self.hub.clear(Channel.GUESS)
        self._game = game
        self._status = SessionStatus.COMPLETED if game.solved else SessionStatus.ACTIVE
        self.hub.publish(Channel.GAME, game)
        if not self.hub.has_value(Channel.SOLVED) or self.hub.last(Channel.SOLVED) != game.solved:
            self.hub.publish(Channel.SOLVED, game.solved)

    def _set_last_guess(self, guess: Guess) -> None:
        self._last_guess = guess
        self.hub.publish(Channel.GUESS, guess)

    def _settle(self) -> None:
        """Fin d'envoi : SUBMITTING redevient ACTIVE (ou COMPLETED si résolue entre-temps)."""
        if self._status is SessionStatus.SUBMITTING:
            solved = self._game is not None and self._game.solved
            self._status = SessionStatus.COMPLETED if solved else SessionStatus.ACTIVE

    def _terminate(self) -> None:
        self._status = SessionStatus.TERMINATED
        self._game = None
        self._last_guess = None
        abandoned = list(self._pending)
        self._pending.clear()
        for _, _, future in abandoned:
            if future.done():
                continue
            exc = ServiceError.local(ErrorKind.NOT_FOUND, "Session was deleted before the guess was sent")
            self._publish_failure(exc.failure)
            future.set_exception(exc)
        self.hub.publish(Channel.GAME, None)
        self.hub.clear(Channel.GAME)
        self.hub.clear(Channel.GUESS)
        self.hub.clear(Channel.SOLVED)

    def _publish_failure(self, failure: Failure) -> None:
        self.hub.publish(Channel.ERROR, failure)

    # === utilitaires ===
    def _checked(self, build: Callable[[], ModelT]) -> ModelT:
        """Validation locale synchrone : publie puis relève l'échec, sans appel réseau."""
        try:
            return build()
        except ServiceError as exc:
            logger.info("Local validation failed", extra={"kind": exc.kind.value})
            self._publish_failure(exc.failure)
            raise

    async def _guarded(self, operation: Awaitable[ModelT]) -> ModelT:
        try:
            return await operation
        except ServiceError as exc:
            self._publish_failure(exc.failure)
            raise

    async def _call(
        self,
        operation: Operation,
        method: Callable[..., Awaitable[TransportResponse]],
        *args: Any,
        expected: Collection[int],
    ) -> TransportResponse:
        try:
            response = await method(*args)
        except TransportFailure as exc:
            raise ServiceError(failure_from_transport(operation, exc)) from exc
        except Exception as exc:
            logger.exception("Transport raised outside its contract", extra={"operation": operation.value})
            raise ServiceError(unexpected_failure(operation, exc)) from exc
        if response.status not in expected:
            failure = failure_from_response(operation, response.status, response.payload)
            log = logger.error if failure.kind is ErrorKind.SERVER_FAULT else logger.warning
            log(
                "Codebreaker call rejected",
                extra={"operation": operation.value, "status": response.status, "kind": failure.kind.value},
            )
            raise ServiceError(failure)
        return response

    @staticmethod
    def _parse(operation: Operation, model: Type[ModelT], response: TransportResponse) -> ModelT:
        try:
            return model.model_validate(response.payload)
        except ValidationError as exc:
            raise ServiceError(invalid_payload(operation, response.status, str(exc))) from exc
