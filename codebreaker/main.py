"""
Client Codebreaker : point d'entrée console
===========================================

Rôle
----
- Racine de composition : settings → HttpTransport → SessionService (une instance, passée par référence).
- Branche des observateurs console (print) sur les canaux du hub.
- Joue une manche sur stdin/stdout : `python -m codebreaker.main [--pool ABCDE] [--length 2] [--resume ID]`.

Notes
-----
- Le moteur ne connaît pas la console : tout l'affichage passe par les abonnements.
- `:q` quitte la manche sans supprimer la partie distante (reprise possible avec --resume).
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable, List, Optional, Tuple

import anyio.to_thread

from codebreaker.config.settings import Settings, settings
from codebreaker.models.game import Game
from codebreaker.models.guess import Guess
from codebreaker.services.errors import ErrorKind, Failure, ServiceError
from codebreaker.services.observer_hub import Channel, Subscription
from codebreaker.services.session_service import SessionService
from codebreaker.services.transport import HttpTransport

logger = logging.getLogger(__name__)

QUIT_COMMAND = ":q"
# échecs après lesquels la manche ne peut pas continuer
FATAL_KINDS = (ErrorKind.NETWORK_FAILURE, ErrorKind.SERVER_FAULT, ErrorKind.NOT_FOUND)

LineReader = Callable[[str], Awaitable[str]]


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_service(config: Settings = settings) -> Tuple[SessionService, HttpTransport]:
    """Assemble le moteur et sa stratégie de transport (appelé une seule fois)."""
    transport = HttpTransport(config.BASE_URL, timeout=(config.CONNECT_TIMEOUT, config.READ_TIMEOUT))
    return SessionService(transport), transport


def format_guess(guess: Guess) -> str:
    return f"{guess.text}  exact={guess.exact_matches} near={guess.near_matches}"


def format_game(game: Optional[Game]) -> str:
    if game is None:
        return "(no game)"
    state = f"solved, code={game.text}" if game.solved else "in progress"
    return f"Game {game.id} [{game.pool} / {game.length}] {state}, {len(game.guesses)} guess(es)"


def attach_console(service: SessionService, write: Callable[[str], None] = print) -> List[Subscription]:
    """Observateurs console ; renvoie les handles pour pouvoir se détacher."""

    def on_error(failure: Failure) -> None:
        write(f"! {failure.kind.value}: {failure.message}")

    def on_solved(solved: bool) -> None:
        if solved and service.game is not None:
            write(f"Solved in {len(service.game.guesses)} guess(es)! The code was {service.game.text}.")

    return [
        service.subscribe(Channel.GAME, lambda game: write(format_game(game))),
        service.subscribe(Channel.GUESS, lambda guess: write(format_guess(guess))),
        service.subscribe(Channel.SOLVED, on_solved),
        service.subscribe(Channel.ERROR, on_error),
    ]


async def _stdin_reader(prompt: str) -> str:
    return await anyio.to_thread.run_sync(input, prompt)


async def play(
    service: SessionService,
    pool: str,
    length: int,
    *,
    resume_id: Optional[str] = None,
    read_line: LineReader = _stdin_reader,
) -> Optional[Game]:
    """
    Joue une manche jusqu'à résolution ou `:q`.
    - Les erreurs de saisie (INVALID_GUESS) sont affichées par l'observateur ERROR et on redemande.
    - Les échecs réseau/serveur interrompent la manche (ServiceError propagée).
    """
    if resume_id:
        game = await service.get_session(resume_id)
    else:
        game = await service.start_session(pool, length)

    while not game.solved:
        text = (await read_line(f"Guess ({game.length} from {game.pool}): ")).strip()
        if text == QUIT_COMMAND:
            break
        if not text:
            continue
        try:
            await service.submit_guess(text)
        except ServiceError as exc:
            if exc.kind in FATAL_KINDS:
                raise
        game = service.game or game
    return service.game


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="codebreaker", description="Codebreaker console client")
    parser.add_argument("--pool", default=settings.DEFAULT_POOL, help="Characters allowed in the code")
    parser.add_argument("--length", type=int, default=settings.DEFAULT_LENGTH, help="Code length")
    parser.add_argument("--resume", help="Id of an existing game to resume")
    args = parser.parse_args(argv)

    configure_logging(settings.LOG_LEVEL)
    logger.info("Starting client", extra={"app": settings.APP_NAME, "base_url": settings.BASE_URL})

    service, transport = build_service(settings)
    attach_console(service)
    try:
        asyncio.run(play(service, args.pool, args.length, resume_id=args.resume))
    except ServiceError as exc:
        logger.error("Game aborted", extra={"kind": exc.kind.value})
        return 1
    except (KeyboardInterrupt, EOFError):
        return 130
    finally:
        transport.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
