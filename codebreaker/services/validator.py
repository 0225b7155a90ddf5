"""
Service: validator.py
- Vérifications locales (pures, synchrones) avant tout appel réseau.
- validate_new_game(pool, length) → INVALID_PARAMETERS
- validate_guess(game, text)      → ALREADY_SOLVED / INVALID_GUESS

Ne touche jamais au transport : c'est le chemin d'échec rapide.
"""
from __future__ import annotations

import unicodedata
from typing import TYPE_CHECKING

from .errors import ErrorKind, ServiceError

if TYPE_CHECKING:
    from codebreaker.models.game import Game

MIN_CODE_LENGTH = 1
MAX_CODE_LENGTH = 20
MIN_POOL_LENGTH = 1
MAX_POOL_LENGTH = 255


def _is_allowed_code_point(ch: str) -> bool:
    """Code point défini, ni espace ni caractère de contrôle."""
    category = unicodedata.category(ch)
    return category not in ("Cn", "Cc") and not ch.isspace()


def validate_new_game(pool: str, length: int) -> None:
    if not isinstance(length, int) or isinstance(length, bool):
        raise ServiceError.local(ErrorKind.INVALID_PARAMETERS, "Code length must be an integer")
    if not MIN_CODE_LENGTH <= length <= MAX_CODE_LENGTH:
        raise ServiceError.local(
            ErrorKind.INVALID_PARAMETERS,
            f"Code length must be between {MIN_CODE_LENGTH} and {MAX_CODE_LENGTH}",
        )
    if not isinstance(pool, str) or not MIN_POOL_LENGTH <= len(pool) <= MAX_POOL_LENGTH:
        raise ServiceError.local(
            ErrorKind.INVALID_PARAMETERS,
            f"Pool must contain between {MIN_POOL_LENGTH} and {MAX_POOL_LENGTH} characters",
        )
    if not all(_is_allowed_code_point(ch) for ch in pool):
        raise ServiceError.local(
            ErrorKind.INVALID_PARAMETERS,
            "Pool must not contain whitespace, control or undefined characters",
        )


def validate_guess(game: "Game", text: str) -> None:
    """
    Vérifie une proposition contre la partie en cache.
    - Partie résolue → ALREADY_SOLVED (prioritaire).
    - Longueur ≠ game.length ou caractère hors pool → INVALID_GUESS.
    """
    if game.solved:
        raise ServiceError.local(ErrorKind.ALREADY_SOLVED)
    if not isinstance(text, str) or len(text) != game.length:
        raise ServiceError.local(
            ErrorKind.INVALID_GUESS, f"Guess must be exactly {game.length} characters long"
        )
    pool = set(game.pool)
    if any(ch not in pool for ch in text):
        raise ServiceError.local(
            ErrorKind.INVALID_GUESS, f"Guess may only use characters from {game.pool!r}"
        )
