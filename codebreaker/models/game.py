"""
Models / game.py
Rôle:
- Snapshot immuable d'une partie Codebreaker (Game) et son builder.

Champs:
- id / created: attribués par le serveur à la création (absents avant).
- pool: caractères autorisés pour le code et les propositions.
- length: longueur du code (1..20).
- solved: drapeau autoritaire côté serveur, monotone (False → True).
- text: le code secret, présent exactement quand solved.
- guesses: propositions dans l'ordre de soumission (tuple, append-only).

Invariants vérifiés à la construction:
- solved ⇔ au moins une proposition gagnante ; text défini ⇔ solved.
- chaque proposition a la longueur du code et solution ⇔ exact_matches == length.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from codebreaker.models.guess import Guess
from codebreaker.services.validator import validate_new_game


class Game(BaseModel):
    """Partie immuable ; toute évolution produit une nouvelle instance."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: Optional[str] = None  # identifiant opaque, jamais réutilisé
    created: Optional[datetime] = None
    pool: str
    length: int = Field(..., ge=1)
    solved: bool = False
    text: Optional[str] = None  # secret révélé seulement une fois résolu
    guesses: Tuple[Guess, ...] = ()

    @model_validator(mode="after")
    def _check_invariants(self) -> "Game":
        if (self.text is not None) != self.solved:
            raise ValueError("text must be present exactly when the game is solved")
        for guess in self.guesses:
            if len(guess.text) != self.length:
                raise ValueError(f"guess {guess.id!r} does not match code length {self.length}")
            if guess.exact_matches > self.length or guess.near_matches > self.length:
                raise ValueError(f"guess {guess.id!r} reports more matches than code length")
            if guess.solution != (guess.exact_matches == self.length):
                raise ValueError(f"guess {guess.id!r} solution flag disagrees with exact matches")
        if self.solved != any(guess.solution for guess in self.guesses):
            raise ValueError("solved flag disagrees with guesses")
        return self

    def with_guess(self, guess: Guess) -> "Game":
        """Nouvelle partie avec `guess` ajoutée en fin (invariants revérifiés)."""
        fields = dict(self)
        fields["guesses"] = self.guesses + (guess,)
        return Game(**fields)

    def to_request(self) -> Dict[str, Any]:
        """Corps de `POST /games`."""
        return {"pool": self.pool, "length": self.length}


class GameBuilder:
    """
    Builder de Game. `build()` relance `validate_new_game` avant de construire,
    une partie invalide ne quitte donc jamais le builder.
    """

    def __init__(self) -> None:
        self._fields: Dict[str, Any] = {}

    def id(self, value: Optional[str]) -> "GameBuilder":
        self._fields["id"] = value
        return self

    def created(self, value: Optional[datetime]) -> "GameBuilder":
        self._fields["created"] = value
        return self

    def pool(self, value: str) -> "GameBuilder":
        self._fields["pool"] = value
        return self

    def length(self, value: int) -> "GameBuilder":
        self._fields["length"] = value
        return self

    def solved(self, value: bool) -> "GameBuilder":
        self._fields["solved"] = value
        return self

    def text(self, value: Optional[str]) -> "GameBuilder":
        self._fields["text"] = value
        return self

    def guesses(self, value: Tuple[Guess, ...]) -> "GameBuilder":
        self._fields["guesses"] = tuple(value)
        return self

    def build(self) -> Game:
        validate_new_game(self._fields.get("pool", ""), self._fields.get("length", 0))
        return Game(**self._fields)
