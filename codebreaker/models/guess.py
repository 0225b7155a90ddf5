"""
Models / guess.py
Rôle:
- Une proposition (Guess) et son builder.

Champs:
- id / created: attribués par le serveur.
- text: séquence proposée (fournie par le client).
- exact_matches: bons caractères à la bonne position (calculé serveur).
- near_matches: bons caractères mal placés (calculé serveur).
- solution: True ssi exact_matches == longueur du code.

Notes:
- Modèle figé (frozen) : une proposition ajoutée à une partie n'est jamais modifiée.
- Le format réseau est en camelCase (`exactMatches`), les deux graphies sont acceptées.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from codebreaker.services.validator import validate_guess

if TYPE_CHECKING:
    from codebreaker.models.game import Game


class Guess(BaseModel):
    """Proposition immuable, telle que renvoyée par le service."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: Optional[str] = None  # identifiant opaque (aucune hypothèse de format)
    created: Optional[datetime] = None
    text: str
    exact_matches: int = Field(0, ge=0)
    near_matches: int = Field(0, ge=0)
    solution: bool = False

    def to_request(self) -> Dict[str, Any]:
        """Corps de `POST /games/{id}/guesses`."""
        return {"text": self.text}


class GuessBuilder:
    """
    Builder de Guess lié à la partie qui le recevra.
    `build()` relance la validation (longueur, pool, partie non résolue).
    """

    def __init__(self, game: "Game") -> None:
        self._game = game
        self._fields: Dict[str, Any] = {}

    def id(self, value: Optional[str]) -> "GuessBuilder":
        self._fields["id"] = value
        return self

    def created(self, value: Optional[datetime]) -> "GuessBuilder":
        self._fields["created"] = value
        return self

    def text(self, value: str) -> "GuessBuilder":
        self._fields["text"] = value
        return self

    def exact_matches(self, value: int) -> "GuessBuilder":
        self._fields["exact_matches"] = value
        return self

    def near_matches(self, value: int) -> "GuessBuilder":
        self._fields["near_matches"] = value
        return self

    def solution(self, value: bool) -> "GuessBuilder":
        self._fields["solution"] = value
        return self

    def build(self) -> Guess:
        validate_guess(self._game, self._fields.get("text", ""))
        return Guess(**self._fields)
