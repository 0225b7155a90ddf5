"""
Service: errors.py
- Taxonomie fermée des échecs du client (ErrorKind) + valeur d'échec immuable (Failure).
- Classification des issues de transport (statut HTTP ou absence de réponse) en ErrorKind.

Règles:
- Le classifieur ne fait qu'étiqueter : aucune relance, aucune récupération.
- Seul `status` du corps d'erreur serveur est interprété ; le reste est transmis tel quel
  aux observateurs (champ `detail`).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class ErrorKind(str, Enum):
    INVALID_PARAMETERS = "invalid_parameters"
    INVALID_GUESS = "invalid_guess"
    ALREADY_SOLVED = "already_solved"
    NOT_FOUND = "not_found"
    NETWORK_FAILURE = "network_failure"
    SERVER_FAULT = "server_fault"


class Operation(str, Enum):
    """Opérations du contrat de transport (la classification en dépend)."""
    CREATE_GAME = "create_game"
    GET_GAME = "get_game"
    DELETE_GAME = "delete_game"
    SUBMIT_GUESS = "submit_guess"
    GET_GUESS = "get_guess"


# Opérations portant sur un id existant (un 404 y signifie NOT_FOUND)
_ID_OPERATIONS = frozenset({
    Operation.GET_GAME,
    Operation.DELETE_GAME,
    Operation.SUBMIT_GUESS,
    Operation.GET_GUESS,
})

_DEFAULT_MESSAGES = {
    ErrorKind.INVALID_PARAMETERS: "Invalid game parameters",
    ErrorKind.INVALID_GUESS: "Invalid guess",
    ErrorKind.ALREADY_SOLVED: "Game already solved",
    ErrorKind.NOT_FOUND: "Game or guess not found",
    ErrorKind.NETWORK_FAILURE: "No response from the Codebreaker service",
    ErrorKind.SERVER_FAULT: "Unexpected response from the Codebreaker service",
}


def _freeze(value: Any) -> Any:
    """Copie en lecture seule, récursive (mappings → MappingProxyType, listes → tuples)."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


@dataclass(frozen=True)
class Failure:
    """Échec classifié, livré une seule fois par opération échouée."""
    kind: ErrorKind
    message: str
    operation: Optional[Operation] = None
    status: Optional[int] = None  # None si aucune réponse (ou échec local)
    detail: Optional[Mapping[str, Any]] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.detail is not None:
            object.__setattr__(self, "detail", _freeze(self.detail))

    @property
    def local(self) -> bool:
        """True si l'échec vient de la validation locale (aucun appel réseau)."""
        return self.operation is None


class ServiceError(RuntimeError):
    """Exception unique portant un `Failure` typé."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(failure.message)
        self.failure = failure

    @property
    def kind(self) -> ErrorKind:
        return self.failure.kind

    @classmethod
    def local(cls, kind: ErrorKind, message: Optional[str] = None) -> "ServiceError":
        return cls(Failure(kind=kind, message=message or _DEFAULT_MESSAGES[kind]))


class SessionStateError(RuntimeError):
    """Appel incompatible avec l'état courant de la session (erreur de programmation)."""


def classify(operation: Operation, status: Optional[int]) -> ErrorKind:
    """Associe une issue de transport à un ErrorKind. `status=None` = pas de réponse."""
    if status is None:
        return ErrorKind.NETWORK_FAILURE
    if status == 400:
        if operation is Operation.CREATE_GAME:
            return ErrorKind.INVALID_PARAMETERS
        if operation is Operation.SUBMIT_GUESS:
            return ErrorKind.INVALID_GUESS
    if status == 404 and operation in _ID_OPERATIONS:
        return ErrorKind.NOT_FOUND
    if status == 409 and operation is Operation.SUBMIT_GUESS:
        return ErrorKind.ALREADY_SOLVED
    return ErrorKind.SERVER_FAULT


def failure_from_response(operation: Operation, status: int, payload: Any = None) -> Failure:
    """Construit le Failure d'une réponse en erreur ; le corps d'erreur est conservé tel quel."""
    kind = classify(operation, status)
    detail = payload if isinstance(payload, Mapping) else None
    message = (detail or {}).get("message") or _DEFAULT_MESSAGES[kind]
    return Failure(kind=kind, message=str(message), operation=operation, status=status, detail=detail)


def failure_from_transport(operation: Operation, exc: BaseException) -> Failure:
    """Failure NETWORK_FAILURE : aucune réponse reçue (connexion, timeout)."""
    message = str(exc) or _DEFAULT_MESSAGES[ErrorKind.NETWORK_FAILURE]
    return Failure(kind=ErrorKind.NETWORK_FAILURE, message=message, operation=operation)


def invalid_payload(operation: Operation, status: int, reason: str) -> Failure:
    """Réponse 2xx inexploitable (JSON invalide, invariants violés) : faute serveur."""
    return Failure(
        kind=ErrorKind.SERVER_FAULT,
        message=f"Invalid payload from Codebreaker service: {reason}",
        operation=operation,
        status=status,
    )


def unexpected_failure(operation: Operation, exc: BaseException) -> Failure:
    """Exception hors contrat levée pendant l'opération : classée faute serveur, jamais propagée brute."""
    return Failure(
        kind=ErrorKind.SERVER_FAULT,
        message=f"Unexpected error during {operation.value}: {type(exc).__name__}: {exc}",
        operation=operation,
    )
