"""
Service: transport.py
- Contrat consommé par le moteur (`Transport`) : une méthode par ressource du service Codebreaker.
- Implémentation HTTP (`HttpTransport`) : session `requests`, JSON via orjson,
  appels bloquants déportés dans un thread worker (anyio) pour garder l'API asynchrone.

Contrat:
- Chaque méthode renvoie un `TransportResponse(status, payload)` dès qu'une réponse HTTP existe,
  quel que soit le code (la classification est faite par le moteur).
- `TransportFailure` est levée quand aucune réponse n'a été reçue (connexion, timeout).
- Aucune relance automatique : la politique de retry appartient à l'appelant.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple
from urllib.parse import quote, urljoin
from uuid import uuid4

import anyio.to_thread
import orjson
import requests
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: Tuple[float, float] = (5.0, 30.0)  # connect, read
JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}


@dataclass(frozen=True)
class TransportResponse:
    status: int
    payload: Any = None  # JSON décodé (None si corps vide ou illisible)


class TransportFailure(RuntimeError):
    """Aucune réponse reçue du service (connexion refusée, DNS, timeout...)."""


class Transport(Protocol):
    async def create_game(self, pool: str, length: int) -> TransportResponse: ...

    async def get_game(self, game_id: str) -> TransportResponse: ...

    async def delete_game(self, game_id: str) -> TransportResponse: ...

    async def submit_guess(self, game_id: str, text: str) -> TransportResponse: ...

    async def get_guess(self, game_id: str, guess_id: str) -> TransportResponse: ...


class HttpTransport:
    """
    Client HTTP du service Codebreaker.
    - Journalise chaque requête avec un identifiant de corrélation.
    - Pas de retry (max_retries=0) : NETWORK_FAILURE doit remonter tel quel.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, float] = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.session = session or self._build_session()
        self.timeout = timeout

    @staticmethod
    def _build_session() -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=0, pool_connections=1, pool_maxsize=4)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update(JSON_HEADERS)
        return session

    def _url(self, *segments: str) -> str:
        path = "/".join(quote(segment, safe="") for segment in segments)
        return urljoin(self.base_url, path)

    @staticmethod
    def _decode(response: requests.Response, request_id: str) -> Any:
        if not response.content:
            return None
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError:
            logger.warning(
                "Undecodable JSON body from Codebreaker service",
                extra={"request_id": request_id, "status": response.status_code},
            )
            return None

    def _request(
        self,
        method: str,
        url: str,
        *,
        request_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> TransportResponse:
        data = orjson.dumps(payload) if payload is not None else None
        try:
            logger.debug(
                "Codebreaker request start",
                extra={"method": method, "url": url, "request_id": request_id},
            )
            response = self.session.request(method, url, data=data, timeout=self.timeout)
        except requests.Timeout as exc:
            logger.warning(
                "Codebreaker request timeout",
                extra={"method": method, "url": url, "request_id": request_id},
            )
            raise TransportFailure("Codebreaker request timed out") from exc
        except requests.RequestException as exc:
            logger.error(
                "Codebreaker request failed",
                exc_info=True,
                extra={"method": method, "url": url, "request_id": request_id},
            )
            raise TransportFailure("Codebreaker request failed") from exc

        result = TransportResponse(status=response.status_code, payload=self._decode(response, request_id))
        logger.debug(
            "Codebreaker request done",
            extra={"method": method, "url": url, "request_id": request_id, "status": result.status},
        )
        return result

    async def _call(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> TransportResponse:
        request_id = f"{method.lower()}-{uuid4().hex}"
        call = functools.partial(self._request, method, url, request_id=request_id, payload=payload)
        return await anyio.to_thread.run_sync(call)

    # ---------- ressources ----------
    async def create_game(self, pool: str, length: int) -> TransportResponse:
        return await self._call("POST", self._url("games"), {"pool": pool, "length": length})

    async def get_game(self, game_id: str) -> TransportResponse:
        return await self._call("GET", self._url("games", game_id))

    async def delete_game(self, game_id: str) -> TransportResponse:
        return await self._call("DELETE", self._url("games", game_id))

    async def submit_guess(self, game_id: str, text: str) -> TransportResponse:
        return await self._call("POST", self._url("games", game_id, "guesses"), {"text": text})

    async def get_guess(self, game_id: str, guess_id: str) -> TransportResponse:
        return await self._call("GET", self._url("games", game_id, "guesses", guess_id))

    def shutdown(self) -> None:
        """Ferme le pool de connexions."""
        self.session.close()
