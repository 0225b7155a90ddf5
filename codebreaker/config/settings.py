"""
Configuration du client (Settings)
==================================

Rôle
----
- Centraliser les paramètres du client Codebreaker (URL du service, timeouts, logs).
- Fournir les paramètres par défaut d'une partie (pool + longueur) pour la console.
- Les variables peuvent être surchargées via un fichier `.env` ou l'environnement.

Intégrations
------------
- `pydantic-settings` charge automatiquement les variables d'env et `.env`.
- La racine de composition (`codebreaker.main`) importe `from codebreaker.config.settings import settings`.

Exemples de `.env`
------------------
BASE_URL="http://localhost:8080/codebreaker-solitaire/"
LOG_LEVEL="DEBUG"
DEFAULT_POOL="ABCDEF"
DEFAULT_LENGTH=4
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Nom du client (apparaît dans les logs de démarrage)
    APP_NAME: str = "Codebreaker Client"

    # Racine du service distant (le slash final est normalisé par le transport)
    BASE_URL: str = "https://ddc-java.services/codebreaker-solitaire/"

    # Niveau de log global (DEBUG, INFO, WARNING, ...)
    LOG_LEVEL: str = "INFO"

    # Timeouts HTTP (secondes) : connexion, lecture
    CONNECT_TIMEOUT: float = 5.0
    READ_TIMEOUT: float = 30.0

    # Partie par défaut lancée par la console
    DEFAULT_POOL: str = "ABCDE"
    DEFAULT_LENGTH: int = 2

    # Paramétrage pydantic-settings :
    # - lit le fichier .env (UTF-8) si présent
    # - ignore les clés supplémentaires pour éviter les erreurs
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


# Instance unique importable partout : `settings`
settings = Settings()
