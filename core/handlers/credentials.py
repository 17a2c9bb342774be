"""
Upstream Credential Store

Holds the single upstream credential shared by every request. Supports a
fixed key, a rotating refresh-token flow, or forwarding whatever the
client sent. Refreshes are single-flight: concurrent callers that find the
token stale all await one exchange.
"""

from __future__ import annotations
import asyncio
import json
import time
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

import httpx

from config.settings import AuthConfig, EnvSettings
from core.exceptions import (
    ConfigurationError,
    NoCredentialError,
    RefreshFailedError,
)


logger = logging.getLogger("droid-gateway")

SECONDS_PER_HOUR = 3600


# =============================================================================
# Credential Sources
# =============================================================================

@dataclass(frozen=True)
class FixedKey:
    """Static key from the environment; never refreshed"""
    value: str


@dataclass(frozen=True)
class RefreshFlow:
    """Rotating refresh token exchanged for short-lived access tokens"""
    refresh_token: str
    client_id: str
    persist_path: Path
    access_token: Optional[str] = None


@dataclass(frozen=True)
class ClientSupplied:
    """Forward the authorization header each client sends"""
    pass


CredentialSource = Union[FixedKey, RefreshFlow, ClientSupplied]


@dataclass
class Credential:
    """Current upstream credential"""
    access_token: Optional[str]
    refresh_token: str
    issued_at: Optional[float] = None


def _read_auth_file(path: Path) -> Optional[dict]:
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error reading {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def resolve_credential_source(env: EnvSettings, auth: AuthConfig) -> Optional[CredentialSource]:
    """
    Pick the credential source by priority.

    1. FACTORY_API_KEY
    2. DROID_REFRESH_KEY (rotated token persisted to auth.env_auth_file)
    3. refresh_token in auth.auth_file
    4. client-supplied, if allowed
    """
    if env.factory_api_key and env.factory_api_key.strip():
        logger.info("Using fixed API key from FACTORY_API_KEY")
        return FixedKey(env.factory_api_key.strip())

    if env.refresh_key and env.refresh_key.strip():
        logger.info("Using refresh token from DROID_REFRESH_KEY")
        return RefreshFlow(
            refresh_token=env.refresh_key.strip(),
            client_id=auth.client_id,
            persist_path=auth.env_auth_file,
        )

    data = _read_auth_file(auth.auth_file)
    if data:
        refresh_token = str(data.get("refresh_token") or "").strip()
        if refresh_token:
            logger.info(f"Using refresh token from {auth.auth_file}")
            access_token = str(data.get("access_token") or "").strip() or None
            return RefreshFlow(
                refresh_token=refresh_token,
                client_id=auth.client_id,
                persist_path=auth.auth_file,
                access_token=access_token,
            )

    if auth.allow_client_auth:
        logger.info("No upstream credential configured, forwarding client authorization")
        return ClientSupplied()

    return None


# =============================================================================
# Credential Store
# =============================================================================

class CredentialStore:
    """
    Single owner of the upstream credential.

    Pass one instance to every request handler; all mutation goes through
    the single-flight refresh.
    """

    def __init__(
        self,
        source: CredentialSource,
        client: httpx.AsyncClient,
        auth: Optional[AuthConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.auth = auth or AuthConfig()
        self._client = client
        self._clock = clock
        self._refresh_task: Optional[asyncio.Task] = None

        self.credential: Optional[Credential] = None
        if isinstance(source, RefreshFlow):
            self.credential = Credential(
                access_token=source.access_token,
                refresh_token=source.refresh_token,
            )

    @classmethod
    def from_settings(
        cls,
        env: EnvSettings,
        auth: AuthConfig,
        client: httpx.AsyncClient,
    ) -> "CredentialStore":
        source = resolve_credential_source(env, auth)
        if source is None:
            raise ConfigurationError(
                "No upstream credential found. Set FACTORY_API_KEY or DROID_REFRESH_KEY, "
                f"or provide a refresh_token in {auth.auth_file}"
            )
        return cls(source, client, auth)

    @property
    def refresh_interval(self) -> float:
        return self.auth.refresh_interval_hours * SECONDS_PER_HOUR

    @property
    def expires_at(self) -> Optional[float]:
        """Nominal expiry of the cached access token"""
        if self.credential is None or self.credential.issued_at is None:
            return None
        return self.credential.issued_at + self.auth.token_valid_hours * SECONDS_PER_HOUR

    async def initialize(self) -> None:
        """Eagerly refresh so the first request does not pay for it"""
        if self.auth.refresh_interval_hours >= self.auth.token_valid_hours:
            logger.warning(
                f"Refresh interval ({self.auth.refresh_interval_hours}h) is not shorter "
                f"than token lifetime ({self.auth.token_valid_hours}h)"
            )

        if isinstance(self.source, RefreshFlow):
            await self._refresh_single_flight()
        logger.info(f"Auth system initialized ({type(self.source).__name__})")

    async def get_credential(self, client_auth: Optional[str] = None) -> str:
        """
        Authorization header value for the upstream call.

        Raises:
            NoCredentialError: client-supplied mode without a client header
            RefreshFailedError: the token endpoint rejected the exchange
        """
        if isinstance(self.source, FixedKey):
            return f"Bearer {self.source.value}"

        if isinstance(self.source, ClientSupplied):
            if not client_auth:
                raise NoCredentialError()
            return client_auth

        if self._is_fresh():
            return f"Bearer {self.credential.access_token}"

        logger.info("API key needs refresh")
        access_token = await self._refresh_single_flight()
        return f"Bearer {access_token}"

    def _is_fresh(self) -> bool:
        credential = self.credential
        if credential is None or not credential.access_token or credential.issued_at is None:
            return False
        return self._clock() - credential.issued_at < self.refresh_interval

    async def _refresh_single_flight(self) -> str:
        # Check-and-start happens without a suspension point in between
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh())
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> str:
        try:
            return await self._exchange()
        finally:
            self._refresh_task = None

    async def _exchange(self) -> str:
        credential = self.credential
        source = self.source
        logger.info("Refreshing API key...")

        try:
            response = await self._client.post(
                self.auth.token_url,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": credential.refresh_token,
                    "client_id": source.client_id,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            logger.error(f"Failed to refresh API key: {e}")
            raise RefreshFailedError(None, str(e)) from e

        if not response.is_success:
            logger.error(f"Failed to refresh API key: {response.status_code}")
            raise RefreshFailedError(response.status_code, response.text)

        try:
            data = response.json()
            access_token = data["access_token"]
            refresh_token = data["refresh_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise RefreshFailedError(response.status_code, f"Invalid token response: {e}") from e

        self.credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            issued_at=self._clock(),
        )

        user = data.get("user")
        if isinstance(user, dict):
            logger.info(
                f"Authenticated as: {user.get('email')} "
                f"({user.get('first_name')} {user.get('last_name')})"
            )
            logger.info(f"User ID: {user.get('id')}")
            logger.info(f"Organization ID: {data.get('organization_id')}")

        await asyncio.to_thread(self._save_tokens, source.persist_path, access_token, refresh_token)
        logger.info("API key refreshed successfully")
        return access_token

    @staticmethod
    def _save_tokens(path: Path, access_token: str, refresh_token: str) -> None:
        """Read-merge-write so unrelated fields in the file survive"""
        auth_data = _read_auth_file(path) or {}
        auth_data.update({
            "access_token": access_token,
            "refresh_token": refresh_token,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        })

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(auth_data, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save tokens to {path}: {e}")
            return
        logger.debug(f"Tokens saved to {path}")
