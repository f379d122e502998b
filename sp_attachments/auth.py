"""Bearer authentication for SharePoint Online via MSAL."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import msal
from requests import PreparedRequest
from requests.auth import AuthBase

from .config import Settings

logger = logging.getLogger(__name__)


class MsalBearerAuth(AuthBase):
    """``requests`` auth hook that stamps each request with an MSAL access token."""

    def __init__(self, settings: Settings, app: Any | None = None) -> None:
        self.settings = settings
        self.auth_mode = settings.sp_auth_mode
        self.scopes = settings.sp_scopes
        self._token_cache = None
        if not self.scopes:
            raise ValueError("SP_SCOPES or SP_BASE_URL is required to request SharePoint tokens.")

        if app is not None:
            self.app = app
        elif self.auth_mode == "client_credentials":
            self.app = msal.ConfidentialClientApplication(
                client_id=settings.sp_client_id,
                client_credential=settings.sp_client_secret,
                authority=settings.authority_url,
            )
        else:
            token_cache = msal.SerializableTokenCache()
            cache_path = settings.sp_token_cache
            if cache_path.exists():
                token_cache.deserialize(cache_path.read_text())
            self._token_cache = token_cache
            self.app = msal.PublicClientApplication(
                client_id=settings.sp_client_id,
                authority=settings.authority_url,
                token_cache=token_cache,
            )

    def __call__(self, request: PreparedRequest) -> PreparedRequest:
        request.headers["Authorization"] = f"Bearer {self.acquire_token()}"
        return request

    def acquire_token(self) -> str:
        if self.auth_mode == "client_credentials":
            result = self.app.acquire_token_silent(self.scopes, account=None) or self.app.acquire_token_for_client(
                scopes=self.scopes
            )
            return self._access_token(result)
        return self._access_token(self._device_flow_result())

    def _device_flow_result(self) -> dict:
        accounts = self.app.get_accounts()
        cached = self.app.acquire_token_silent(self.scopes, account=accounts[0]) if accounts else None
        if cached:
            return cached
        flow = self.app.initiate_device_flow(scopes=self.scopes)
        if "user_code" not in flow:
            raise RuntimeError(f"Unable to start device code flow: {flow}")
        logger.info(flow.get("message"))
        return self.app.acquire_token_by_device_flow(flow)

    def _access_token(self, result: dict) -> str:
        token = result.get("access_token")
        if not token:
            raise RuntimeError(f"Unable to obtain SharePoint token: {result.get('error_description')}")
        if self._token_cache is not None and self._token_cache.has_state_changed:
            cache_path: Path = self.settings.sp_token_cache
            cache_path.parent.mkdir(parents=True, exist_ok=True)
            cache_path.write_text(self._token_cache.serialize())
        return token
