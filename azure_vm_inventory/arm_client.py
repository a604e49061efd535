from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, List, Optional

import requests

from .errors import (
    ArmRequestError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
)
from .settings import Settings

logger = logging.getLogger(__name__)

_TOKEN_REFRESH_MARGIN = 120
_ERROR_TEXT_MAX_LEN = 200


@dataclass
class TokenState:
    token: str
    expires_at: float


def _now() -> float:
    return time.time()


def _token_valid(state: Optional[TokenState]) -> bool:
    if state is None:
        return False
    return (state.expires_at - _TOKEN_REFRESH_MARGIN) > _now()


def _safe_error_text(response: requests.Response) -> str:
    try:
        text = response.text or ""
    except Exception:
        return ""
    text = text.strip()
    if len(text) > _ERROR_TEXT_MAX_LEN:
        return f"{text[:_ERROR_TEXT_MAX_LEN]}..."
    return text


def _auth_failure(status_code: int, payload: Optional[Dict[str, Any]] = None) -> AuthenticationError:
    detail = f"Azure auth failed ({status_code})"
    if payload:
        msg = payload.get("error_description") or payload.get("error")
        if msg:
            detail = f"{detail}: {str(msg)[:_ERROR_TEXT_MAX_LEN]}"
    return AuthenticationError(detail)


def _arm_failure(status_code: int, response: requests.Response) -> Exception:
    text = _safe_error_text(response)
    detail = f"Azure ARM error ({status_code})"
    if text:
        detail = f"{detail}: {text}"
    if status_code == 401:
        return AuthenticationError(detail)
    if status_code == 403:
        return AuthorizationError(detail)
    return ArmRequestError(status_code, detail)


class AzureArmClient:
    """Minimal Resource Manager client: client-credential token plus JSON GETs."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.tenant_id = settings.azure_tenant_id
        self.client_id = settings.azure_client_id
        self.client_secret = settings.azure_client_secret
        self.base_url = (settings.azure_api_base or "https://management.azure.com").rstrip("/")
        self.authority_host = (settings.azure_authority_host or "https://login.microsoftonline.com").rstrip("/")
        self.timeout = settings.request_timeout_sec
        self.compute_api_version = settings.azure_api_version_compute
        self.network_api_version = settings.azure_api_version_network
        self.resources_api_version = settings.azure_api_version_resources
        self.subscriptions_api_version = settings.azure_api_version_subscriptions
        self.classic_compute_api_version = settings.azure_api_version_classic_compute
        self._token_lock = Lock()
        self._token_state: Optional[TokenState] = None

    def _ensure_configured(self) -> None:
        missing = self.settings.azure_missing_envs or []
        if missing:
            raise ConfigurationError("Azure configuration incomplete", missing=missing)

    def _token_url(self) -> str:
        tenant = (self.tenant_id or "").strip()
        return f"{self.authority_host}/{tenant}/oauth2/v2.0/token"

    def _request_token(self) -> TokenState:
        self._ensure_configured()
        data = {
            "client_id": self.client_id or "",
            "client_secret": self.client_secret or "",
            "grant_type": "client_credentials",
            "scope": f"{self.base_url}/.default",
        }
        try:
            resp = self.session.post(self._token_url(), data=data, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AuthenticationError(f"Error connecting to Azure OAuth: {exc}") from exc

        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            raise _auth_failure(resp.status_code, payload)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise AuthenticationError("Invalid OAuth response (not JSON)") from exc

        token = payload.get("access_token")
        if not token:
            raise AuthenticationError("OAuth response without access_token")
        expires_in = payload.get("expires_in")
        try:
            expires_in_int = int(expires_in) if expires_in is not None else 3600
        except (TypeError, ValueError):
            expires_in_int = 3600
        expires_at = _now() + max(expires_in_int, 60)
        logger.debug("Acquired ARM token for tenant %s (expires in %ss)", self.tenant_id, expires_in_int)
        return TokenState(token=token, expires_at=expires_at)

    def get_token(self) -> str:
        if _token_valid(self._token_state):
            return self._token_state.token
        with self._token_lock:
            if _token_valid(self._token_state):
                return self._token_state.token
            self._token_state = self._request_token()
            return self._token_state.token

    def reset_token(self) -> None:
        with self._token_lock:
            self._token_state = None

    def request_json(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        reauth: bool = True,
    ) -> Dict[str, Any]:
        """Send one authenticated request and decode the JSON body.

        A 401 resets the cached token and the call is replayed once with a
        fresh one; any other status >= 400 raises immediately.
        """
        token = self.get_token()
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
        }

        try:
            response = self.session.request(method, url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ArmRequestError(502, f"Error connecting to Azure ARM: {exc}") from exc

        # An expired or revoked token gets exactly one fresh attempt.
        if response.status_code == 401 and reauth:
            self.reset_token()
            return self.request_json(method, url, params=params, reauth=False)

        if response.status_code >= 400:
            raise _arm_failure(response.status_code, response)

        try:
            return response.json()
        except ValueError as exc:
            raise ArmRequestError(502, "Invalid ARM response (not JSON)") from exc

    def arm_get(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if path.startswith("http://") or path.startswith("https://"):
            url = path
        else:
            url = f"{self.base_url}/{path.lstrip('/')}"
        return self.request_json("GET", url, params=params)

    def arm_get_paged(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> List[dict]:
        """Concatenate the ``value`` arrays of every page of a list call."""
        url = path
        all_items: List[dict] = []
        next_params = params
        while url:
            payload = self.arm_get(url, params=next_params)
            items = payload.get("value") if isinstance(payload, dict) else None
            if isinstance(items, list):
                all_items.extend(items)
            next_link = payload.get("nextLink") if isinstance(payload, dict) else None
            if next_link:
                # nextLink already carries api-version and the skip token.
                url = next_link
                next_params = None
            else:
                url = ""
        return all_items

    def close(self) -> None:
        self.session.close()
