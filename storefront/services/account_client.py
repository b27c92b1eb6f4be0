# storefront/services/account_client.py
from typing import Dict, Iterable
from uuid import UUID

import requests
from pydantic import ValidationError
from requests import RequestException

from storefront.domain.errors import AccountServiceError
from storefront.domain.schemas import TokenInfo
from storefront.utils.retry import http_retry
from storefront.utils.settings import ACCOUNT_SERVICE_URL, ACCOUNT_SERVICE_TIMEOUT
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class AccountClient:
    """
    Client for the external account/auth service.

    Both calls are synchronous with their own timeout; transport failures
    are retried, everything else surfaces as AccountServiceError.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = ACCOUNT_SERVICE_TIMEOUT,
        session: requests.Session | None = None,
        log=None,
    ):
        self.base_url = (base_url or ACCOUNT_SERVICE_URL).rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()
        self.log = log or logger

    @http_retry()
    def _post(self, path: str, payload: dict) -> requests.Response:
        url = f"{self.base_url}{path}"
        self.log.debug(f"AccountClient POST {url}")
        return self.http.post(url, json=payload, timeout=self.timeout)

    def validate_token(self, token: str) -> TokenInfo:
        try:
            resp = self._post("/auth/validate", {"token": token})
        except RequestException as e:
            self.log.error(f"ValidateToken call failed: {e}")
            raise AccountServiceError(f"account service unreachable: {e}") from e

        if resp.status_code == 401:
            return TokenInfo(valid=False, error=_error_message(resp, "unauthenticated"))
        if resp.status_code >= 400:
            self.log.error(f"ValidateToken returned {resp.status_code}")
            raise AccountServiceError(f"account service returned {resp.status_code}")

        data = self._payload(resp, "ValidateToken")
        try:
            info = TokenInfo(
                valid=bool(data.get("is_valid")),
                user_id=data.get("user_id") or None,
                username=data.get("username", ""),
                role=data.get("role", ""),
                error=data.get("error_message", ""),
            )
        except ValidationError as e:
            self.log.error(f"ValidateToken returned an unreadable token record: {e}")
            raise AccountServiceError("malformed response from account service") from e
        if not info.valid:
            self.log.info(f"Token rejected: {info.error}")
        return info

    def get_sellers(self, ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Resolve seller display names for the whole id list in one call."""
        wanted = [str(i) for i in dict.fromkeys(ids)]
        if not wanted:
            return {}
        try:
            resp = self._post("/accounts/batch", {"ids": wanted})
            resp.raise_for_status()
        except RequestException as e:
            self.log.error(f"GetUsers call for {len(wanted)} sellers failed: {e}")
            raise AccountServiceError(f"failed to resolve sellers: {e}") from e

        users = self._payload(resp, "GetUsers").get("users", [])
        if not isinstance(users, list):
            self.log.error(f"GetUsers returned a non-list users field: {users!r}")
            raise AccountServiceError("malformed response from account service")

        sellers: Dict[UUID, str] = {}
        for user in users:
            try:
                sellers[UUID(user["id"])] = user.get("name") or user.get("username", "")
            except (KeyError, TypeError, ValueError):
                self.log.warning(f"Ignoring malformed account record: {user!r}")
        return sellers

    def _payload(self, resp: requests.Response, call: str) -> dict:
        try:
            data = resp.json()
        except ValueError as e:
            self.log.error(f"{call} returned a non-JSON body: {e}")
            raise AccountServiceError("malformed response from account service") from e
        if not isinstance(data, dict):
            self.log.error(f"{call} returned {type(data).__name__} instead of an object")
            raise AccountServiceError("malformed response from account service")
        return data


def _error_message(resp: requests.Response, default: str) -> str:
    try:
        return resp.json().get("error_message", default)
    except (ValueError, AttributeError):
        return default
