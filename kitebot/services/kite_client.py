# kitebot/services/kite_client.py
from __future__ import annotations
from typing import Any, Dict, List, Optional
import asyncio

import requests
from kiteconnect import KiteConnect
from kiteconnect.exceptions import KiteException

from kitebot.settings import Settings, settings as default_settings


class KiteAPIError(Exception):
    """A Kite call failed. `message` is safe to show to the user as-is."""

    def __init__(self, message: str, error_type: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code


class KiteClient:
    """
    Async facade over the official kiteconnect SDK.

    The SDK is blocking, so every call runs in a worker thread. Any failure is
    re-raised as KiteAPIError carrying Kite's error classification
    (TokenException, InputException, ...).
    """

    def __init__(self, api_key: str, api_secret: Optional[str] = None, access_token: Optional[str] = None):
        self.api_key = api_key
        self.api_secret = api_secret
        self.access_token = access_token
        self.kite = KiteConnect(api_key=api_key)
        if access_token:
            self.kite.set_access_token(access_token)

    def set_access_token(self, access_token: str) -> None:
        self.access_token = access_token
        self.kite.set_access_token(access_token)

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except KiteException as e:
            raise KiteAPIError(
                str(e) or "Unknown Kite API Error",
                error_type=type(e).__name__,
                status_code=getattr(e, "code", None),
            ) from e
        except requests.RequestException as e:
            raise KiteAPIError(f"Could not reach Kite: {e}", error_type="NetworkException") from e

    # --- Auth ---

    def login_url(self) -> str:
        return self.kite.login_url()

    async def generate_session(self, request_token: str) -> Dict[str, Any]:
        """
        Exchange a request_token (from the Kite redirect) for an access_token.
        Returns Kite's session payload: user_id, user_name, access_token, public_token, ...
        """
        if not self.api_secret:
            raise KiteAPIError("KITE_API_SECRET missing in .env", error_type="InputException")
        data = await self._call(self.kite.generate_session, request_token, api_secret=self.api_secret)
        self.set_access_token(data["access_token"])
        return data

    # --- User / Portfolio ---

    async def get_holdings(self) -> List[Dict[str, Any]]:
        return await self._call(self.kite.holdings)

    async def get_positions(self) -> Dict[str, List[Dict[str, Any]]]:
        return await self._call(self.kite.positions)

    async def get_margins(self) -> Dict[str, Any]:
        return await self._call(self.kite.margins)

    # --- Orders ---

    async def place_order(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(params)
        variety = params.pop("variety", None) or KiteConnect.VARIETY_REGULAR
        order_id = await self._call(self.kite.place_order, variety=variety, **params)
        return {"order_id": order_id}

    async def get_orders(self) -> List[Dict[str, Any]]:
        return await self._call(self.kite.orders)

    async def get_order_history(self, order_id: str) -> List[Dict[str, Any]]:
        return await self._call(self.kite.order_history, order_id)

    # --- Mutual funds ---

    async def get_mf_holdings(self) -> List[Dict[str, Any]]:
        return await self._call(self.kite.mf_holdings)

    async def get_mf_orders(self) -> List[Dict[str, Any]]:
        return await self._call(self.kite.mf_orders)

    async def get_mf_order(self, order_id: str) -> Dict[str, Any]:
        return await self._call(self.kite.mf_orders, order_id=order_id)

    async def get_mf_sips(self) -> List[Dict[str, Any]]:
        return await self._call(self.kite.mf_sips)

    async def get_mf_instruments(self) -> str:
        """Raw CSV of every MF scheme (parsed by the instruments cache, not here)."""
        return await self._call(self._download_mf_instruments)

    def _download_mf_instruments(self) -> str:
        headers = {"X-Kite-Version": "3"}
        if self.access_token:
            headers["Authorization"] = f"token {self.api_key}:{self.access_token}"
        r = requests.get(f"{self.kite.root}/mf/instruments", headers=headers, timeout=self.kite.timeout)
        if r.status_code >= 400:
            # Kite sends structured errors: {"status": "error", "message": ..., "error_type": ...}
            try:
                body = r.json()
            except ValueError:
                body = {}
            raise KiteAPIError(
                body.get("message") or f"Kite returned HTTP {r.status_code}",
                error_type=body.get("error_type"),
                status_code=r.status_code,
            )
        return r.text


def build_kite_client(access_token: Optional[str] = None, cfg: Optional[Settings] = None) -> KiteClient:
    """Client for one user's access_token, or an unauthenticated one for the login flow."""
    cfg = cfg or default_settings
    if not cfg.kite_api_key:
        raise KiteAPIError("KITE_API_KEY missing in .env", error_type="InputException")
    return KiteClient(cfg.kite_api_key, cfg.kite_api_secret, access_token)
