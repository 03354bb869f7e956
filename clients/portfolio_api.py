# clients/portfolio_api.py
"""
Typed client for the portfolio API.

Wraps an `httpx.Client`. Any httpx-compatible client can be injected
(FastAPI's TestClient included), so UI code and tests talk to the API the
same way.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

import httpx


class ApiError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class PortfolioApiClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.token = token

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "PortfolioApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ---------- plumbing ----------
    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        response = self._client.request(method, path, json=json, params=params, headers=self._headers())
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error:
            message = data.get("error") if isinstance(data, dict) else None
            raise ApiError(response.status_code, message or response.reason_phrase)
        return data

    @staticmethod
    def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in payload.items() if v is not None}

    # ---------- auth ----------
    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data["user"]

    def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        confirm_password: Optional[str] = None,
        phone: Optional[str] = None,
        country: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = self._compact({
            "firstName": first_name,
            "lastName": last_name,
            "email": email,
            "password": password,
            "confirmPassword": password if confirm_password is None else confirm_password,
            "phone": phone,
            "country": country,
        })
        data = self._request("POST", "/api/auth/register", json=payload)
        self.token = data["token"]
        return data["user"]

    def logout(self) -> None:
        self._request("POST", "/api/auth/logout")
        self.token = None

    def refresh(self) -> str:
        data = self._request("POST", "/api/auth/refresh")
        self.token = data["token"]
        return self.token

    def get_profile(self) -> Dict[str, Any]:
        return self._request("GET", "/api/auth/profile")["user"]

    def update_profile(
        self,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        country: Optional[str] = None,
        preferences: Optional[Dict[str, bool]] = None,
    ) -> Dict[str, Any]:
        payload = self._compact({
            "firstName": first_name,
            "lastName": last_name,
            "phone": phone,
            "country": country,
            "preferences": preferences,
        })
        return self._request("PUT", "/api/auth/profile", json=payload)["user"]

    # ---------- portfolio ----------
    def get_portfolio(self) -> Dict[str, Any]:
        data = self._request("GET", "/api/portfolio")
        return {"portfolio": data["portfolio"], "summary": data["summary"]}

    def add_position(
        self,
        symbol: str,
        name: str,
        shares: float,
        avg_price: float,
        current_price: float,
        sector: str,
        purchase_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        payload = self._compact({
            "symbol": symbol,
            "name": name,
            "shares": shares,
            "avgPrice": avg_price,
            "currentPrice": current_price,
            "sector": sector,
            "purchaseDate": purchase_date.isoformat() if purchase_date else None,
        })
        return self._request("POST", "/api/portfolio/positions", json=payload)

    def update_position(
        self,
        position_id: int,
        shares: float,
        avg_price: float,
        current_price: float,
        sector: str,
    ) -> Dict[str, Any]:
        payload = {
            "shares": shares,
            "avgPrice": avg_price,
            "currentPrice": current_price,
            "sector": sector,
        }
        return self._request("PUT", f"/api/portfolio/positions/{position_id}", json=payload)["position"]

    def delete_position(self, position_id: int) -> None:
        self._request("DELETE", f"/api/portfolio/positions/{position_id}")

    # ---------- watchlist ----------
    def get_watchlist(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/watchlist")["watchlist"]

    def add_to_watchlist(
        self,
        symbol: str,
        name: str,
        price: float,
        target_price: Optional[float] = None,
        alert_type: str = "above",
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = self._compact({
            "symbol": symbol,
            "name": name,
            "price": price,
            "targetPrice": target_price,
            "alertType": alert_type,
            "notes": notes,
        })
        return self._request("POST", "/api/watchlist", json=payload)["item"]

    def update_watchlist_item(self, item_id: int, **changes: Any) -> Dict[str, Any]:
        """Send only the given fields: target_price, alert_type, notes, price."""
        aliases = {"target_price": "targetPrice", "alert_type": "alertType"}
        payload = {aliases.get(key, key): value for key, value in changes.items()}
        return self._request("PUT", f"/api/watchlist/{item_id}", json=payload)["item"]

    def remove_from_watchlist(self, item_id: int) -> None:
        self._request("DELETE", f"/api/watchlist/{item_id}")

    # ---------- analytics / search ----------
    def get_analytics(self, period: str = "1M") -> Dict[str, Any]:
        return self._request("GET", "/api/analytics", params={"period": period})["analytics"]

    def search_symbols(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/stocks/search", params={"q": query, "limit": limit})["results"]
