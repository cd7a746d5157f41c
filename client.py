import logging
import os
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx answer from the delivery API"""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class GasDeliveryClient:
    """Client for the gas delivery API, as used by the mobile app.

    Keeps the session token the way the app's auth context does: stored on
    login, register and refresh, sent as a bearer header, dropped on logout.
    """

    def __init__(self, base_url: Optional[str] = None, session=None, timeout: float = 10):
        self.base_url = (base_url or os.getenv("GAS_DELIVERY_API_URL", "http://localhost:3000")).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token: Optional[str] = None
        self.user: Optional[Dict[str, Any]] = None

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None and self.user is not None

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None,
                 params: Optional[Dict[str, Any]] = None) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        response = self.session.request(
            method,
            f"{self.base_url}{path}",
            json=json,
            params=params,
            headers=headers,
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", "Request failed")
            except ValueError:
                detail = response.text or "Request failed"
            logger.warning(f"{method} {path} failed with {response.status_code}: {detail}")
            raise ApiError(response.status_code, detail)
        return response.json()

    def _store_session(self, body: Dict[str, Any]) -> Dict[str, Any]:
        self.token = body["token"]
        self.user = body["user"]
        return body

    # --- auth ---
    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._store_session(self._request("POST", "/api/auth/login", json={"email": email, "password": password}))

    def register(self, **user_data) -> Dict[str, Any]:
        """Register with camelCase fields (email, password, firstName, lastName, phone, ...)"""
        return self._store_session(self._request("POST", "/api/auth/register", json=user_data))

    def verify_token(self) -> Dict[str, Any]:
        return self._request("GET", "/api/auth/verify")["user"]

    def refresh_token(self) -> Dict[str, Any]:
        if not self.token:
            raise ApiError(401, "No token available for refresh")
        return self._store_session(self._request("POST", "/api/auth/refresh"))

    def logout(self) -> None:
        """Drop the local session even when the server call fails."""
        try:
            if self.token:
                self._request("POST", "/api/auth/logout")
        except (ApiError, requests.RequestException) as e:
            logger.warning(f"API logout failed, continuing with local logout: {e}")
        finally:
            self.token = None
            self.user = None

    # --- catalogue ---
    def list_cylinders(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/gas-cylinders")

    # --- orders ---
    def create_order(self, items: List[Dict[str, Any]], delivery_address: str, latitude: float, longitude: float,
                     special_instructions: Optional[str] = None, customer_id: Optional[str] = None) -> Dict[str, Any]:
        customer_id = customer_id or (self.user or {}).get("id")
        if not customer_id:
            raise ApiError(401, "Log in before placing an order")
        return self._request("POST", "/api/orders", json={
            "customerId": customer_id,
            "items": items,
            "deliveryAddress": delivery_address,
            "deliveryLatitude": latitude,
            "deliveryLongitude": longitude,
            "specialInstructions": special_instructions,
        })

    def list_orders(self, **filters) -> Dict[str, Any]:
        """Filters use the API's query names: status, customerId, driverId, page, limit, sortBy, sortOrder"""
        params = {key: value for key, value in filters.items() if value is not None}
        return self._request("GET", "/api/orders", params=params)

    def my_orders(self, **filters) -> Dict[str, Any]:
        return self.list_orders(customerId=(self.user or {}).get("id"), **filters)

    def get_order(self, order_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/orders/{order_id}")

    def cancel_order(self, order_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        return self._request("PUT", f"/api/orders/{order_id}/cancel", json={"reason": reason})["order"]
