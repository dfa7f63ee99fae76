import logging
import os
from urllib.parse import urljoin
from dotenv import load_dotenv
import requests
from typing import Any, Optional, Mapping

logger = logging.getLogger(__name__)


class PaymentGatewayError(RuntimeError):
    """The payment gateway rejected a request or could not be reached.

    Recoverable: nothing was recorded locally, the operator may retry.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PaymentGatewayClient:
    """Client for the hosted payout functions.

    The gateway moves the money; this client only asks it to open checkout
    sessions or trigger a transfer and returns what it answers.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        url = base_url or os.getenv("PAYMENT_GATEWAY_BASE_URL")
        if not url:
            raise ValueError("Environment variable 'PAYMENT_GATEWAY_BASE_URL' is not set")
        key = api_key or os.getenv("PAYMENT_GATEWAY_API_KEY")
        if not key:
            raise ValueError("Environment variable 'PAYMENT_GATEWAY_API_KEY' is not set")

        self.base_url = url.rstrip("/")
        self.api_key = key
        self.timeout = timeout
        self.session = session or requests.Session()

    # -------- headers --------
    @property
    def auth_headers(self) -> Mapping[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        try:
            r = self.session.request(
                method=method.upper(),
                url=url,
                headers=self.auth_headers,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error(f"Payment gateway unreachable at {url}: {exc}")
            raise PaymentGatewayError(f"Payment gateway unreachable: {exc}") from exc

        if not 200 <= r.status_code < 300:
            message = _error_message(r) or f"Payment gateway returned HTTP {r.status_code}"
            logger.error(f"Payment gateway call {path} failed ({r.status_code}): {message}")
            raise PaymentGatewayError(message, status_code=r.status_code)
        return r.json() if r.content else None

    # -------- API callers --------
    def create_payout_session(
        self, entry_id: int, amount: float, winner_name: str, draw_month: str
    ) -> dict:
        """Open a checkout session paying a winner; the response carries its ``url``."""
        return self._request(
            "POST",
            "/functions/v1/create-payout-session-v2",
            json={
                "entryId": entry_id,
                "amount": amount,
                "winnerName": winner_name,
                "drawMonth": draw_month,
            },
        )

    def create_charity_payout_session(
        self, payout_id: int, amount: float, charity_name: str, payout_type: str
    ) -> dict:
        return self._request(
            "POST",
            "/functions/v1/create-charity-payout-session-v2",
            json={
                "payoutId": payout_id,
                "amount": amount,
                "charityName": charity_name,
                "type": payout_type,
            },
        )

    def process_payout(self, entry_id: int) -> dict:
        # Automated transfer to the winner's connected account.
        return self._request("POST", "/functions/v1/process-payout", json={"entryId": entry_id})


def _error_message(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("error") or body.get("message")
    return None
