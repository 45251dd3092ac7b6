"""
HMAC-SHA256 request signing for Binance and OKX.

Both exchanges reject requests whose timestamp drifted too far from
server time, so signatures are built per attempt, never cached.
"""

import base64
import hashlib
import hmac
from urllib.parse import urlencode

from crossarb.utils.time import get_iso_timestamp, get_timestamp_ms


class BinanceSigner:
    """
    Signs Binance query strings.

    Signature is the hex HMAC-SHA256 of the urlencoded parameters,
    timestamp included, appended as ``signature``.
    """

    __slots__ = ("_secret_bytes",)

    def __init__(self, api_secret: str) -> None:
        """
        Initialize signer with API secret.

        Args:
            api_secret: Binance API secret key.
        """
        self._secret_bytes = api_secret.encode("utf-8")

    def sign(self, query_string: str) -> str:
        """
        Generate HMAC-SHA256 signature for a query string.

        Args:
            query_string: URL-encoded query parameters.

        Returns:
            Hexadecimal signature string.
        """
        return hmac.new(
            self._secret_bytes,
            query_string.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def create_signed_params(
        self,
        params: dict[str, str | int],
        recv_window: int | None = None,
    ) -> dict[str, str | int]:
        """
        Create a new params dict with timestamp and signature.

        Args:
            params: Original request parameters.
            recv_window: Optional validity window in milliseconds.

        Returns:
            New params dict including timestamp and signature.
        """
        signed_params = dict(params)
        if recv_window is not None:
            signed_params["recvWindow"] = recv_window
        if "timestamp" not in signed_params:
            signed_params["timestamp"] = get_timestamp_ms()

        signed_params["signature"] = self.sign(urlencode(signed_params))
        return signed_params


class OkxSigner:
    """
    Signs OKX requests.

    Prehash string is ``timestamp + METHOD + requestPath + body`` where
    requestPath includes the query string; the signature is base64.
    """

    __slots__ = ("_api_key", "_secret_bytes", "_passphrase")

    def __init__(self, api_key: str, api_secret: str, passphrase: str) -> None:
        self._api_key = api_key
        self._secret_bytes = api_secret.encode("utf-8")
        self._passphrase = passphrase

    def sign(self, timestamp: str, method: str, request_path: str, body: str = "") -> str:
        """Base64 HMAC-SHA256 of the prehash string."""
        prehash = f"{timestamp}{method.upper()}{request_path}{body}"
        digest = hmac.new(self._secret_bytes, prehash.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def create_headers(
        self,
        method: str,
        request_path: str,
        body: str = "",
        timestamp: str | None = None,
    ) -> dict[str, str]:
        """
        Build authentication headers for one request.

        Args:
            method: HTTP method.
            request_path: Path including query string.
            body: Serialized JSON body, empty for GET.
            timestamp: ISO-8601 timestamp; current time when omitted.

        Returns:
            Header dict with key, signature, timestamp and passphrase.
        """
        ts = timestamp or get_iso_timestamp()
        return {
            "OK-ACCESS-KEY": self._api_key,
            "OK-ACCESS-SIGN": self.sign(ts, method, request_path, body),
            "OK-ACCESS-TIMESTAMP": ts,
            "OK-ACCESS-PASSPHRASE": self._passphrase,
        }
