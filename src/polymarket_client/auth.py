"""
Authentication headers for Polymarket REST API

Two levels of authentication are used:

- L1: an EIP-712 ClobAuth signature proving control of the wallet, used to
  create or derive API credentials
- L2: HMAC-SHA256 over timestamp + method + path + body with the API
  secret, used for trading endpoints
"""

import base64
import hashlib
import hmac
import time
from typing import Callable, Dict, Optional

from .models.config import ApiCredentials
from .signing import AuthChallenge, OrderSigner

POLY_ADDRESS = "POLY_ADDRESS"
POLY_SIGNATURE = "POLY_SIGNATURE"
POLY_TIMESTAMP = "POLY_TIMESTAMP"
POLY_NONCE = "POLY_NONCE"
POLY_API_KEY = "POLY_API_KEY"
POLY_PASSPHRASE = "POLY_PASSPHRASE"


def build_hmac_signature(
    secret: str,
    timestamp: int,
    method: str,
    request_path: str,
    body: Optional[str] = None,
) -> str:
    """
    Generate the L2 HMAC-SHA256 signature for a request.

    Args:
        secret: URL-safe base64 API secret
        timestamp: Unix timestamp in seconds
        method: HTTP method
        request_path: Path of the endpoint, without host
        body: Serialized request body, exactly as sent

    Returns:
        URL-safe base64 encoded signature
    """
    message = f"{timestamp}{method.upper()}{request_path}"
    if body:
        message += body

    signature = hmac.new(
        base64.urlsafe_b64decode(secret),
        message.encode("utf-8"),
        hashlib.sha256,
    ).digest()

    return base64.urlsafe_b64encode(signature).decode("utf-8")


class RequestAuthenticator:
    """
    Builds L1 and L2 authentication headers for one wallet.
    """

    def __init__(
        self,
        signer: OrderSigner,
        credentials: Optional[ApiCredentials] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the authenticator.

        Args:
            signer: Signer holding the wallet key
            credentials: L2 API credentials, may be set later
            clock: Time source in seconds
        """
        self.signer = signer
        self.credentials = credentials
        self._clock = clock

    @property
    def address(self) -> str:
        return self.signer.address

    def l1_headers(self, nonce: int = 0, timestamp: Optional[int] = None) -> Dict[str, str]:
        """Headers for endpoints authenticated by wallet signature."""
        timestamp = int(self._clock()) if timestamp is None else timestamp
        challenge = AuthChallenge(address=self.address, timestamp=timestamp, nonce=nonce)
        return {
            POLY_ADDRESS: self.address,
            POLY_SIGNATURE: self.signer.sign_auth(challenge),
            POLY_TIMESTAMP: str(timestamp),
            POLY_NONCE: str(nonce),
        }

    def l2_headers(
        self,
        method: str,
        request_path: str,
        body: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> Dict[str, str]:
        """Headers for endpoints authenticated by API credentials."""
        if self.credentials is None:
            raise ValueError("API credentials are required for L2 authentication")

        timestamp = int(self._clock()) if timestamp is None else timestamp
        return {
            POLY_ADDRESS: self.address,
            POLY_SIGNATURE: build_hmac_signature(
                self.credentials.secret, timestamp, method, request_path, body
            ),
            POLY_TIMESTAMP: str(timestamp),
            POLY_API_KEY: self.credentials.api_key,
            POLY_PASSPHRASE: self.credentials.passphrase,
        }

    def validate_credentials(self) -> bool:
        """True if all three L2 credential parts are present."""
        return bool(
            self.credentials
            and self.credentials.api_key
            and self.credentials.secret
            and self.credentials.passphrase
        )
