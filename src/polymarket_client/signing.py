"""
Structured-data (EIP-712) signing for orders and authentication challenges.

Each signature is bound to a domain naming the exchange, the chain and, for
orders, the verifying exchange contract. Signature schemes are selected
explicitly from the order's SignatureType:

- EOA: the key owns the funds, maker == signer
- POLY_PROXY / POLY_GNOSIS_SAFE: the key signs for a proxy wallet, maker is
  the wallet and signer is the key

The scheme and maker are part of the signed struct, so the digest differs
by mode.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import to_checksum_address

from .constants import (
    CLOB_AUTH_DOMAIN_NAME,
    CLOB_AUTH_DOMAIN_VERSION,
    CLOB_AUTH_MESSAGE,
    EXCHANGE_CONTRACTS,
    EXCHANGE_DOMAIN_NAME,
    EXCHANGE_DOMAIN_VERSION,
)
from .errors import SigningError
from .models.orders import SignatureType, SignedOrder, UnsignedOrder

logger = logging.getLogger(__name__)


ORDER_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Order": [
        {"name": "salt", "type": "uint256"},
        {"name": "maker", "type": "address"},
        {"name": "signer", "type": "address"},
        {"name": "taker", "type": "address"},
        {"name": "tokenId", "type": "uint256"},
        {"name": "makerAmount", "type": "uint256"},
        {"name": "takerAmount", "type": "uint256"},
        {"name": "expiration", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "feeRateBps", "type": "uint256"},
        {"name": "side", "type": "uint8"},
        {"name": "signatureType", "type": "uint8"},
    ],
}

AUTH_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
    ],
    "ClobAuth": [
        {"name": "address", "type": "address"},
        {"name": "timestamp", "type": "string"},
        {"name": "nonce", "type": "uint256"},
        {"name": "message", "type": "string"},
    ],
}


@dataclass(frozen=True)
class AuthChallenge:
    """L1 authentication challenge: proves control of an address."""
    address: str
    timestamp: int
    nonce: int = 0


def exchange_contract(chain_id: int, neg_risk: bool = False) -> str:
    """Verifying exchange contract for a chain."""
    contracts = EXCHANGE_CONTRACTS.get(chain_id)
    if contracts is None:
        raise SigningError(f"No exchange contract configured for chain {chain_id}")
    return contracts[1] if neg_risk else contracts[0]


def order_typed_data(order: UnsignedOrder, chain_id: int) -> SignableMessage:
    """EIP-712 signable message for an order."""
    try:
        return encode_typed_data(full_message={
            "types": ORDER_TYPES,
            "primaryType": "Order",
            "domain": {
                "name": EXCHANGE_DOMAIN_NAME,
                "version": EXCHANGE_DOMAIN_VERSION,
                "chainId": chain_id,
                "verifyingContract": exchange_contract(chain_id, order.neg_risk),
            },
            "message": order.to_message(),
        })
    except SigningError:
        raise
    except Exception as e:
        raise SigningError(f"Malformed order payload: {e}") from e


def auth_typed_data(challenge: AuthChallenge, chain_id: int) -> SignableMessage:
    """EIP-712 signable message for an authentication challenge."""
    try:
        return encode_typed_data(full_message={
            "types": AUTH_TYPES,
            "primaryType": "ClobAuth",
            "domain": {
                "name": CLOB_AUTH_DOMAIN_NAME,
                "version": CLOB_AUTH_DOMAIN_VERSION,
                "chainId": chain_id,
            },
            "message": {
                "address": challenge.address,
                "timestamp": str(challenge.timestamp),
                "nonce": challenge.nonce,
                "message": CLOB_AUTH_MESSAGE,
            },
        })
    except Exception as e:
        raise SigningError(f"Malformed auth challenge: {e}") from e


def _hex(signature: bytes) -> str:
    return "0x" + bytes(signature).hex()


class OrderSigner:
    """
    Signs orders and authentication challenges with a private key.

    The signer holds no mutable state and can be shared between tasks.
    """

    def __init__(self, private_key: str, chain_id: int):
        """
        Initialize the signer.

        Args:
            private_key: Hex-encoded secp256k1 private key
            chain_id: Chain the signatures are bound to

        Raises:
            SigningError: If the key cannot be loaded or the chain is unsupported
        """
        if not private_key:
            raise SigningError("Private key is required for signing")
        try:
            self._account = Account.from_key(private_key)
        except Exception as e:
            raise SigningError(f"Invalid private key: {e}") from e

        exchange_contract(chain_id)
        self.chain_id = chain_id
        self._schemes: Dict[SignatureType, Callable[[UnsignedOrder], str]] = {
            SignatureType.EOA: self._sign_direct,
            SignatureType.POLY_PROXY: self._sign_proxy,
            SignatureType.POLY_GNOSIS_SAFE: self._sign_proxy,
        }

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, payload: Union[UnsignedOrder, AuthChallenge]) -> Union[SignedOrder, str]:
        """Sign an order (returns SignedOrder) or an auth challenge (returns hex signature)."""
        if isinstance(payload, UnsignedOrder):
            return self.sign_order(payload)
        if isinstance(payload, AuthChallenge):
            return self.sign_auth(payload)
        raise SigningError(f"Cannot sign payload of type {type(payload).__name__}")

    def sign_order(self, order: UnsignedOrder) -> SignedOrder:
        """
        Sign an order with the scheme named by its signature type.

        Raises:
            SigningError: If the order signer is not this key or the scheme is unknown
        """
        if to_checksum_address(order.signer) != self.address:
            raise SigningError(
                f"Order signer {order.signer} does not match key address {self.address}"
            )

        scheme = self._schemes.get(order.signature_type)
        if scheme is None:
            raise SigningError(f"Unsupported signature type: {order.signature_type}")

        signature = scheme(order)
        logger.debug(
            f"Signed order salt={order.salt} with {SignatureType(order.signature_type).name} scheme"
        )
        return SignedOrder(order=order, signature=signature, signature_type=order.signature_type)

    def sign_auth(self, challenge: AuthChallenge) -> str:
        """Sign an L1 authentication challenge."""
        if to_checksum_address(challenge.address) != self.address:
            raise SigningError(
                f"Challenge address {challenge.address} does not match key address {self.address}"
            )
        return self._sign_message(auth_typed_data(challenge, self.chain_id))

    def _sign_direct(self, order: UnsignedOrder) -> str:
        if to_checksum_address(order.maker) != self.address:
            raise SigningError("EOA orders must have maker == signer")
        return self._sign_message(order_typed_data(order, self.chain_id))

    def _sign_proxy(self, order: UnsignedOrder) -> str:
        if to_checksum_address(order.maker) == self.address:
            raise SigningError("Proxy wallet orders must have the wallet as maker")
        return self._sign_message(order_typed_data(order, self.chain_id))

    def _sign_message(self, message: SignableMessage) -> str:
        try:
            signed = self._account.sign_message(message)
        except Exception as e:
            raise SigningError(f"Signing failed: {e}") from e
        return _hex(signed.signature)


def recover_order_signer(signed: SignedOrder, chain_id: int) -> str:
    """Recover the address that produced an order signature."""
    message = order_typed_data(signed.order, chain_id)
    try:
        return Account.recover_message(message, signature=signed.signature)
    except Exception as e:
        raise SigningError(f"Cannot recover signer: {e}") from e


def verify_order_signature(signed: SignedOrder, chain_id: int) -> bool:
    """True if the signature verifies against the order's declared signer."""
    try:
        recovered = recover_order_signer(signed, chain_id)
    except SigningError:
        return False
    return recovered == to_checksum_address(signed.order.signer)


def verify_auth_signature(challenge: AuthChallenge, signature: str, chain_id: int) -> bool:
    """True if an auth signature verifies against the challenge address."""
    try:
        recovered = Account.recover_message(
            auth_typed_data(challenge, chain_id), signature=signature
        )
    except Exception:
        return False
    return recovered == to_checksum_address(challenge.address)
