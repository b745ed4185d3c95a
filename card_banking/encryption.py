"""
Card Number Encryption Module

Authenticated encryption of card numbers at rest (AES-256-GCM with a fresh
random nonce per call), Luhn validation, constant-time equality testing and
display masking. Plaintext numbers never reach log records or exception
messages raised from here.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import os
import re
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import CardBankingConfig
from .errors import DecryptionError, EncryptionError, InvalidInputError

logger = logging.getLogger(__name__)


NONCE_LENGTH = 12
TAG_LENGTH = 16
MIN_CARD_LENGTH = 13
MAX_CARD_LENGTH = 19

# Shown instead of a card number whenever it cannot be decrypted
MASK_PLACEHOLDER = "****"

_SEPARATORS = re.compile(r"[\s-]")


def normalize_card_number(card_number: str) -> str:
    """Strip whitespace and hyphens"""
    return _SEPARATORS.sub("", card_number)


def luhn_check(digits: str) -> bool:
    """Luhn checksum over a string of digits"""
    total = 0
    for index, char in enumerate(reversed(digits)):
        n = int(char)
        if index % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


def is_valid_card_number(card_number: Optional[str]) -> bool:
    """13-19 digits (after normalization) passing the Luhn checksum"""
    if card_number is None:
        return False
    cleaned = normalize_card_number(card_number)
    if not cleaned.isdigit() or not cleaned.isascii():
        return False
    if not MIN_CARD_LENGTH <= len(cleaned) <= MAX_CARD_LENGTH:
        return False
    return luhn_check(cleaned)


def mask_card_number(card_number: Optional[str]) -> str:
    """Mask a plaintext number as first4 **** **** last4"""
    if not card_number:
        return MASK_PLACEHOLDER
    cleaned = normalize_card_number(card_number)
    if len(cleaned) < 8:
        return MASK_PLACEHOLDER
    return f"{cleaned[:4]} **** **** {cleaned[-4:]}"


class CardNumberCipher:
    """
    AES-256-GCM cipher for card numbers.

    Ciphertext layout is base64(nonce || ciphertext || tag). Because the nonce
    is random, encrypting the same number twice yields different ciphertexts;
    use matches() for equality, never string comparison of ciphertexts.
    """

    def __init__(self, master_key: Union[str, bytes]):
        if not master_key:
            raise EncryptionError("Encryption master key is not configured")

        if isinstance(master_key, str):
            master_key = master_key.encode('utf-8')

        # Derive 32-byte key from master key using SHA-256
        self._aesgcm = AESGCM(hashlib.sha256(master_key).digest())

    def encrypt(self, plaintext: Optional[str]) -> str:
        """
        Validate and encrypt a card number.

        Raises:
            InvalidInputError: empty input or not a valid card number
            EncryptionError: the cipher operation failed
        """
        if not isinstance(plaintext, str) or not plaintext.strip():
            raise InvalidInputError("Card number cannot be empty")

        cleaned = normalize_card_number(plaintext)
        if not is_valid_card_number(cleaned):
            raise InvalidInputError("Invalid card number format")

        try:
            nonce = os.urandom(NONCE_LENGTH)
            sealed = self._aesgcm.encrypt(nonce, cleaned.encode('ascii'), None)
        except Exception as e:
            logger.error("Card number encryption failed: %s", type(e).__name__)
            raise EncryptionError("Failed to encrypt card number") from None

        return base64.b64encode(nonce + sealed).decode('ascii')

    def decrypt(self, ciphertext: Optional[str]) -> str:
        """
        Decrypt a stored card number.

        Raises:
            DecryptionError: malformed input, truncated payload or tag mismatch
        """
        if not ciphertext:
            raise DecryptionError("Encrypted card number cannot be empty")
        if not isinstance(ciphertext, str):
            raise DecryptionError("Encrypted card number must be text")

        try:
            combined = base64.b64decode(ciphertext.encode('ascii'), validate=True)
        except (binascii.Error, UnicodeEncodeError):
            raise DecryptionError("Encrypted card number is not valid base64") from None

        if len(combined) < NONCE_LENGTH + TAG_LENGTH:
            raise DecryptionError("Encrypted card number is truncated")

        nonce, sealed = combined[:NONCE_LENGTH], combined[NONCE_LENGTH:]
        try:
            return self._aesgcm.decrypt(nonce, sealed, None).decode('ascii')
        except InvalidTag:
            raise DecryptionError("Card number authentication failed") from None
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted card number is malformed") from None

    def matches(self, plaintext: Optional[str], ciphertext: Optional[str]) -> bool:
        """True when ciphertext decrypts to plaintext; False on any failure"""
        if not isinstance(plaintext, str) or not isinstance(ciphertext, str):
            return False
        try:
            decrypted = self.decrypt(ciphertext)
        except DecryptionError as e:
            logger.debug("Card number comparison skipped: %s", e.message)
            return False
        return hmac.compare_digest(
            normalize_card_number(plaintext).encode('utf-8'),
            decrypted.encode('utf-8')
        )

    def mask(self, ciphertext: Optional[str]) -> str:
        """Masked display form; the redacted placeholder if decryption fails"""
        try:
            return mask_card_number(self.decrypt(ciphertext))
        except DecryptionError as e:
            logger.warning("Card number could not be masked: %s", e.message)
            return MASK_PLACEHOLDER


def create_card_cipher(config: CardBankingConfig) -> CardNumberCipher:
    """Build the cipher from configuration"""
    return CardNumberCipher(config.encryption_master_key)
