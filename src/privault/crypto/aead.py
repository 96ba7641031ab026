import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from privault.utils.dataModels import NONCE_SIZE, EncryptedObject
from privault.utils.errors import IntegrityError


def seal(aesgcm: AESGCM, plaintext: bytes) -> EncryptedObject:
    """Encrypt with a fresh random nonce; the result carries nonce, ciphertext and tag."""
    nonce = os.urandom(NONCE_SIZE)
    return EncryptedObject(nonce=nonce, ciphertext=aesgcm.encrypt(nonce, plaintext, None))


def open_sealed(aesgcm: AESGCM, obj: EncryptedObject) -> bytes:
    """Decrypt or raise IntegrityError; never returns partial plaintext."""
    try:
        return aesgcm.decrypt(obj.nonce, obj.ciphertext, None)
    except (InvalidTag, ValueError):
        raise IntegrityError() from None
