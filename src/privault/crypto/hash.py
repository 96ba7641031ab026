import os

from argon2.low_level import hash_secret_raw, Type as Argon2Type
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes

from privault.utils.dataModels import (
    KDF_ARGON2ID, KDF_SHA256_ITERATED, KEY_SIZE, MIN_KDF_ITERATIONS, SALT_SIZE, KdfParams,
)


def sha3_512_bytes(data: bytes) -> bytes:
    digest = hashes.Hash(hashes.SHA3_512(), backend=default_backend())
    digest.update(data)
    return digest.finalize()


def generate_salt() -> bytes:
    return os.urandom(SALT_SIZE)


def _check_inputs(password: str, salt: bytes) -> None:
    if not isinstance(password, str):
        raise ValueError("password must be a string")
    if not isinstance(salt, (bytes, bytearray)) or not salt:
        raise ValueError("salt must be non-empty bytes")


def derive_iterated(password: str, salt: bytes, iterations: int = MIN_KDF_ITERATIONS) -> bytes:
    """K0 = utf8(password); K(i+1) = SHA-256(K(i) || salt); returns 32 bytes."""
    _check_inputs(password, salt)
    if iterations < MIN_KDF_ITERATIONS:
        raise ValueError(f"iterations must be at least {MIN_KDF_ITERATIONS}")
    key = password.encode("utf-8")
    salt = bytes(salt)
    for _ in range(iterations):
        digest = hashes.Hash(hashes.SHA256(), backend=default_backend())
        digest.update(key)
        digest.update(salt)
        key = digest.finalize()
    return key[:KEY_SIZE]


def derive_kmaster(passphrase: str, salt: bytes, t_cost: int, m_cost_kib: int, parallelism: int) -> bytes:
    """Kmaster = Argon2id(SHA3-512(passphrase)) -> 32 bytes"""
    _check_inputs(passphrase, salt)
    prehash = sha3_512_bytes(passphrase.encode("utf-8"))
    kmaster = hash_secret_raw(
        secret=prehash,
        salt=bytes(salt),
        time_cost=t_cost,
        memory_cost=m_cost_kib,
        parallelism=parallelism,
        hash_len=KEY_SIZE,
        type=Argon2Type.ID,
    )
    return kmaster


def derive(password: str, params: KdfParams) -> bytes:
    """Derive the master key using the algorithm recorded in the vault header."""
    if params.kdf_id == KDF_SHA256_ITERATED:
        return derive_iterated(password, params.salt, params.iterations)
    if params.kdf_id == KDF_ARGON2ID:
        return derive_kmaster(password, params.salt, params.iterations, params.memory_kib, params.parallelism)
    raise ValueError(f"Unknown KDF id: {params.kdf_id}")
