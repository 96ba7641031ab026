"""Tests for key derivation and the KDF header file."""

import hashlib

import pytest

from privault.crypto.hash import derive, derive_iterated, derive_kmaster, generate_salt
from privault.storage.vault import KdfHeaderFile
from privault.utils.dataModels import KDF_ARGON2ID, KDF_SHA256_ITERATED, KdfParams
from privault.utils.errors import StoreReadError


SALT = b"0123456789abcdef"


def test_iterated_derivation_is_deterministic():
    assert derive_iterated("correct-horse", SALT) == derive_iterated("correct-horse", SALT)


def test_iterated_derivation_matches_reference_construction():
    expected = "correct-horse".encode("utf-8")
    for _ in range(100_000):
        expected = hashlib.sha256(expected + SALT).digest()

    assert derive_iterated("correct-horse", SALT, 100_000) == expected


def test_key_is_32_bytes_and_depends_on_password_and_salt():
    key = derive_iterated("pw", SALT)

    assert len(key) == 32
    assert key != derive_iterated("pw2", SALT)
    assert key != derive_iterated("pw", b"fedcba9876543210")


def test_iteration_floor_is_enforced():
    with pytest.raises(ValueError):
        derive_iterated("pw", SALT, 99_999)


@pytest.mark.parametrize("password, salt", [(b"bytes", SALT), ("pw", ""), ("pw", None)])
def test_invalid_input_encoding_rejected(password, salt):
    with pytest.raises(ValueError):
        derive_iterated(password, salt)


def test_argon2id_derivation_via_params():
    params = KdfParams(KDF_ARGON2ID, SALT, iterations=1, memory_kib=8, parallelism=1)

    key = derive("pw", params)

    assert len(key) == 32
    assert key == derive_kmaster("pw", SALT, 1, 8, 1)
    assert key != derive("other", params)


def test_generate_salt_is_random():
    assert generate_salt() != generate_salt()
    assert len(generate_salt()) == 16


def test_header_round_trip(tmp_path):
    header = KdfHeaderFile(tmp_path / "vault.hdr")
    params = KdfParams(KDF_SHA256_ITERATED, SALT, 150_000)

    header.save(params)

    assert header.exists()
    assert header.load() == params
    assert derive("pw", header.load()) == derive_iterated("pw", SALT, 150_000)


def test_missing_header_is_store_read_error(tmp_path):
    with pytest.raises(StoreReadError):
        KdfHeaderFile(tmp_path / "absent.hdr").load()


def test_corrupt_header_is_store_read_error(tmp_path):
    path = tmp_path / "vault.hdr"
    KdfHeaderFile(path).save(KdfParams(KDF_SHA256_ITERATED, SALT, 100_000))
    data = bytearray(path.read_bytes())
    data[0:4] = b"XXXX"
    path.write_bytes(bytes(data))

    with pytest.raises(StoreReadError):
        KdfHeaderFile(path).load()

    path.write_bytes(b"short")
    with pytest.raises(StoreReadError):
        KdfHeaderFile(path).load()
