import struct

from pathlib import Path

from privault.utils.dataModels import HEADER_FMT, HEADER_MAGIC, HEADER_SIZE, HEADER_VERSION, KdfParams, KDF_NAMES
from privault.utils.errors import StoreReadError, StoreWriteError
from privault.utils.helper import atomic_write


def save_header(path: Path, params: KdfParams) -> None:
    header = struct.pack(
        HEADER_FMT, HEADER_MAGIC, HEADER_VERSION, params.kdf_id,
        params.iterations, params.memory_kib, params.parallelism, params.salt,
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(path, header, mode=0o600)
    except OSError as e:
        raise StoreWriteError(f"Could not write vault header: {e.strerror or e}") from None


def load_header(path: Path) -> KdfParams:
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        raise StoreReadError("Vault is not set up (header missing)") from None
    except OSError as e:
        raise StoreReadError(f"Could not read vault header: {e.strerror or e}") from None
    if len(data) != HEADER_SIZE:
        raise StoreReadError("vault.hdr is too small or corrupt")
    magic, ver, kdf_id, iterations, m, p, salt = struct.unpack(HEADER_FMT, data)
    if magic != HEADER_MAGIC:
        raise StoreReadError("Invalid vault header magic")
    if ver != HEADER_VERSION:
        raise StoreReadError("Unsupported vault header version")
    if kdf_id not in KDF_NAMES.values():
        raise StoreReadError("Unknown key derivation algorithm in vault header")
    return KdfParams(kdf_id=kdf_id, salt=salt, iterations=iterations, memory_kib=m, parallelism=p)


class KdfHeaderFile:
    """The small binary file recording which KDF, which parameters and which salt."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def save(self, params: KdfParams) -> None:
        save_header(self.path, params)

    def load(self) -> KdfParams:
        return load_header(self.path)
