import argparse
import getpass
import threading

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from privault.crypto.cipher import VaultCipher
from privault.storage.audit import AuditLog
from privault.storage.container import VaultStore
from privault.storage.credentials import CredentialStore, FileKeystore
from privault.storage.vault import KdfHeaderFile
from privault.utils.config import Config
from privault.utils.dataModels import Category, Classification, RiskLevel
from privault.utils.errors import AuthenticationFailed, VaultError
from privault.utils.events import EventBus
from privault.utils.helper import format_size


@dataclass
class Services:
    """Explicitly constructed vault components; the entry point owns their lifetime."""
    config: Config
    events: EventBus
    audit: AuditLog
    cipher: VaultCipher
    store: VaultStore


def build_services(home: Optional[Path] = None, keystore_backend=None) -> Services:
    config = Config(home)
    paths = config.paths
    paths.home.mkdir(parents=True, exist_ok=True)

    backend = keystore_backend or FileKeystore(config.get_keystore_path())
    events = EventBus()
    audit = AuditLog(paths.audit_log)
    cipher = VaultCipher(
        credentials=CredentialStore(backend),
        header=KdfHeaderFile(paths.header),
        audit=audit,
        events=events,
        lock=threading.RLock(),
        kdf_params=config.get_kdf_params(),
    )
    store = VaultStore(paths.container, cipher, audit)
    return Services(config=config, events=events, audit=audit, cipher=cipher, store=store)


def read_passphrase(args: argparse.Namespace, prompt: str = "Passphrase: ") -> str:
    if getattr(args, "passphrase", None):
        return args.passphrase
    return getpass.getpass(prompt)


def unlock(services: Services, passphrase: str) -> None:
    if not services.cipher.unlock_with_password(passphrase):
        raise AuthenticationFailed(services.cipher.error_message)


def classification_from_args(args: argparse.Namespace) -> Optional[Classification]:
    if getattr(args, "risk_score", None) is None:
        return None
    score = args.risk_score
    if not 0 <= score <= 100:
        raise VaultError("Risk score must be between 0 and 100")
    keywords = [k.strip() for k in (args.keywords or "").split(",") if k.strip()]
    return Classification(
        risk_score=score,
        category=Category(args.category),
        risk_level=RiskLevel(args.risk_level),
        keywords=keywords,
    )


def cmd_init(args: argparse.Namespace) -> None:
    services = build_services(args.home)
    passphrase = read_passphrase(args)
    if not getattr(args, "passphrase", None):
        if getpass.getpass("Repeat passphrase: ") != passphrase:
            raise VaultError("Passphrases do not match")
    services.cipher.setup(passphrase, force=args.force)
    services.cipher.lock()
    print(f"[+] Initialized vault at {services.config.home}")


def cmd_add(args: argparse.Namespace) -> None:
    services = build_services(args.home)
    classification = classification_from_args(args)
    unlock(services, read_passphrase(args))
    try:
        for path in args.paths:
            entry = services.store.add_path(Path(path), classification)
            print(f"[+] Encrypted and added {entry.original_name} as id={entry.id}")
    finally:
        services.cipher.lock()


def cmd_ls(args: argparse.Namespace) -> None:
    services = build_services(args.home)
    unlock(services, read_passphrase(args))
    try:
        entries = services.store.list_entries()
    finally:
        services.cipher.lock()
    if not entries:
        print("(empty)")
        return
    for entry in entries:
        added = entry.date_added.strftime("%Y-%m-%d %H:%M:%S")
        label = f"\t[{entry.classification.category.value}]" if entry.classification else ""
        print(f"{entry.id}\t{entry.original_name}\t{format_size(entry.size)}\t{added}{label}")


def cmd_extract(args: argparse.Namespace) -> None:
    services = build_services(args.home)
    unlock(services, read_passphrase(args))
    try:
        entry = services.store.get_entry(args.id)
        out = services.store.export_entry(entry, Path(args.out))
    finally:
        services.cipher.lock()
    print(f"[+] Extracted {entry.original_name} -> {out}")
