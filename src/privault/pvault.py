#!/usr/bin/env python3
"""
privault - personal encrypted file vault with metadata sync

Files deposited in the vault are encrypted at rest with a single master key
and can optionally have their (encrypted) metadata synchronized to a remote
server.

Home layout (default ~/.privault, or $PRIVAULT_HOME):
  home/
    vault.hdr                 # binary KDF header: magic, version, KDF id + params, salt
    vault_audit_log.json      # JSON array of audit events
    device.json               # stable device id for sync
    sync_state.json           # last sync token + per-record versions
    SecureVault/
      CACHEDIR.TAG
      <uuid>.encrypted        # nonce(12) || AES-256-GCM ciphertext || tag(16)
      <uuid>.encrypted.meta   # JSON sidecar (originalFileName, dateEncrypted, nonce)

The master key itself is kept in a separate owner-only keystore
(default ~/.local/share/privault-keystore/keystore.json), never in the home.

Commands:
  init                 Set up the vault (derive and store master key)
  add <path>...        Encrypt files into the vault
  ls                   List entries
  extract <id> <out>   Decrypt an entry
  rm <id>              Delete an entry (ordinary unlink, not a secure wipe)
  audit                Show the audit log
  sync                 Push encrypted metadata to a sync server
  sync-status          Show the server's sync status

Security choices:
  - AEAD: AES-256-GCM via cryptography.hazmat, fresh 96-bit nonce per call
  - KDF: iterated SHA-256 folding the salt each round (>= 100,000 rounds),
         or Argon2id(SHA3-512(passphrase)) via argon2-cffi
"""
from __future__ import annotations

import sys

from privault.ui.cli import build_parser
from privault.utils.errors import VaultError
from privault.utils.logging_config import setup_logging


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging("privault", args.log_level)
    try:
        args.func(args)
    except VaultError as e:
        print(f"[!] {e.user_message}")
        return 1
    except KeyboardInterrupt:
        print("[!] Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
