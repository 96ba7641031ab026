import argparse

from privault.sync.commands import cmd_sync, cmd_sync_status
from privault.utils.core import cmd_add, cmd_extract, cmd_init, cmd_ls
from privault.utils.dataModels import Category, RiskLevel
from privault.utils.maintain import cmd_audit, cmd_rm


def _add_sync_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--server", help="Sync server base URL (default: probe local candidates)")
    p.add_argument("--username", help="Sync account username (prompted if omitted)")
    p.add_argument("--sync-password", help="Sync account password (prompted if omitted)")
    p.add_argument("--register", action="store_true", help="Register a new sync account instead of logging in")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Personal encrypted file vault with metadata sync")
    p.add_argument("--home", help="Vault home directory (default: $PRIVAULT_HOME or ~/.privault)")
    p.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_init = sub.add_parser("init", help="Set up the vault with a master passphrase")
    p_init.add_argument("--passphrase", help="Master passphrase (prompted if omitted)")
    p_init.add_argument("--force", action="store_true", help="Re-initialize an existing vault")
    p_init.set_defaults(func=cmd_init)

    p_add = sub.add_parser("add", help="Encrypt files into the vault")
    p_add.add_argument("paths", nargs="+", help="Plaintext files to add")
    p_add.add_argument("--passphrase")
    p_add.add_argument("--risk-score", type=int, help="Classifier risk score (0-100)")
    p_add.add_argument("--category", choices=[c.value for c in Category], default=Category.PRIVATE.value)
    p_add.add_argument("--risk-level", choices=[r.value for r in RiskLevel], default=RiskLevel.MODERATE.value)
    p_add.add_argument("--keywords", help="Comma-separated classifier keywords")
    p_add.set_defaults(func=cmd_add)

    p_ls = sub.add_parser("ls", help="List vault entries")
    p_ls.add_argument("--passphrase")
    p_ls.set_defaults(func=cmd_ls)

    p_ext = sub.add_parser("extract", help="Decrypt an entry by id")
    p_ext.add_argument("id", help="Entry id (UUID)")
    p_ext.add_argument("out", help="Output file or directory")
    p_ext.add_argument("--passphrase")
    p_ext.set_defaults(func=cmd_extract)

    p_rm = sub.add_parser("rm", help="Delete an entry by id (not a secure wipe)")
    p_rm.add_argument("id", help="Entry id (UUID)")
    p_rm.add_argument("--passphrase")
    p_rm.set_defaults(func=cmd_rm)

    p_audit = sub.add_parser("audit", help="Show the audit log, newest first")
    p_audit.add_argument("-n", "--limit", type=int, help="Show at most N events")
    p_audit.set_defaults(func=cmd_audit)

    p_sync = sub.add_parser("sync", help="Push encrypted metadata to the sync server")
    p_sync.add_argument("--passphrase")
    _add_sync_args(p_sync)
    p_sync.set_defaults(func=cmd_sync)

    p_status = sub.add_parser("sync-status", help="Show the server's sync status for this account")
    _add_sync_args(p_status)
    p_status.set_defaults(func=cmd_sync_status)

    return p
