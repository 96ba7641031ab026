import argparse

from privault.utils.core import build_services, read_passphrase, unlock


def cmd_rm(args: argparse.Namespace) -> None:
    services = build_services(args.home)
    unlock(services, read_passphrase(args))
    try:
        entry = services.store.get_entry(args.id)
        services.store.delete_entry(entry)
    finally:
        services.cipher.lock()
    print(f"[+] Removed id={args.id}")


def cmd_audit(args: argparse.Namespace) -> None:
    """Print the audit journal, newest first. The journal is readable while locked."""
    services = build_services(args.home)
    events = services.audit.read_all()
    if services.audit.last_error is not None:
        print(f"[!] Audit log could not be read: {services.audit.last_error}")
    if not events:
        print("(no events)")
        return
    for event in events[: args.limit] if args.limit else events:
        name = f"\t{event.filename}" if event.filename else ""
        print(f"{event.timestamp:%Y-%m-%d %H:%M:%S}\t{event.event_type.value}{name}\t{event.details}")
