import argparse
import asyncio
import getpass

from privault.sync.client import SyncClient
from privault.sync.device import DeviceIdentity
from privault.sync.engine import MetadataSync
from privault.sync.state import SyncLedger
from privault.utils.core import Services, build_services, read_passphrase, unlock
from privault.utils.errors import ServerUnavailable


def build_client(services: Services) -> SyncClient:
    config = services.config
    timeouts = config.get_timeouts()
    candidates = config.get_sync_candidates()
    return SyncClient(
        DeviceIdentity.load_or_create(config.paths.device),
        candidates=candidates,
        probe_timeout=timeouts["probe"],
        request_timeout=timeouts["request"],
        sync_timeout=timeouts["sync"],
    )


def _sync_credentials(args: argparse.Namespace) -> tuple[str, str]:
    username = args.username or input("Sync username: ")
    password = args.sync_password or getpass.getpass("Sync password: ")
    return username, password


async def _connect_and_authenticate(client: SyncClient, args: argparse.Namespace) -> None:
    if args.server:
        client.candidates = [args.server.rstrip("/")]
    if not await client.connect():
        raise client.last_error or ServerUnavailable()
    username, password = _sync_credentials(args)
    if args.register:
        await client.register(username, password)
    else:
        await client.login(username, password)


async def _run_sync(services: Services, args: argparse.Namespace) -> None:
    ledger = SyncLedger(services.config.paths.sync_ledger)
    async with build_client(services) as client:
        await _connect_and_authenticate(client, args)
        engine = MetadataSync(services.store, services.cipher, client, ledger)
        result = await engine.sync_vault()
        readable = engine.readable_remote(result)
    print(f"[+] Sync complete at {result.server_timestamp:%Y-%m-%d %H:%M:%S}")
    print(f"    updated items: {len(result.updated_records)} ({len(readable)} readable with this vault key)")
    print(f"    deleted ids:   {len(result.deleted_ids)}")


def cmd_sync(args: argparse.Namespace) -> None:
    services = build_services(args.home)
    unlock(services, read_passphrase(args))
    try:
        asyncio.run(_run_sync(services, args))
    finally:
        services.cipher.lock()


async def _run_status(services: Services, args: argparse.Namespace) -> None:
    async with build_client(services) as client:
        await _connect_and_authenticate(client, args)
        status = await client.sync_status()
    last = f"{status.last_sync_at:%Y-%m-%d %H:%M:%S}" if status.last_sync_at else "never"
    print(f"[+] Server {client.server_url}")
    print(f"    device:    {status.device_id}")
    print(f"    items:     {status.item_count}")
    print(f"    last sync: {last}")


def cmd_sync_status(args: argparse.Namespace) -> None:
    services = build_services(args.home)
    asyncio.run(_run_status(services, args))
