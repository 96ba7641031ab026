from typing import Any, Dict, List

from privault.crypto.cipher import VaultCipher
from privault.storage.container import VaultStore
from privault.sync.client import SyncClient
from privault.sync.models import SyncResult
from privault.sync.state import SyncLedger
from privault.utils.errors import IntegrityError, VaultLockedError
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)


class MetadataSync:
    """Pushes the vault's encrypted metadata and records the server's answer."""

    def __init__(self, store: VaultStore, cipher: VaultCipher, client: SyncClient, ledger: SyncLedger):
        self.store = store
        self.cipher = cipher
        self.client = client
        self.ledger = ledger

    async def sync_vault(self) -> SyncResult:
        if not self.cipher.is_unlocked:
            raise VaultLockedError()
        records = self.ledger.build_records(self.store.list_entries(), self.cipher)
        result = await self.client.push_metadata(records, self.ledger.sync_token)
        self.ledger.commit(records, result)
        logger.info("Sync complete: %d records pushed", len(records))
        return result

    def readable_remote(self, result: SyncResult) -> List[Dict[str, Any]]:
        """Decrypt the server's records that this vault's key can open; others are skipped."""
        readable = []
        for record in result.updated_records:
            try:
                readable.append(self.cipher.decrypt_metadata_blob(record.encrypted_data))
            except IntegrityError:
                logger.debug("Record %s is not readable with this vault key", record.id)
        return readable
