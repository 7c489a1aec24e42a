"""One-shot export of the session credentials after pairing succeeds.

The raw credential artifact and its base64 copy are delivered to the
freshly linked account as documents, followed by a confirmation message.
Only a missing artifact or a failed primary delivery stops the workflow;
every later step is best-effort.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Optional

from pairbridge.config import ExportConfig
from pairbridge.errors import ExportError, StorageError
from pairbridge.service import MessageCache, MessageContent, SentMessage, SessionHandle
from pairbridge.storage import CREDS_FILE, DERIVED_FILE, CredentialStore

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """What the export delivered.

    Attributes:
        target: Account the documents were sent to.
        creds_message: Reference to the delivered creds.json document.
        derived_message: Reference to the cookie.txt document, if delivered.
        invite_accepted: Whether the configured invite was accepted.
    """

    target: str
    creds_message: SentMessage
    derived_message: Optional[SentMessage] = None
    invite_accepted: bool = False


class CredentialExporter:
    """Deliver the credential artifact through an open session."""

    def __init__(
        self,
        store: CredentialStore,
        config: Optional[ExportConfig] = None,
        message_cache: Optional[MessageCache] = None,
    ):
        """Initialize exporter.

        Args:
            store: Credential store to read from and write the copy to.
            config: Delays, invite code and message texts.
            message_cache: Records sent messages for the service lookup.
        """
        self.store = store
        self.config = config or ExportConfig()
        self.message_cache = message_cache

    async def _send(
        self,
        handle: SessionHandle,
        target: str,
        content: MessageContent,
        quoted: Optional[SentMessage] = None,
    ) -> SentMessage:
        sent = await handle.send_message(target, content, quoted=quoted)
        if self.message_cache is not None:
            self.message_cache.add(sent)
        return sent

    async def send_greeting(self, handle: SessionHandle) -> Optional[SentMessage]:
        """Send the greeting to the linked account.

        Returns:
            The sent message, or None if delivery failed.
        """
        target = handle.user_id
        if not target:
            logger.warning("Cannot send greeting: session has no user id")
            return None
        try:
            return await self._send(
                handle, target, MessageContent.of_text(self.config.greeting)
            )
        except Exception as e:
            logger.warning(f"Greeting delivery failed: {e}")
            return None

    async def export(self, handle: SessionHandle) -> ExportResult:
        """Run the export workflow.

        Args:
            handle: Open, authenticated session handle.

        Returns:
            ExportResult describing what was delivered.

        Raises:
            ExportError: If the artifact is missing or cannot be delivered.
        """
        target = handle.user_id
        if not target:
            raise ExportError("Session has no authenticated user id")

        try:
            artifact = self.store.read_artifact()
        except StorageError as e:
            raise ExportError(str(e)) from e
        if artifact is None:
            raise ExportError(f"{CREDS_FILE} not found in {self.store.directory}")

        await asyncio.sleep(self.config.send_delay)
        try:
            creds_message = await self._send(
                handle,
                target,
                MessageContent.of_document(artifact, "application/json", CREDS_FILE),
            )
        except Exception as e:
            raise ExportError(f"Failed to deliver {CREDS_FILE}: {e}") from e
        logger.info(f"Delivered {CREDS_FILE} ({len(artifact)} bytes)")

        result = ExportResult(target=target, creds_message=creds_message)
        result.derived_message = await self._deliver_derived(handle, target, artifact)
        result.invite_accepted = await self._accept_invite(handle)

        try:
            await self._send(
                handle,
                target,
                MessageContent.of_text(self.config.confirmation),
                quoted=creds_message,
            )
        except Exception as e:
            logger.warning(f"Confirmation delivery failed: {e}")

        await asyncio.sleep(self.config.send_delay)
        return result

    async def _deliver_derived(
        self, handle: SessionHandle, target: str, artifact: bytes
    ) -> Optional[SentMessage]:
        """Write the base64 copy and deliver it. Failures are only logged."""
        try:
            encoded = base64.b64encode(artifact)
            self.store.write_derived(encoded)
            await asyncio.sleep(self.config.send_delay)
            sent = await self._send(
                handle,
                target,
                MessageContent.of_document(
                    self.store.read_derived(), "text/plain", DERIVED_FILE
                ),
            )
        except Exception as e:
            logger.warning(f"{DERIVED_FILE} write/send failed: {e}")
            return None
        logger.info(f"Delivered {DERIVED_FILE}")
        return sent

    async def _accept_invite(self, handle: SessionHandle) -> bool:
        invite_code = self.config.invite_code
        if not invite_code:
            return False
        try:
            await handle.accept_invite(invite_code)
        except Exception as e:
            logger.info(f"Invite accept failed (maybe already a member): {e}")
            return False
        return True
