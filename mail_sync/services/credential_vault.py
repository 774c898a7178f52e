"""
Credential vault.

Secrets are sealed on the account row and only ever decrypted inside
``CredentialVault.unsealed``; the plaintext lives on a ``Credentials`` object
that is wiped when the block exits and is never assigned to the model.
"""

from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import datetime

from triage_core.utils.logging import ContextLogger

from ..utils.crypto import decrypt_value, encrypt_value

logger = ContextLogger(__name__)


@dataclass
class Credentials:
    username: str = ""
    password: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def wipe(self) -> None:
        for f in fields(self):
            setattr(self, f.name, None)

    def __repr__(self) -> str:
        return f"<Credentials username={self.username!r}>"


class CredentialVault:
    """Seal and unseal the auth material of mail accounts."""

    @staticmethod
    def key_material(account) -> str:
        return str(account.user_id)

    def seal_password(self, account, password: str, save: bool = True) -> None:
        account.encrypted_password = encrypt_value(password, self.key_material(account))
        if save:
            account.save(update_fields=["encrypted_password", "updated_at"])

    def seal_tokens(
        self,
        account,
        access_token: str,
        refresh_token: str | None = None,
        expires_at: datetime | None = None,
        save: bool = True,
    ) -> None:
        """Store OAuth tokens. A missing refresh token keeps the stored one."""
        material = self.key_material(account)
        update_fields = ["encrypted_access_token", "token_expires_at", "updated_at"]

        account.encrypted_access_token = encrypt_value(access_token, material)
        account.token_expires_at = expires_at
        if refresh_token:
            account.encrypted_refresh_token = encrypt_value(refresh_token, material)
            update_fields.append("encrypted_refresh_token")
        if save:
            account.save(update_fields=update_fields)

    @contextmanager
    def unsealed(self, account):
        """Yield decrypted ``Credentials`` for the duration of the block.

        Raises:
            AuthenticationError: if stored values cannot be decrypted
            ConfigurationError: if no master key is configured
        """
        material = self.key_material(account)
        credentials = Credentials(
            username=account.imap_username or account.email_address,
            password=decrypt_value(account.encrypted_password, material) or None,
            access_token=decrypt_value(account.encrypted_access_token, material) or None,
            refresh_token=decrypt_value(account.encrypted_refresh_token, material)
            or None,
            expires_at=account.token_expires_at,
        )
        try:
            yield credentials
        finally:
            credentials.wipe()

    def token_saver(self, account):
        """Callback for adapters that re-seals refreshed OAuth tokens."""

        def _save(access_token, refresh_token, expires_at):
            self.seal_tokens(account, access_token, refresh_token, expires_at)
            logger.info(
                "Re-sealed refreshed OAuth tokens",
                extra_context={"account_id": account.id},
            )

        return _save


vault = CredentialVault()
