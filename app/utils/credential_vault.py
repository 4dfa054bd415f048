# app/utils/credential_vault.py

import base64
import binascii


class CredentialVault:
    """Holds the sender's bearer credential between scheduling and dispatch.

    ``store`` turns a live credential into an opaque token that is safe to hand
    to the store, ``recover`` reverses it at dispatch time.
    """

    def store(self, credential: str) -> str:
        raise NotImplementedError

    def recover(self, token: str) -> str:
        raise NotImplementedError


class Base64CredentialVault(CredentialVault):
    """Reversible base64 encoding.

    This is obfuscation, not encryption: anyone who can read the store can
    recover the live credential.
    """

    def store(self, credential: str) -> str:
        if not credential:
            raise ValueError("Credential is empty")
        return base64.b64encode(credential.encode("utf-8")).decode("ascii")

    def recover(self, token: str) -> str:
        if not token:
            raise ValueError("No stored credential")
        try:
            return base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeError) as e:
            raise ValueError(f"Stored credential is corrupt: {e}") from e
