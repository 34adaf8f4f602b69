"""プロバイダ認可の公開API。"""

from __future__ import annotations

from deploylink.auth.browser import BrowserContext, CallbackReceiver, SystemBrowserContext
from deploylink.auth.exchange import TokenExchangeClient, extract_artifact
from deploylink.auth.handshake import AuthorizationHandshakeController, extract_state
from deploylink.auth.session import HandshakeSession, SessionTokenSigner
from deploylink.auth.storage import CredentialStore

__all__ = [
    "AuthorizationHandshakeController",
    "BrowserContext",
    "CallbackReceiver",
    "CredentialStore",
    "HandshakeSession",
    "SessionTokenSigner",
    "SystemBrowserContext",
    "TokenExchangeClient",
    "extract_artifact",
    "extract_state",
]
