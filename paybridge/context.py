"""Per-app wiring shared by every router through `request.app.state.ctx`."""

from dataclasses import dataclass

from fastapi import Request

from paybridge.common.config import BridgeSettings
from paybridge.common.hosted_page import HostedPageBuilder
from paybridge.common.platform_client import PlatformClient
from paybridge.common.session import AppSessionCodec
from paybridge.common.signatures import WebhookVerifier
from paybridge.services.audit.service import AuditLog
from paybridge.services.auth.service import OAuthStateStore, RedisOAuthStateStore
from paybridge.services.credentials.service import CredentialStore
from paybridge.services.ledger.service import LedgerService


@dataclass
class BridgeContext:
    settings: BridgeSettings
    ledger: LedgerService
    credentials: CredentialStore
    audit: AuditLog
    builder: HostedPageBuilder
    sessions: AppSessionCodec
    oauth_states: OAuthStateStore | RedisOAuthStateStore
    platform: PlatformClient
    platform_verifier: WebhookVerifier
    gateway_verifier: WebhookVerifier


def get_ctx(request: Request) -> BridgeContext:
    return request.app.state.ctx
