"""
auth/oauth.py -- Authlib OAuth/OIDC provider configuration.

build_oauth_registry() registers only providers with both client ID and
secret configured. get_enabled_providers() mirrors that decision for the
public provider listing.

Security notes:
  An email the provider does not mark as verified is treated as absent. The
  resolver then fails with no-email-from-provider. Linking by email trusts
  the provider's claim; an unverified claim is not a claim.

  OAuth state (CSRF protection for the authorization-code flow) is handled by
  authlib through Starlette's SessionMiddleware, configured in api/main.py.

Supported providers:
  google -- Authorization code flow; OIDC discovery.
  github -- Authorization code flow; static endpoints.
  oidc   -- Generic OIDC discovery (Okta, Azure AD, Keycloak, Authentik, etc.)

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.integrations.starlette_client import OAuth

from core.config import Settings

logger = logging.getLogger("sessionauth.auth.oauth")


class ProviderFailure(Exception):
    """The provider response could not be turned into an identity assertion."""


@dataclass(frozen=True)
class ProviderAssertion:
    subject: str
    email: str | None


# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------


def build_oauth_registry(settings: Settings) -> OAuth:
    oauth = OAuth()

    if settings.google_client_id and settings.google_client_secret:
        oauth.register(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")

    if settings.github_client_id and settings.github_client_secret:
        oauth.register(
            name="github",
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            access_token_url="https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
            authorize_url="https://github.com/login/oauth/authorize",
            api_base_url="https://api.github.com/",
            client_kwargs={"scope": "read:user user:email"},
        )
        logger.info("GitHub OAuth provider registered")

    if settings.oidc_client_id and settings.oidc_client_secret and settings.oidc_discovery_url:
        oauth.register(
            name="oidc",
            client_id=settings.oidc_client_id,
            client_secret=settings.oidc_client_secret,
            server_metadata_url=settings.oidc_discovery_url,
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Generic OIDC provider registered (display name: %s)", settings.oidc_display_name)

    return oauth


def get_enabled_providers(settings: Settings) -> list[dict]:
    """Return {"name", "label"} for every configured provider."""
    providers: list[dict] = []
    if settings.google_client_id and settings.google_client_secret:
        providers.append({"name": "google", "label": "Google"})
    if settings.github_client_id and settings.github_client_secret:
        providers.append({"name": "github", "label": "GitHub"})
    if settings.oidc_client_id and settings.oidc_client_secret and settings.oidc_discovery_url:
        providers.append({"name": "oidc", "label": settings.oidc_display_name})
    return providers


# ---------------------------------------------------------------------------
# Assertion extraction -- provider-specific normalization
# ---------------------------------------------------------------------------


async def get_provider_assertion(client, provider: str, token: dict) -> ProviderAssertion:
    """Extract (subject, verified email or None) from a provider token response.

    Raises:
        ProviderFailure: no stable subject could be determined.
    """
    if provider == "github":
        return await _github_assertion(client, token)
    if provider in ("google", "oidc"):
        return _oidc_assertion(token, provider)
    raise ProviderFailure(f"Unknown OAuth provider: {provider!r}")


async def _github_assertion(client, token: dict) -> ProviderAssertion:
    """GitHub needs two calls: /user for the numeric id, /user/emails for the address.

    Only an entry with both primary=true and verified=true counts.
    """
    resp = await client.get("user", token=token)
    resp.raise_for_status()
    profile = resp.json()
    if profile.get("id") is None:
        raise ProviderFailure("GitHub OAuth: profile has no id")

    emails_resp = await client.get("user/emails", token=token)
    emails_resp.raise_for_status()

    email: str | None = None
    for entry in emails_resp.json():
        if entry.get("primary") and entry.get("verified"):
            email = entry.get("email")
            break

    return ProviderAssertion(subject=str(profile["id"]), email=email)


def _oidc_assertion(token: dict, provider: str) -> ProviderAssertion:
    """Google and generic OIDC put sub/email/email_verified in the id_token claims.

    Providers that omit email_verified are treated as unverified.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ProviderFailure(f"{provider} OAuth: no userinfo in token response")

    subject = userinfo.get("sub")
    if not subject:
        raise ProviderFailure(f"{provider} OAuth: missing sub claim")

    email = userinfo.get("email") if userinfo.get("email_verified", False) else None
    return ProviderAssertion(subject=str(subject), email=email)
