"""Shared assertion helpers for authorization boundary tests.

Usage:
    await assert_requires_auth(unauth_client, "get", "/api/v1/referrals")
    await assert_forbidden(client_client, "post", url, json={...})
"""

from __future__ import annotations

from httpx import AsyncClient


async def assert_requires_auth(
    client: AsyncClient, method: str, url: str, **kwargs
) -> None:
    """Verify endpoint returns 401 without auth."""
    resp = await getattr(client, method)(url, **kwargs)
    assert resp.status_code == 401, (
        f"{method.upper()} {url} expected 401, got {resp.status_code}: {resp.text}"
    )


async def assert_forbidden(
    client: AsyncClient, method: str, url: str, **kwargs
) -> None:
    """Verify endpoint returns 403 for a caller whose role is too low."""
    resp = await getattr(client, method)(url, **kwargs)
    assert resp.status_code == 403, (
        f"{method.upper()} {url} expected 403, got {resp.status_code}: {resp.text}"
    )
