"""OAuth web-flow helpers: authorization link and code exchange."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from urllib.parse import parse_qsl, urlencode

import httpx

from ghkit import __version__
from ghkit.github.client import bad_status, decode
from ghkit.github.errors import (
    BadBodyError,
    MalformedUrlError,
    NetworkError,
    RequestTimeoutError,
)
from ghkit.models import AccessToken

logger = logging.getLogger(__name__)

_GITHUB_WEB = "https://github.com"


def authorize_url(
    client_id: str,
    *,
    redirect_uri: str | None = None,
    scopes: Sequence[str] = (),
    state: str | None = None,
    base_url: str = _GITHUB_WEB,
) -> str:
    """Return the URL that sends a user to GitHub's authorization page."""
    params: dict[str, str] = {"client_id": client_id}
    if redirect_uri:
        params["redirect_uri"] = redirect_uri
    if scopes:
        params["scope"] = " ".join(scopes)
    if state:
        params["state"] = state
    return f"{base_url.rstrip('/')}/login/oauth/authorize?{urlencode(params)}"


def parse_token_response(body: str) -> AccessToken:
    """Decode the ``key=value&...`` body returned by the token endpoint."""
    fields = dict(parse_qsl(body, keep_blank_values=True))
    if "error" in fields:
        detail = fields.get("error_description") or fields["error"]
        raise BadBodyError(f"OAuth code exchange rejected: {detail}", body=body[:300])
    return decode(AccessToken, fields)


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    *,
    state: str | None = None,
    redirect_uri: str | None = None,
    base_url: str = _GITHUB_WEB,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AccessToken:
    """Trade an authorization ``code`` for an access token."""
    form: dict[str, str] = {
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
    }
    if state:
        form["state"] = state
    if redirect_uri:
        form["redirect_uri"] = redirect_uri

    url = f"{base_url.rstrip('/')}/login/oauth/access_token"
    async with httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        headers={"User-Agent": f"ghkit/{__version__}"},
    ) as client:
        try:
            resp = await client.post(url, data=form)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"POST {url} timed out") from exc
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            raise MalformedUrlError(f"Invalid request URL {url!r}: {exc}") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"POST {url} failed: {exc}") from exc
        except httpx.DecodingError as exc:
            raise BadBodyError(f"Could not decode the response body for POST {url}: {exc}") from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"POST {url} failed: {exc}") from exc

    logger.debug("POST /login/oauth/access_token -> %s", resp.status_code)
    if not resp.is_success:
        raise bad_status(resp)
    return parse_token_response(resp.text)
