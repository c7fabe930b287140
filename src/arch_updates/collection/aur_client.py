"""
Client for the AUR RPC interface and the AUR cgit build-recipe endpoint.

All requests go through the caller's aiohttp session so one check cycle shares
a single connection pool.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from src.arch_updates.core.errors import NotFoundError, ParseError, TransportError
from src.i18n import _

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://aur.archlinux.org/rpc/v5/info"
DEFAULT_SRCINFO_URL = "https://aur.archlinux.org/cgit/aur.git/plain/.SRCINFO"

# Statuses worth another attempt; everything else fails immediately
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class AurPackageInfo:
    name: str
    version: str
    package_base: str


def parse_info_response(payload: Any) -> Dict[str, AurPackageInfo]:
    """
    Turn an RPC ``info`` response into name -> AurPackageInfo.

    Error responses raise TransportError; results missing a name or version
    are skipped.
    """
    if not isinstance(payload, dict):
        raise ParseError(_("AUR RPC response is not a JSON object"))
    if payload.get("type") == "error":
        raise TransportError(
            _("AUR RPC returned an error: %s") % payload.get("error", "unknown")
        )
    results = payload.get("results")
    if not isinstance(results, list):
        raise ParseError(_("AUR RPC response has no results list"))

    packages = {}
    for entry in results:
        if not isinstance(entry, dict):
            continue
        name = entry.get("Name")
        version = entry.get("Version")
        if not name or not version:
            logger.debug("Skipping incomplete AUR result: %s", entry)
            continue
        packages[name] = AurPackageInfo(
            name=name,
            version=version,
            package_base=entry.get("PackageBase") or name,
        )
    return packages


def chunked(names: Sequence[str], size: int) -> List[List[str]]:
    size = max(1, size)
    return [list(names[index : index + size]) for index in range(0, len(names), size)]


class AurClient:
    """Batched AUR RPC queries with bounded retries."""

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        srcinfo_url: str = DEFAULT_SRCINFO_URL,
        batch_size: int = 100,
        request_timeout: float = 30.0,
        max_retries: int = 2,
        retry_backoff: float = 1.0,
    ):
        self.rpc_url = rpc_url
        self.srcinfo_url = srcinfo_url
        self.batch_size = batch_size
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    async def _get(
        self,
        session: aiohttp.ClientSession,
        url: str,
        params: List[Any],
        expect_json: bool,
    ) -> Optional[Any]:
        """
        GET with retries on connection errors and retryable statuses.

        Returns None for 404 so callers can decide what "missing" means.
        """
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        attempt = 0
        while True:
            attempt += 1
            try:
                async with session.get(url, params=params, timeout=timeout) as response:
                    if response.status == 404:
                        return None
                    if response.status == 200:
                        if expect_json:
                            return await response.json(content_type=None)
                        return await response.text()
                    error = TransportError(
                        _("HTTP %s from %s") % (response.status, url)
                    )
                    if response.status not in RETRYABLE_STATUSES:
                        raise error
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                error = TransportError(_("Request to %s failed: %s") % (url, exc))
                error.__cause__ = exc
            except ValueError as exc:
                raise ParseError(
                    _("Invalid JSON from %s: %s") % (url, exc)
                ) from exc

            if attempt > self.max_retries:
                raise error
            delay = self.retry_backoff * (2 ** (attempt - 1))
            logger.warning(
                _("Request to %s failed (attempt %d), retrying in %.1fs"),
                url,
                attempt,
                delay,
            )
            await asyncio.sleep(delay)

    async def _info_batch(
        self, session: aiohttp.ClientSession, names: List[str]
    ) -> Dict[str, AurPackageInfo]:
        params = [("arg[]", name) for name in names]
        payload = await self._get(session, self.rpc_url, params, expect_json=True)
        if payload is None:
            raise TransportError(_("AUR RPC endpoint %s not found") % self.rpc_url)
        return parse_info_response(payload)

    async def info(
        self, session: aiohttp.ClientSession, names: Sequence[str]
    ) -> Dict[str, AurPackageInfo]:
        """
        Look up packages by name.

        Names are split into batches that are queried concurrently. Names the
        AUR does not know are simply absent from the result; any failed batch
        fails the whole lookup and cancels the batches still in flight.
        """
        unique = sorted(set(names))
        if not unique:
            return {}
        batches = chunked(unique, self.batch_size)
        logger.debug(
            "Querying AUR for %d package(s) in %d batch(es)", len(unique), len(batches)
        )
        tasks = [
            asyncio.ensure_future(self._info_batch(session, batch))
            for batch in batches
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # gather leaves the other batches running on the first failure
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        merged: Dict[str, AurPackageInfo] = {}
        for result in results:
            merged.update(result)
        return merged

    async def fetch_srcinfo(
        self, session: aiohttp.ClientSession, package_base: str
    ) -> str:
        """Raw .SRCINFO text for a package base."""
        text = await self._get(
            session, self.srcinfo_url, [("h", package_base)], expect_json=False
        )
        # cgit answers unknown bases with an empty body or 404
        if not text or not text.strip():
            raise NotFoundError(_("No .SRCINFO found for %s") % package_base)
        return text
