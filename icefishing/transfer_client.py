"""Client for the external ledger's transfer-query API."""

import asyncio
import logging
from typing import List, Optional
from urllib.parse import quote

import aiohttp

from icefishing.converter import TransferConverter
from icefishing.errors import ExternalServiceUnavailable
from icefishing.models.schema_models import TransferSchema


class TonApiClient:
    """
    Reads recent incoming transfers of an account from TonAPI.

    Never mutates anything; every failure is reported as
    ExternalServiceUnavailable so callers can retry later.
    """

    def __init__(
        self,
        base_url: str = "https://tonapi.io/v2",
        api_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        converter: Optional[TransferConverter] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.converter = converter or TransferConverter()
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._session = aiohttp.ClientSession(timeout=timeout, headers=headers)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def recent_incoming(self, account: str, limit: int = 20) -> List[TransferSchema]:
        """
        Fetch and normalize the latest incoming transfers.

        Args:
            account: Treasury account to inspect
            limit: Maximum number of transactions to request

        Returns:
            Normalized transfers, newest first as returned by the API

        Raises:
            ExternalServiceUnavailable: on timeout, network error, non-2xx or an unparsable body
        """
        url = f"{self.base_url}/blockchain/accounts/{quote(account, safe='')}/transactions"
        try:
            session = await self._get_session()
            async with session.get(url, params={"limit": str(limit)}) as resp:
                if resp.status != 200:
                    logging.error(f"tonapi returned {resp.status} for {account}")
                    raise ExternalServiceUnavailable(f"tonapi_{resp.status}")
                payload = await resp.json()
        except asyncio.TimeoutError as e:
            logging.error(f"tonapi timeout for {account}")
            raise ExternalServiceUnavailable("tonapi_timeout") from e
        except aiohttp.ClientError as e:
            logging.error(f"tonapi request failed: {e}")
            raise ExternalServiceUnavailable(f"tonapi_error: {e}") from e
        except ValueError as e:
            logging.error(f"tonapi returned an unreadable body for {account}: {e}")
            raise ExternalServiceUnavailable("tonapi_bad_payload") from e

        return self.converter.convert_transactions(payload)
