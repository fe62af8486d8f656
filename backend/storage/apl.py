# storage/apl.py
# ============================================================================
# SALEOR ORDER HASH APP — AUTH PERSISTENCE LAYER (APL)
# ============================================================================
# Where the app's Saleor tokens live, keyed by Saleor API URL.
#
# The backend is picked once at startup by build_apl() from the APL
# environment variable and injected into the services that need it:
# - memory:  process-local dict (tests, local development)
# - file:    single-tenant JSON file in the Saleor ".auth-data.json" format
# - upstash: Upstash Redis over its REST API (multi-tenant deployments)
# ============================================================================

import os
import json
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from schemas.order_hash import AuthData

logger = structlog.get_logger().bind(component="apl")


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class AplConfig:
    backend: str = "memory"
    file_path: str = ".auth-data.json"
    upstash_url: Optional[str] = None
    upstash_token: Optional[str] = None
    timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "AplConfig":
        return cls(
            backend=os.getenv("APL", "memory").strip().lower(),
            file_path=os.getenv("FILE_APL_PATH", ".auth-data.json"),
            upstash_url=os.getenv("UPSTASH_URL"),
            upstash_token=os.getenv("UPSTASH_TOKEN"),
            timeout_seconds=float(os.getenv("UPSTASH_TIMEOUT", "5.0")),
        )


# =============================================================================
# INTERFACE
# =============================================================================

class IAuthDataStore(ABC):
    """Credential lookup keyed by Saleor API URL"""

    @abstractmethod
    async def get(self, saleor_api_url: str) -> Optional[AuthData]:
        pass

    @abstractmethod
    async def set(self, auth_data: AuthData) -> None:
        pass

    @abstractmethod
    async def delete(self, saleor_api_url: str) -> None:
        pass

    @abstractmethod
    async def get_all(self) -> List[AuthData]:
        pass

    async def close(self) -> None:
        pass


# =============================================================================
# IMPLEMENTATIONS
# =============================================================================

class InMemoryAPL(IAuthDataStore):

    def __init__(self, initial: Optional[List[AuthData]] = None):
        self._data: Dict[str, AuthData] = {a.saleor_api_url: a for a in initial or []}
        self._lock = asyncio.Lock()

    async def get(self, saleor_api_url: str) -> Optional[AuthData]:
        async with self._lock:
            return self._data.get(saleor_api_url)

    async def set(self, auth_data: AuthData) -> None:
        async with self._lock:
            self._data[auth_data.saleor_api_url] = auth_data

    async def delete(self, saleor_api_url: str) -> None:
        async with self._lock:
            self._data.pop(saleor_api_url, None)

    async def get_all(self) -> List[AuthData]:
        async with self._lock:
            return list(self._data.values())


class FileAPL(IAuthDataStore):
    """
    Single-tenant APL backed by a JSON file.

    The file holds one object: {"saleorApiUrl": ..., "token": ..., "appId": ...}.
    """

    def __init__(self, file_path: str = ".auth-data.json"):
        self.file_path = file_path

    def _read(self) -> Optional[AuthData]:
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("file_apl_unreadable", path=self.file_path, error=str(e))
            return None

        if not raw:
            return None
        try:
            return AuthData.model_validate(raw)
        except ValidationError as e:
            logger.warning("file_apl_invalid", path=self.file_path, error=str(e))
            return None

    def _write(self, auth_data: Optional[AuthData]) -> None:
        payload = auth_data.model_dump(by_alias=True) if auth_data else {}
        with open(self.file_path, "w", encoding="utf-8") as f:
            json.dump(payload, f)

    async def get(self, saleor_api_url: str) -> Optional[AuthData]:
        auth_data = self._read()
        if auth_data and auth_data.saleor_api_url == saleor_api_url:
            return auth_data
        return None

    async def set(self, auth_data: AuthData) -> None:
        self._write(auth_data)

    async def delete(self, saleor_api_url: str) -> None:
        current = self._read()
        if current and current.saleor_api_url == saleor_api_url:
            self._write(None)

    async def get_all(self) -> List[AuthData]:
        auth_data = self._read()
        return [auth_data] if auth_data else []


class UpstashAPL(IAuthDataStore):
    """
    Multi-tenant APL on Upstash Redis.

    Each Saleor API URL is a Redis key whose value is the serialized AuthData.
    Commands go through the REST endpoint as JSON arrays.
    """

    def __init__(
        self,
        url: str,
        token: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not url or not token:
            raise ValueError("UpstashAPL requires UPSTASH_URL and UPSTASH_TOKEN")
        self._client = client or httpx.AsyncClient(
            base_url=url,
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def _command(self, *args: str):
        response = await self._client.post("/", json=list(args))
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise RuntimeError(f"Unexpected Upstash response: {type(body).__name__}")
        if body.get("error"):
            raise RuntimeError(f"Upstash error: {body['error']}")
        return body.get("result")

    async def get(self, saleor_api_url: str) -> Optional[AuthData]:
        try:
            result = await self._command("GET", saleor_api_url)
        except (httpx.HTTPError, RuntimeError, ValueError) as e:
            # An unreachable or misbehaving APL reads as "no credential on file"
            logger.error("upstash_apl_get_failed", saleor_api_url=saleor_api_url, error=str(e))
            return None

        if not result:
            return None
        try:
            return AuthData.model_validate_json(result)
        except ValidationError as e:
            logger.warning("upstash_apl_invalid", saleor_api_url=saleor_api_url, error=str(e))
            return None

    async def set(self, auth_data: AuthData) -> None:
        await self._command("SET", auth_data.saleor_api_url, auth_data.model_dump_json(by_alias=True))

    async def delete(self, saleor_api_url: str) -> None:
        await self._command("DEL", saleor_api_url)

    async def get_all(self) -> List[AuthData]:
        keys = await self._command("KEYS", "*") or []
        if not keys:
            return []
        values = await self._command("MGET", *keys) or []
        return [AuthData.model_validate_json(v) for v in values if v]

    async def close(self) -> None:
        await self._client.aclose()


# =============================================================================
# FACTORY
# =============================================================================

def build_apl(config: Optional[AplConfig] = None) -> IAuthDataStore:
    """Select the APL backend once, at startup"""
    config = config or AplConfig.from_env()

    if config.backend == "memory":
        apl: IAuthDataStore = InMemoryAPL()
    elif config.backend == "file":
        apl = FileAPL(config.file_path)
    elif config.backend == "upstash":
        apl = UpstashAPL(config.upstash_url, config.upstash_token, config.timeout_seconds)
    else:
        raise ValueError(f"Cannot find valid APL: {config.backend!r}")

    logger.info("apl_selected", backend=config.backend)
    return apl


# =============================================================================
# CREDENTIAL RESOLUTION
# =============================================================================

async def resolve_credential(apl: IAuthDataStore, saleor_api_url: str) -> Optional[AuthData]:
    """
    Credential for a Saleor instance.

    Records and webhooks without a Saleor API URL fall back to the only
    registered instance of a single-tenant APL.
    """
    if saleor_api_url:
        return await apl.get(saleor_api_url)

    registered = await apl.get_all()
    if len(registered) == 1:
        logger.info("credential_single_tenant_fallback", saleor_api_url=registered[0].saleor_api_url)
        return registered[0]
    return None
