"""GatewayClient: async HTTP client for live device reads through a PLC gateway, using httpx."""

import asyncio
import logging
from typing import Any

import httpx

from .address import DeviceAddress, normalize_device
from .errors import GatewayIOError, InvalidDeviceError
from .types import BatchReadRequest, BatchReadResult, DeviceReadRequest, DeviceReadResult

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 10.0


def _connection_params(
    ip: str | None, port: int | None, plc_host: str | None, transport: str | None
) -> dict[str, str]:
    params: dict[str, str] = {}
    if plc_host:
        params["plc_host"] = plc_host
    if ip:
        params["ip"] = ip
    if port is not None and port > 0:
        params["port"] = str(port)
    if transport:
        params["transport"] = transport
    return params


def _parse_values(raw: Any, device: str) -> tuple[int, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise GatewayIOError(f"Unexpected values field: {raw!r}", device=device)
    # bool is an int subclass; floats are not truncated
    if any(isinstance(v, bool) or not isinstance(v, int) for v in raw):
        raise GatewayIOError(f"Non-integer value in response: {raw!r}", device=device)
    return tuple(raw)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


class GatewayClient:
    """
    Reads device values from a PLC gateway over HTTP.

    Failures (bad spec, connection error, timeout, non-2xx, unparseable body) come
    back as results with success=False; nothing but cancellation escapes read/read_batch.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        fallback_to_single: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._fallback_to_single = fallback_to_single
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def _url(self, base_url: str | None, path: str) -> str:
        return f"{(base_url or self._base_url).rstrip('/')}/{path}"

    async def _send(self, method: str, url: str, timeout: float, device: str | None = None, **kwargs: Any) -> Any:
        """Issue one request bounded by timeout and return the decoded JSON body."""
        client = self._get_client()
        try:
            response = await asyncio.wait_for(client.request(method, url, timeout=timeout, **kwargs), timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise GatewayIOError(f"Gateway request timed out after {timeout}s", device=device, cause=e) from e
        except httpx.HTTPError as e:
            raise GatewayIOError(f"Gateway request failed: {e}", device=device, cause=e) from e

        if not response.is_success:
            raise GatewayIOError(
                f"Gateway returned HTTP {response.status_code}: {_error_detail(response)}",
                device=device,
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise GatewayIOError("Gateway returned an unparseable body", device=device, cause=e) from e
        if not isinstance(body, dict):
            raise GatewayIOError("Gateway returned an empty or non-object body", device=device)
        return body

    async def read(self, request: DeviceReadRequest) -> DeviceReadResult:
        """GET /api/read/{device}/{address}/{length} for one device."""
        try:
            address = DeviceAddress.parse(request.spec)
        except InvalidDeviceError as e:
            return DeviceReadResult(device=request.spec, success=False, error=str(e))

        device = address.to_spec()
        timeout = request.timeout if request.timeout and request.timeout > 0 else self._timeout
        url = self._url(
            request.base_url,
            f"api/read/{address.device_type.value}/{address.address_text}/{address.length}",
        )
        params = _connection_params(request.ip, request.port, request.plc_host, request.transport)
        logger.debug("Gateway read: GET %s params=%s", url, params)
        try:
            body = await self._send("GET", url, timeout, device=device, params=params)
            values = _parse_values(body.get("values"), device)
        except GatewayIOError as e:
            logger.warning("Gateway read failed for %s: %s", device, e)
            return DeviceReadResult(device=device, success=False, error=str(e))

        success = body.get("success")
        return DeviceReadResult(
            device=device,
            values=values,
            success=True if success is None else bool(success),
            error=body.get("error"),
        )

    async def read_batch(self, request: BatchReadRequest) -> BatchReadResult:
        """
        POST /api/batch_read; results come back in the caller's order.

        Invalid specs fail on their own without reaching the gateway. When the batch
        endpoint itself fails, the devices are read one by one concurrently.
        """
        if not request.specs:
            return BatchReadResult(results=(), error="No devices specified")

        parsed: list[DeviceAddress | DeviceReadResult] = []
        for spec in request.specs:
            try:
                parsed.append(DeviceAddress.parse(spec))
            except InvalidDeviceError as e:
                parsed.append(DeviceReadResult(device=spec, success=False, error=str(e)))
        addresses = [p for p in parsed if isinstance(p, DeviceAddress)]
        if not addresses:
            return BatchReadResult(results=tuple(p for p in parsed if isinstance(p, DeviceReadResult)))

        timeout = request.timeout if request.timeout and request.timeout > 0 else self._timeout
        payload = {
            "devices": [a.to_spec() for a in addresses],
            "ip": request.ip,
            "port": request.port,
            "transport": request.transport,
            "plc_host": request.plc_host,
        }
        url = self._url(request.base_url, "api/batch_read")
        logger.debug("Gateway batch read: POST %s payload=%s", url, payload)

        try:
            body = await self._send("POST", url, timeout, json=payload)
            by_device = self._index_batch(body)
        except GatewayIOError as e:
            if not self._fallback_to_single:
                logger.warning("Gateway batch read failed: %s", e)
                return BatchReadResult(
                    results=tuple(
                        p
                        if isinstance(p, DeviceReadResult)
                        else DeviceReadResult(device=p.to_spec(), success=False, error=str(e))
                        for p in parsed
                    ),
                    error=str(e),
                )
            logger.warning("Gateway batch read failed (%s); reading %d devices one by one", e, len(addresses))
            singles = await asyncio.gather(
                *(
                    self.read(
                        DeviceReadRequest(
                            spec=a.to_spec(),
                            ip=request.ip,
                            port=request.port,
                            plc_host=request.plc_host,
                            transport=request.transport,
                            timeout=timeout,
                            base_url=request.base_url,
                        )
                    )
                    for a in addresses
                )
            )
            by_device = {r.device: r for r in singles}

        results: list[DeviceReadResult] = []
        for p in parsed:
            if isinstance(p, DeviceReadResult):
                results.append(p)
                continue
            found = by_device.get(p.to_spec()) or by_device.get(p.display)
            if found is None:
                results.append(
                    DeviceReadResult(device=p.to_spec(), success=False, error="No result returned for device")
                )
            else:
                results.append(
                    DeviceReadResult(device=p.to_spec(), values=found.values, success=found.success, error=found.error)
                )
        return BatchReadResult(results=tuple(results))

    @staticmethod
    def _index_batch(body: dict[str, Any]) -> dict[str, DeviceReadResult]:
        """Map the gateway's per-device results by canonical spec (and display form)."""
        items = body.get("results")
        if not isinstance(items, list):
            raise GatewayIOError("Batch response has no results list")
        indexed: dict[str, DeviceReadResult] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            raw_device = str(item.get("device") or "")
            try:
                key = DeviceAddress.parse(raw_device).to_spec()
            except InvalidDeviceError:
                key = raw_device
            try:
                values = _parse_values(item.get("values"), raw_device)
            except GatewayIOError as e:
                indexed[key] = DeviceReadResult(device=raw_device, success=False, error=str(e))
                continue
            result = DeviceReadResult(
                device=raw_device,
                values=values,
                success=bool(item.get("success", False)),
                error=item.get("error"),
            )
            indexed[key] = result
            display = normalize_device(raw_device.partition(":")[0])
            if display is not None:
                indexed.setdefault(display, result)
        return indexed
