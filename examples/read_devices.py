#!/usr/bin/env python3
"""Example: read live values through the PLC gateway, one device and then a batch."""

import asyncio

from pyplc_ladder import BatchReadRequest, DeviceReadRequest, GatewayClient


async def main() -> None:
    base_url = "http://localhost:8000"  # change to your gateway
    plc_host = "line1"  # PLC name known to the gateway

    async with GatewayClient(base_url, timeout=5.0) as gateway:
        result = await gateway.read(DeviceReadRequest(spec="D100:2", plc_host=plc_host))
        if result.success:
            print(f"{result.device} = {list(result.values)}")
        else:
            print(f"{result.device} failed: {result.error}")

        # One failing device does not hide the others; order matches the request
        batch = await gateway.read_batch(BatchReadRequest(specs=("D100", "M10", "X1A", "TS0"), plc_host=plc_host))
        for r in batch.results:
            print(f"{r.device}\t{'ok' if r.success else 'error'}\t{list(r.values) or r.error}")


if __name__ == "__main__":
    asyncio.run(main())
