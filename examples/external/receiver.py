#!/usr/bin/env python3
"""Minimal webhook receiver that verifies Hookpost signatures.

Run it next to the Hookpost API:

    WEBHOOK_SECRET=whsec_... uvicorn examples.external.receiver:app --port 9000

Then register ``https://<public-host>/hooks`` as a webhook (receivers must
be reachable over https) and publish an event.

The receiver:
    - verifies the signature over the raw body, before parsing JSON
    - rejects stale timestamps (replay protection)
    - de-duplicates on X-Webhook-Id, which is stable across retries
"""

import json
import os

from fastapi import FastAPI, Request, Response

from hookpost.exceptions import VerificationError
from hookpost.webhooks import DELIVERY_ID_HEADER, SIGNATURE_HEADER, verify_signature

WEBHOOK_SECRET = os.environ.get("WEBHOOK_SECRET", "")

app = FastAPI(title="Hookpost demo receiver")

# A real receiver would persist this
_processed: set[str] = set()


@app.post("/hooks")
async def receive(request: Request) -> Response:
    """Accept one delivery."""
    body = await request.body()
    try:
        verify_signature(WEBHOOK_SECRET, request.headers.get(SIGNATURE_HEADER, ""), body)
    except VerificationError as e:
        return Response(status_code=400, content=e.message)

    delivery_id = request.headers.get(DELIVERY_ID_HEADER, "")
    if delivery_id in _processed:
        # Already handled an earlier attempt; acknowledge so retries stop
        return Response(status_code=200)

    envelope = json.loads(body)
    print(f"{envelope['event']}: {envelope['data']}")
    _processed.add(delivery_id)
    return Response(status_code=204)
