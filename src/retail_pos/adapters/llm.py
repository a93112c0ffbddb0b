from __future__ import annotations
import asyncio
import logging
import time
from typing import Callable

import certifi
import httpx

from retail_pos import settings

logger = logging.getLogger(__name__)


def call_chat_sync(model_id: str, messages: list[dict], max_tokens: int = 800, temperature: float = 0.2):
    payload = {"model": model_id, "messages": messages, "temperature": temperature, "max_tokens": max_tokens}
    backoffs = [0.4, 0.8, 1.6]
    with httpx.Client(
        timeout=30.0,
        verify=certifi.where(),
        http2=False,
        trust_env=False,
        limits=httpx.Limits(max_connections=5, max_keepalive_connections=0),
    ) as client:
        for i in range(len(backoffs) + 1):
            try:
                r = client.post(settings.AI_CHAT_URL, headers=settings.AI_HEADERS, json=payload)
                r.raise_for_status()
                return r.json()
            except httpx.HTTPError as e:
                if i < len(backoffs):
                    logger.warning("chat call to %s failed (%s), retrying in %.1fs", model_id, e, backoffs[i])
                    time.sleep(backoffs[i])
                else:
                    raise


async def _call_model(model, messages):
    t0 = time.perf_counter()
    data = await asyncio.to_thread(call_chat_sync, model["id"], messages)
    dt_ms = int((time.perf_counter() - t0) * 1000)

    text = data["choices"][0]["message"]["content"]
    usage = data.get("usage", {}) or {}
    pin = (usage.get("prompt_tokens") or 0) / 1000 * model["in"]
    pout = (usage.get("completion_tokens") or 0) / 1000 * model["out"]
    cost = round(pin + pout, 6)

    return {
        "model": model["id"],
        "text": text,
        "latency_ms": dt_ms,
        "usage": usage,
        "cost_usd": cost,
    }


async def try_models(messages, scorer: Callable[[str], int], pref: str = "cheapest"):
    tasks = [_call_model(m, messages) for m in settings.MODELS]
    results = await asyncio.gather(*tasks)
    for r in results:
        r["score"] = scorer(r["text"])
    if pref == "fastest":
        sort_key = lambda x: (-x["score"], x["latency_ms"], x["cost_usd"])
    else:
        sort_key = lambda x: (-x["score"], x["cost_usd"], x["latency_ms"])
    winner = sorted(results, key=sort_key)[0]
    logger.info("model %s won (score=%s, %sms)", winner["model"], winner["score"], winner["latency_ms"])
    return winner, results


def run_models(messages, scorer: Callable[[str], int], pref: str = "cheapest"):
    """Blocking wrapper for Streamlit callers: fresh event loop per call."""
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(try_models(messages, scorer, pref))
    finally:
        asyncio.set_event_loop(None)
        loop.close()
