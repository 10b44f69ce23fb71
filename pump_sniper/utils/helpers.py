import asyncio


def short_id(value: str, length: int = 8) -> str:
    if not value or len(value) <= length:
        return value or ""
    return f"{value[:length]}..."


async def wait_or_stop(stop_event: asyncio.Event, delay: float) -> bool:
    """Sleep up to ``delay`` seconds; True if ``stop_event`` fired first."""
    if stop_event.is_set():
        return True
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
        return True
    except asyncio.TimeoutError:
        return False
