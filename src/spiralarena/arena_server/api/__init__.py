"""RPC endpoint handlers. Each module exposes ``async def handle(request, arena)``."""
