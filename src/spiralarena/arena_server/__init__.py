"""Arena server: engagement lifecycle, combat resolution and RPC surface."""
