"""Project-wide named constants.

Constants defined here replace inline magic numbers across the codebase.
The polling values are measured heuristics, not server guarantees.
"""

# REST (v3) deployments; dedicated deployments override via --endpoint.
DEFAULT_ENDPOINT: str = "https://prod.operand.ai"

# RPC generation (file/tenant/core services).
DEFAULT_RPC_ENDPOINT: str = "https://api.operand.ai"

# Per-request timeout for the client-owned httpx.AsyncClient, in seconds.
DEFAULT_TIMEOUT_SECONDS: float = 60.0

# Wait protocol schedule:
# - iteration 0 fetches immediately
# - iterations 1..9 sleep POLL_FAST_DELAY (small objects index in ~1-3s)
# - iterations >= 10 sleep POLL_SLOW_DELAY (large objects, avoid flooding)
POLL_FAST_DELAY: float = 0.3
POLL_SLOW_DELAY: float = 1.0
POLL_FAST_ITERATIONS: int = 10

# Read size used when streaming a file payload into a multipart body.
UPLOAD_CHUNK_SIZE: int = 64 * 1024
