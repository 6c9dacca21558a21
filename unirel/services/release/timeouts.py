from __future__ import annotations

# Forge API calls
FORGE_TIMEOUT_SECONDS = 60.0

# Transient forge failures (5xx, 429, rate limits, network errors)
FORGE_RETRY_ATTEMPTS = 4
FORGE_RETRY_BASE_DELAY_SECONDS = 1.0
FORGE_RETRY_MAX_DELAY_SECONDS = 30.0

# Pagination guard for list endpoints
FORGE_MAX_PAGES = 20

# Local git operations (log, tag, rev-parse, worktree, commit)
GIT_TIMEOUT_SECONDS = 30.0

# Network-bound git operations (push)
GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
