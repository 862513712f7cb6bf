from __future__ import annotations

# gh API / release operations
GH_TIMEOUT_SECONDS = 60.0
GH_UPLOAD_TIMEOUT_SECONDS = 30 * 60.0

# Channel lock polling while another run holds the channel
LOCK_POLL_SECONDS = 5.0

# A stale-lock takeover guard older than this belongs to a dead waiter
TAKEOVER_GUARD_STALE_SECONDS = 60.0

# Bundler setup before the first Fastlane lane of a run
BUNDLE_INSTALL_TIMEOUT_SECONDS = 15 * 60.0
