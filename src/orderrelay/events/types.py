"""Event constants.

Learn: Centralizing the wire-level names prevents typos across the relay,
the fan-out server, and the tests.
"""

# ─── Raw change events ───────────────────────────────────

UNKNOWN_OPERATION = "UNKNOWN"  # payload was not a JSON object

# ─── Bus enrichment fields (additive, consumers ignore unknown keys) ─

FIELD_SEQUENCE_ID = "_pub_id"
FIELD_PUBLISHED_AT = "_published_at"
FIELD_SOURCE = "_source"

# ─── Client-facing messages ──────────────────────────────

WELCOME = "welcome"
