"""Engine constants shared by the evaluators and the session engine.

Limits and defaults can be overridden via environment variables so that
deployments can tune them without code changes.
"""

import os

# Upper bound on work a single rule evaluation may perform.  One step is
# one predicate check or one fact-path segment resolved.
# Overridable via RULE_MAX_STEPS.
RULE_MAX_STEPS = int(os.getenv("RULE_MAX_STEPS", "10000"))

# Rule sources larger than this are rejected before parsing.
# Overridable via RULE_MAX_SOURCE_BYTES.
RULE_MAX_SOURCE_BYTES = int(os.getenv("RULE_MAX_SOURCE_BYTES", "65536"))

# Fact paths with more segments than this are rejected.
# Overridable via RULE_MAX_DEPTH.
RULE_MAX_DEPTH = int(os.getenv("RULE_MAX_DEPTH", "16"))

# A ``matches`` predicate only searches this many leading characters of
# the fact.  Overridable via RULE_MAX_MATCH_CHARS.
RULE_MAX_MATCH_CHARS = int(os.getenv("RULE_MAX_MATCH_CHARS", "1024"))

# Country calling code assumed for phone numbers entered without a leading
# "+".  Overridable via DEFAULT_PHONE_COUNTRY_CODE.
DEFAULT_PHONE_COUNTRY_CODE = os.getenv("DEFAULT_PHONE_COUNTRY_CODE", "1")

# Destinations reported by determine_destination; crisis takes precedence.
DESTINATION_CRISIS = "crisis"
DESTINATION_COMPLETED = "completed"
