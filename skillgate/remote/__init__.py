"""Remote merge-gate provisioning.

The validator's pass/fail status only gates merges once a branch protection
policy on the hosting platform requires it. This package builds that policy
document and reconciles it against the remote API, idempotently by name.
"""

# Status check name the CI job publishes the validator result under
REQUIRED_CHECK_CONTEXT = "skillgate/validate"
