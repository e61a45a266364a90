"""Pure domain types: statuses, transitions, identity proofs, clock."""
