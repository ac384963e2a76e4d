"""Core arena state: registry, engagements, ledger, locks and wiring."""
