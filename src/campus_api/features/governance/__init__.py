"""Super-admin governance: impact analysis, confirmation and audited execution."""
