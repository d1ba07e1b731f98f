"""spatial — Geographic helpers shared by the alerting code."""
