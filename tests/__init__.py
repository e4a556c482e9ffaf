"""ShieldBot test suite."""
