"""Pure domain types: money, periods, clock and records."""
