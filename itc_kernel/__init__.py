"""
ITC kernel: value types, clock, periods, typed errors, structured logging
and persistence primitives shared by the engines and services.
"""

from itc_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from itc_kernel.domain.periods import PeriodKey, financial_year_label
from itc_kernel.domain.values import INR, Currency, Money
from itc_kernel.logging_config import LogContext, configure_logging, get_logger

__all__ = [
    "Clock",
    "Currency",
    "DeterministicClock",
    "INR",
    "LogContext",
    "Money",
    "PeriodKey",
    "SystemClock",
    "configure_logging",
    "financial_year_label",
    "get_logger",
]
