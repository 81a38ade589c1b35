# services package

from .schedule import generate_payment_schedule
from .ingest import apply_payment_event, record_manual_payment, PaymentEvent, IngestOutcome
from .rent_roll import get_rent_roll, calculate_rent_roll_totals, get_monthly_payments
from .revenue import pm_revenue_by_property, pm_revenue_summary, pm_revenue_by_month, pm_revenue_for_date_range

__all__ = [
    "generate_payment_schedule",
    "apply_payment_event", "record_manual_payment", "PaymentEvent", "IngestOutcome",
    "get_rent_roll", "calculate_rent_roll_totals", "get_monthly_payments",
    "pm_revenue_by_property", "pm_revenue_summary", "pm_revenue_by_month", "pm_revenue_for_date_range",
]
