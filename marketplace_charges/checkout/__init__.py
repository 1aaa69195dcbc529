from .totals import CHARGE_BUCKETS, OrderCharges, summarize_charges

__all__ = ["CHARGE_BUCKETS", "OrderCharges", "summarize_charges"]
