from .tables import charges_table, render_charges_markdown, rule_sets_table, summary_table

__all__ = ["charges_table", "summary_table", "rule_sets_table", "render_charges_markdown"]
