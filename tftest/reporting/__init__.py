"""Job result reporting: console table and JSON/YAML report files."""

from tftest.reporting.reporter import Reporter, job_category

__all__ = [
    "Reporter",
    "job_category",
]
