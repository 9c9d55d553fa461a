"""Resumable harvesting of merged pull request metrics from GitHub.

Run ``prharvest fetch`` to collect a date range into ``data.json`` and
``prharvest stats`` to aggregate it for the dashboard.
"""

__version__ = "0.1.0"
