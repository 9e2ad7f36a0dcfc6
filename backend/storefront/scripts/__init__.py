"""Maintenance Scripts - one-off operator utilities run with `python -m`."""
