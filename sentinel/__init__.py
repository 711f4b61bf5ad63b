"""Error categorization and alerting engine.

This package contains the incident pipeline (fingerprinting, categorization,
tracking, actions), alert delivery, and the metrics collector with threshold
evaluation. Delivery integrations live in the sibling ``adapters`` package.
"""
