"""
Telemetry Module for Praetor Monitor.

This module mirrors automation platform state into the terminal:
- Periodic job list polling
- Live tailing of a selected run's output events
- Line classification and ANSI decoding into styled spans
- Dashboard summary numbers

Key components:
- clients/: Automation platform HTTP client
- scheduler.py: Fixed-cadence poller with a staleness guard
- tailer.py: Per-run event buffer keyed by sequence number
- classifier.py: Category predicates and SGR decoding
- store.py: Owner of the mirrored state
- render.py: rich renderables for jobs, logs and catalogs
- schemas.py: Pydantic models for platform entities
"""
