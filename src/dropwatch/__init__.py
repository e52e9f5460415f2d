"""
dropwatch - drop-folder job processing for compute-engine projects.

A project file dropped into ``Incoming/`` is claimed, run through a fixed
sequence of optional engine steps, and routed to ``Success/`` or ``Error/``.
Every step is written to an operator status log.

- dropwatch.core: context, settings, errors, status log, file lifecycle, tables
- dropwatch.engine: compute engine protocols and doubles
- dropwatch.orchestration: override import, run steps, results export
- dropwatch.scheduling: timer, folder watcher, trigger coordinator
- dropwatch.service: the long-running service
- dropwatch.cli: ``dropwatch`` command line
"""

__version__ = "0.1.0"
