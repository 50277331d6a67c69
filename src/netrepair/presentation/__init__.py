"""Presentation layer for netrepair.

Public API
----------
- :class:`ConsoleDashboard` -- rich console output
- :class:`InteractiveSession` -- menu-driven session over one context
- :class:`SessionReport`, :func:`build_report`, :func:`export_json` --
  JSON session report
"""

from netrepair.presentation.console import ConsoleDashboard
from netrepair.presentation.export import SessionReport, build_report, export_json
from netrepair.presentation.interactive import InteractiveSession

__all__ = [
    # Console
    "ConsoleDashboard",
    "InteractiveSession",
    # Export
    "SessionReport",
    "build_report",
    "export_json",
]
