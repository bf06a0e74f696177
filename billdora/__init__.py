"""Billdora billing core.

Billing calculation engine and invoice session controller for
professional-services projects.
"""

__version__ = "1.0.0"
