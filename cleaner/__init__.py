"""Conditional TTL controller.

Deletes groups of related cluster resources once a minimum lifetime has
elapsed and a set of expression-language conditions over those resources
holds.
"""

from __future__ import annotations

__version__ = "0.4.0"
