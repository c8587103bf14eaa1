"""
Talking Talent application package.

Layered the same way throughout:

  talent/repositories/  pure I/O, loading from and persisting to JSON files,
                          one file per storage key.
  talent/services/      business logic, validation, hierarchy rules, round
                          lifecycle, review completion and trends.

``TalentTracker`` (in ``talking_talent.py``) is the integration point: it
creates repository and service instances in ``__init__`` and exposes them as
public attributes (e.g. ``tracker.round_service``).  Route handlers in
``talking_talent_gui.py`` and the command line both go through these services.
"""

__version__ = '1.0.0'
