"""
CDI drought early warning dashboard
===================================

- The Dash/Flask app is in `cdi_dews/app.py` (JSON API in `api.py`).
- Classification, catalog and visibility rules are plain modules with no
  UI dependencies.
- The dashboard state and fetch orchestration live in `controller.py`.
"""

__version__ = "0.3.0"
