# handoff_app/services/__init__.py
