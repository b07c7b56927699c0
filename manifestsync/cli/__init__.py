"""manifestsync CLI: Typer-based command-line interface.

Provides the ``manifestsync`` command used by pre-commit hooks (``sync``,
``check``), by publish automation (``publish``) and by operators
(``serve``, ``history``, ``status``, ``verify-log``).
"""
