"""
CLI layer for etfspine.

Terminal transport only: argument parsing, settings overrides and Rich
output. The work itself happens in ``mapping``, ``migration`` and
``integrity``.

Entry point::

    etfspine --help
"""
