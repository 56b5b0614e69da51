"""Race services shared by the HTTP routes.

Room codes, joins and state changes live in ``lifecycle``, which draws the
reference text from ``texts``. Scoring typed text against it lives in
``progress``, and ``sync`` builds the ranked snapshot and applies pushes.
"""
