"""Identity reconciliation package.

Resolves contact observations (an email and/or a phone number) into
clusters of contacts that describe the same real-world person, merges
clusters when a new observation bridges them, and assembles the
consolidated "who is this" view for a cluster.

The resolver and assembler only talk to a ``ContactStore``; the SQL
implementation lives in ``app.db.repositories`` and an in-memory one in
``app.identity.memory_store``.
"""
