"""Generation job orchestration.

A job moves pending -> processing -> completed | failed. The runner owns
one job at a time: it borrows a credential from the provider's pool, drives
the adapter through one of three submission modes (sync, poll, stream), and
lets the backoff controller decide how to react to each failed attempt.
Terminal writes are guarded in SQL, so a finished record is never rewritten.
"""
