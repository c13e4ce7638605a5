"""Live game session engine.

``controller`` owns phase transitions, ``timer`` the per-question countdown
and ``scoring`` the idempotent per-question scoring pass. API routes and
socket handlers call into these and never write game documents themselves.
"""
