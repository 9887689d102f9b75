"""
household_kernel -- persistence, pure domain and services for the household
finance automation core.

Layers (inner to outer):
    domain/     Pure values and calculators (clock, timezone, currency,
                money, records, preferences).  Zero I/O.
    db/         SQLAlchemy declarative base and engine/session management.
    models/     ORM tables owned by a single user identity.
    selectors/  Read-only queries returning frozen domain records.
    services/   Write paths (ledger posting, automation store, review,
                audit).  Services flush; callers commit.
"""
