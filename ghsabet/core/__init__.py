"""Core odds and settlement engine for GHSAbet.

This package contains the pure building blocks of the betting service:

- ``odds_math``:  American-odds parsing, payout/profit quotes, money rounding
- ``settlement``: pick parsing and won/lost/push resolution from final scores
- ``errors``:     rejection and settlement exception hierarchy

Nothing in this package imports from ``ghsabet.services`` or ``ghsabet.models``.
All modules are side-effect-free and unit-testable in isolation.
"""
