"""
Personal Ledger - Source Package

Records expenses and income under a learned category taxonomy,
splits large purchases into installment schedules, suppresses
duplicate captures, and round-trips the ledger through a portable
archive.

DESIGN PRINCIPLES:
1. Amounts never change silently (early payoff is the one sanctioned mutation)
2. A bad import row never aborts the batch
3. Duplicates are skipped, not rejected
4. Every component is constructed explicitly and passed where needed
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Personal Ledger Team"
