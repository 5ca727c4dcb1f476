"""Review gate for processed documents."""

from hausdog.services.review.gate import ReviewGate, ReviewProposal

__all__ = ["ReviewGate", "ReviewProposal"]
