"""
Dompetku - Source Package

A chat-first personal finance assistant. Users type (or speak, or
photograph) what they spent or earned, and a tool-calling agent turns
each message into validated ledger actions.

DESIGN PRINCIPLES:
1. The model proposes actions, guards and validators decide
2. Every action goes through one catalog boundary
3. The assistant degrades to rule-based matching, never to silence
4. Every turn is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Dompetku Team"
