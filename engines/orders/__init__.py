"""
OrderDesk Orders Engine
=========================
Line/item reconciliation for order documents: ghost entry, bulk
import, realtime sync and lifecycle transitions.
"""

