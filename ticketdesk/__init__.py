"""
Ticket Desk - AI-assisted ticket intake and SLA escalation backend
"""

__version__ = "1.0.0"
