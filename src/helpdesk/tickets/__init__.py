"""
Ticket Lifecycle Module
=======================

Bounded Context for helpdesk tickets.

Responsibilities:
- Create, update, escalate and rate tickets with SLA due dates
- Assign tickets to category owners
- Audit trail, internal notifications and file attachments
- Ticket chat with live subscriptions
- Retention cleanup and SLA violation sweeps
"""
