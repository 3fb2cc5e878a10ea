"""
SLA Module
==========

Bounded Context for Service Level Agreement due dates.

Responsibilities:
- Resolution due date per (category, priority), with a default table
- SLA configuration rows, seeded from sla_config.yaml
- Configuration API (GET/PUT /sla/configs)
"""
