"""
Chat Notifications Module
=========================

Bounded Context for outbound Google Chat notifications.

Responsibilities:
- Direct messages to requesters and HR owners, retried on rate limiting
- Per-category webhook posts
- Dispatch endpoint for relayed lifecycle events
"""
