"""
Marketplace services module.

Services:
- directory_service: Candidate profile and contact lookups
- notification_service: Fire-and-forget email (SMTP)
- payment_confirmation_service: Applies provider payment outcomes (webhooks)
"""
