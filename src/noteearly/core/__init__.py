"""Core business logic.

Modules:
- errors: Domain error hierarchy carrying HTTP status codes
- security: Password/PIN hashing and JWT helpers
- permissions: Caller identity and ownership checks
- auth_service: Admin and student authentication
- profile_service: Profile read model and management
- progress_service: Progress tracking and completion state machine
- reading_service: Reading modules and vocabulary
- subscription_service: Plans, limits and billing actions
- webhook_service: Billing provider event handling
- analytics_service: Activity calendar and dashboard statistics
- billing_gateway: Stripe wrapper
"""

__all__ = [
    "errors",
    "security",
    "permissions",
    "auth_service",
    "profile_service",
    "progress_service",
    "reading_service",
    "subscription_service",
    "webhook_service",
    "analytics_service",
    "billing_gateway",
]
