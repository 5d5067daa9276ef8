"""
Billing package - subscriptions, usage quotas and payment gateways.

This package integrates with:
- Stripe: Hosted checkout, billing portal and signed webhooks
- PayPal: Subscription approval flow and verified webhooks

Usage metering and quota enforcement is handled locally via UsageMeter and QuotaGuard.
"""
