"""
Module engine services.

Import by path to keep the import graph acyclic:
- bhv360.services.pricing_calculator: PricingCalculator, PricingConfig
- bhv360.services.discount_codes: DiscountCode, DiscountCodeStore
- bhv360.services.module_approval_service: ModuleApprovalService
- bhv360.services.module_notifications: notification dispatchers and messages
- bhv360.services.email_sender: SendGrid / SMTP / mock email senders
"""
