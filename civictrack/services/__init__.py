"""
Services layer - business logic for issue prioritisation and SLA tracking.

DESIGN PRINCIPLE:
- Services contain business logic, NOT routes
- Services receive their repository / notification sink explicitly
- External AI signals are optional and never block a submission
"""
