"""
Infrastructure Package
======================

Abstraction layers for external dependencies.

Modules:
    - email: Email service abstraction (SMTP, mock)
    - container: Service locator wiring infrastructure into domain services
"""
