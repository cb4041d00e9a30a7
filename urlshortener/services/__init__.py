"""
Services module for business logic separation.

This module contains the link service and the components it coordinates
(code generator, link cache, cleanup, rate limiter, analytics client),
keeping business logic separate from API endpoints and database models.
"""
