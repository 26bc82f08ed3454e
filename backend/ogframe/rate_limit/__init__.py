"""
Rate Limiting Module

Two-tier (requests + generations) fixed-window limiter with a per-IP ceiling.
"""

from .limiter import RateLimiter, RateCounter, domain_from_referer

__all__ = ["RateLimiter", "RateCounter", "domain_from_referer"]
