"""
Cab Booking Gateway

API gateway for the ride-hailing platform. Routes inbound requests to the
backend services (auth, users, drivers, bookings, rides, payments, pricing,
reviews, notifications) with health-aware load balancing and per-service
circuit breaking.
"""

__version__ = "0.1.0"
