"""
Booking & Ticketing Module

Booking-to-ticket fulfillment for the event:

- pricing.py: pass type pricing with bulk rules
- store.py: BookingStore interface, relational store and in-memory fallback
- booking_service.py: booking creation, ticket holders, ticket lookups and admission
- payment_service.py: provider orders, payment confirmation and reconciliation
- ticket_service.py: QR payloads and ticket issuance
- pdf_service.py: printable PDF tickets
- router.py: FastAPI endpoints mounted under /api/bookings
- schemas.py: Pydantic records, requests and results
"""
