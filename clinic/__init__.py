"""Hospital application for the MedSuite backend.

Models, services and API views for patients, appointments, clinical
records, pharmacy, laboratory, physiotherapy, billing and referrals.
"""
