"""
Front page counters for the hospital dashboard.
"""
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from clinic.models import Appointment, InventoryItem, Patient, Prescription
from clinic.services.appointments import day_bounds, serialize_appointment
from clinic.services.patients import serialize_patient

STATS_CACHE_KEY = 'dashboard:stats'
PREVIEW_LIMIT = 5


def dashboard_stats(use_cache: bool = True) -> dict:
    if use_cache:
        cached = cache.get(STATS_CACHE_KEY)
        if cached is not None:
            return cached

    start, end = day_bounds(timezone.localdate())
    today = (Appointment.objects.select_related('patient', 'doctor', 'department')
             .filter(start_time__gte=start, start_time__lt=end))
    payload = {
        'totalPatients': Patient.objects.filter(is_active=True).count(),
        'todayAppointments': today.count(),
        'pendingPrescriptions': Prescription.objects.filter(status='pending').count(),
        'lowStockItems': InventoryItem.objects.filter(
            is_active=True, quantity__lte=settings.DASHBOARD_LOW_STOCK_THRESHOLD).count(),
        'appointments': [serialize_appointment(a) for a in today.order_by('start_time')[:PREVIEW_LIMIT]],
        'recentPatients': [serialize_patient(p) for p in
                           Patient.objects.filter(is_active=True).order_by('-created_at', '-id')[:PREVIEW_LIMIT]],
    }
    cache.set(STATS_CACHE_KEY, payload, settings.STATS_CACHE_SECONDS)
    return payload
