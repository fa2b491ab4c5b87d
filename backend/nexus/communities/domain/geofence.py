"""Great-circle distance and radius checks for location-bound groups."""

from __future__ import annotations

import math

from nexus.communities.domain import models
from nexus.settings import settings

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
	"""Haversine distance between two points in kilometres."""
	phi1 = math.radians(lat1)
	phi2 = math.radians(lat2)
	d_phi = math.radians(lat2 - lat1)
	d_lambda = math.radians(lon2 - lon1)
	a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
	# Rounding can push a a hair past 1.0 for antipodal points.
	a = min(1.0, max(0.0, a))
	return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def within_radius(
	user_lat: float | None,
	user_lon: float | None,
	target_lat: float | None,
	target_lon: float | None,
	radius_km: float,
) -> bool:
	if user_lat is None or user_lon is None or target_lat is None or target_lon is None:
		return False
	return distance_km(user_lat, user_lon, target_lat, target_lon) <= radius_km


def radius_for(target: models.Group) -> float:
	"""Sub-clubs carry no radius of their own and fall back to the default."""
	radius = getattr(target, "radius_km", None)
	if radius is None:
		return float(settings.geofence_default_radius_km)
	return float(radius)


def check_location_access(
	target: models.Group,
	user_lat: float | None,
	user_lon: float | None,
) -> models.LocationAccess:
	if target.kind != models.KIND_LOCATION_BOUND:
		return models.LocationAccess(allowed=True)
	radius = radius_for(target)
	if user_lat is None or user_lon is None:
		return models.LocationAccess(
			allowed=False,
			requires_location=True,
			reason="Location is required to join this group",
			radius_km=radius,
		)
	if target.latitude is None or target.longitude is None:
		# Location-bound rows always carry coordinates; treat a broken row as closed.
		return models.LocationAccess(
			allowed=False,
			reason="This group has no location configured",
			radius_km=radius,
		)
	distance = distance_km(user_lat, user_lon, target.latitude, target.longitude)
	if distance <= radius:
		return models.LocationAccess(allowed=True, distance_km=round(distance, 3), radius_km=radius)
	return models.LocationAccess(
		allowed=False,
		reason=f"You are {distance:.1f}km away from this group's {radius:g}km radius",
		distance_km=round(distance, 3),
		radius_km=radius,
	)
