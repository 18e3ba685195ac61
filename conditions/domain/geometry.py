"""
Point-in-polygon test for massif boundaries (GeoJSON Polygon / MultiPolygon).

Points are (x, y) in the GeoJSON coordinate order, i.e. (lng, lat).
Boundary points follow the half-open crossing convention and are not
special-cased.
"""
from typing import Any, Sequence

Point = tuple[float, float]
Ring = Sequence[Sequence[float]]


def point_in_ring(point: Point, ring: Ring) -> bool:
    """Ray casting: count crossings of a ray cast towards +x, odd means inside"""
    x, y = point
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def point_in_polygon(point: Point, rings: Sequence[Ring]) -> bool:
    """First ring is the outer boundary, the following rings are holes"""
    if not rings or not point_in_ring(point, rings[0]):
        return False
    return not any(point_in_ring(point, hole) for hole in rings[1:])


def point_in_geometry(point: Point, geometry: dict[str, Any] | None) -> bool:
    if not geometry:
        return False

    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates") or []

    if geometry_type == "Polygon":
        return point_in_polygon(point, coordinates)
    if geometry_type == "MultiPolygon":
        return any(point_in_polygon(point, polygon) for polygon in coordinates)
    return False
