# screens/shared/kml_export.py
import simplekml


def _kml_color(hex_color: str, alpha: int = 255) -> str:
    """'#RRGGBB' -> KML 'aabbggrr'."""
    h = (hex_color or "#FFFFFF").lstrip("#")
    r, g, b = h[0:2], h[2:4], h[4:6]
    return simplekml.Color.changealphaint(alpha, f"ff{b}{g}{r}".lower())


def export_saved_queries_kml(*, path, saved, reference_label=None):
    """
    Write every saved query to `path` as a KML polygon, coloured like the list
    swatch, with population and method as extended data.

    Returns the number of polygons written.
    """
    kml = simplekml.Kml()
    folder = kml.newfolder(name="Saved queries")

    count = 0
    for q in saved:
        ring = [(lon, lat) for lon, lat in q.geometry.ring]
        if not ring:
            continue
        if ring[0] != ring[-1]:
            ring.append(ring[0])

        pol = folder.newpolygon(name=q.label)
        pol.outerboundaryis = ring
        pol.tessellate = 1
        pol.style.linestyle.width = 2
        pol.style.linestyle.color = _kml_color(q.color)
        pol.style.polystyle.fill = 1
        pol.style.polystyle.color = _kml_color(q.color, alpha=60)
        pol.extendeddata.newdata(name="Population", value=str(int(round(q.population or 0))))
        pol.extendeddata.newdata(name="Method", value=q.method_description)
        if q.radius_km is not None:
            pol.extendeddata.newdata(name="Radius_km", value=f"{q.radius_km:.1f}")
        if reference_label:
            pol.extendeddata.newdata(name="Reference", value=reference_label)
        count += 1

    kml.save(path)
    return count
