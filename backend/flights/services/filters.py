def filter_by_max_stops(offers, max_stops):
    """Apply the caller's stop preference to normalized offers.

    ``None`` and ``0`` keep everything: non-stop searches are already
    restricted upstream through the ``nonStop`` query flag. ``1`` keeps
    offers with at most one stop, ``2`` keeps offers with two or more.
    """
    if max_stops == 1:
        return [o for o in offers if o["metrics"]["totalStops"] <= 1]
    if max_stops == 2:
        return [o for o in offers if o["metrics"]["totalStops"] >= 2]
    return list(offers)
