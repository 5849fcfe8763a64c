# services/search_service.py
from config import SEARCH_RESULT_LIMIT
from services.errors import PermissionDenied
from services.view_state import NO_PRIVILEGE


def global_search(items, consumables, query, is_admin, limit=SEARCH_RESULT_LIMIT):
    """
    Name search across both pages. Equipment hits come first and are hidden
    from non-admins; meta is the row's location.
    """
    q = (query or "").strip().lower()
    if not q:
        return []

    results = []
    if is_admin:
        for item in items:
            name = str(item.get("name") or "")
            if q in name.lower():
                results.append({"id": item["id"], "name": name, "page": "equipment",
                                "meta": item.get("location") or "No location"})

    for row in consumables:
        name = str(row.get("name") or "")
        if q in name.lower():
            results.append({"id": row["id"], "name": name, "page": "consumables",
                            "meta": row.get("location") or "No location"})

    return results[:limit]


def jump_target(result, is_admin):
    """Where the UI should navigate for a search hit"""
    if result["page"] == "equipment":
        if not is_admin:
            raise PermissionDenied(NO_PRIVILEGE)
        return {"page": "equipment", "id": result["id"], "query": result.get("name", ""),
                "status": "all", "sort": "recent"}
    return {"page": "consumables", "id": result["id"], "location": result.get("meta") or ""}
