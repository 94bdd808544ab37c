"""
Dashboard statistics.

Everything here is read-only. Computers and lab utilities are stock-like:
one row stands for ``quantity`` identical units, so their totals and status
buckets sum ``quantity``. Rooms and smart boards are one unit per row and
are counted.
"""
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Tuple

from db import Database
from queries import COMPUTER_SELECT, LAB_UTILITY_SELECT, ROOM_SELECT, SMART_BOARD_SELECT

RECENT_LIMIT = 5
TIMELINE_MONTHS = 12


def _int(v) -> int:
    return int(v or 0)

def _iso(v):
    if isinstance(v, date):
        return v.isoformat()
    return v

def _month(v) -> str:
    if isinstance(v, date):
        return v.strftime("%Y-%m")
    return str(v)[:7]

def functional_percentage(functional: int, total: int) -> float:
    """Share of functional units, one decimal. An empty room counts as fully functional."""
    if total == 0:
        return 100.0
    return round(functional * 100.0 / total, 1)

# --------------------------------------------------------------------------
# Per-entity statistics
# --------------------------------------------------------------------------
def computer_stats(db: Database) -> Dict[str, Any]:
    r = db.fetch_one("""
        SELECT
          COUNT(*) AS total_rows,
          SUM(quantity) AS total,
          COUNT(DISTINCT belongstocategory) AS unique_categories,
          SUM(CASE WHEN status = 'functional'  THEN quantity ELSE 0 END) AS functional,
          SUM(CASE WHEN status = 'maintenance' THEN quantity ELSE 0 END) AS maintenance,
          SUM(CASE WHEN status = 'retired'     THEN quantity ELSE 0 END) AS retired,
          MIN(install_date) AS oldest,
          MAX(install_date) AS newest
        FROM computer
    """)
    by_category = db.fetch_all("""
        SELECT cc.id AS category_id, cc.label AS category_name,
               COALESCE(SUM(c.quantity), 0) AS units
        FROM computer_cat cc
        LEFT JOIN computer c ON c.belongstocategory = cc.id
        GROUP BY cc.id, cc.label
        ORDER BY units DESC, cc.label
    """)
    return {
        "total": _int(r["total"]),
        "totalRows": _int(r["total_rows"]),
        "uniqueCategories": _int(r["unique_categories"]),
        "functionalCount": _int(r["functional"]),
        "maintenanceCount": _int(r["maintenance"]),
        "retiredCount": _int(r["retired"]),
        "oldestInstallation": _iso(r["oldest"]),
        "newestInstallation": _iso(r["newest"]),
        "byCategory": [
            {
                "category_id": row["category_id"],
                "category_name": row["category_name"],
                "quantity": _int(row["units"]),
            }
            for row in by_category
        ],
    }

def room_stats(db: Database) -> Dict[str, Any]:
    r = db.fetch_one("""
        SELECT
          COUNT(*) AS total,
          COUNT(DISTINCT type) AS unique_types,
          SUM(CASE WHEN status = 'active'      THEN 1 ELSE 0 END) AS active,
          SUM(CASE WHEN status = 'maintenance' THEN 1 ELSE 0 END) AS maintenance,
          SUM(CASE WHEN status = 'inactive'    THEN 1 ELSE 0 END) AS inactive
        FROM room
    """)
    by_type = db.fetch_all("""
        SELECT type, COUNT(*) AS room_count
        FROM room
        GROUP BY type
        ORDER BY room_count DESC, type
    """)
    return {
        "total": _int(r["total"]),
        "uniqueTypes": _int(r["unique_types"]),
        "types": sorted(row["type"] for row in by_type),
        "functionalCount": _int(r["active"]),
        "maintenanceCount": _int(r["maintenance"]),
        "inactiveCount": _int(r["inactive"]),
        "byType": [{"type": row["type"], "count": _int(row["room_count"])} for row in by_type],
    }

def smart_board_stats(db: Database) -> Dict[str, Any]:
    r = db.fetch_one("""
        SELECT
          COUNT(*) AS total,
          COUNT(DISTINCT model_id) AS unique_models,
          SUM(CASE WHEN status = 'functional'  THEN 1 ELSE 0 END) AS functional,
          SUM(CASE WHEN status = 'maintenance' THEN 1 ELSE 0 END) AS maintenance,
          SUM(CASE WHEN status = 'retired'     THEN 1 ELSE 0 END) AS retired,
          MIN(installed_date) AS oldest,
          MAX(installed_date) AS newest
        FROM smart_board
    """)
    return {
        "total": _int(r["total"]),
        "uniqueModels": _int(r["unique_models"]),
        "functionalCount": _int(r["functional"]),
        "maintenanceCount": _int(r["maintenance"]),
        "retiredCount": _int(r["retired"]),
        "oldestInstallation": _iso(r["oldest"]),
        "newestInstallation": _iso(r["newest"]),
    }

def lab_utility_stats(db: Database) -> Dict[str, Any]:
    r = db.fetch_one("""
        SELECT
          COUNT(*) AS total_rows,
          SUM(quantity) AS total,
          SUM(CASE WHEN status = 'functional'  THEN quantity ELSE 0 END) AS functional,
          SUM(CASE WHEN status = 'maintenance' THEN quantity ELSE 0 END) AS maintenance,
          SUM(CASE WHEN status = 'retired'     THEN quantity ELSE 0 END) AS retired,
          AVG(quantity) AS average_quantity
        FROM lab_utility
    """)
    return {
        "total": _int(r["total"]),
        "totalRows": _int(r["total_rows"]),
        "functionalCount": _int(r["functional"]),
        "maintenanceCount": _int(r["maintenance"]),
        "retiredCount": _int(r["retired"]),
        "averageQuantity": round(float(r["average_quantity"] or 0), 2),
    }

def category_stats(db: Database) -> Dict[str, Any]:
    rows = db.fetch_all("SELECT model_release_date FROM computer_cat")
    dates = sorted(_iso(row["model_release_date"]) for row in rows if row["model_release_date"])
    return {
        "total": len(rows),
        "uniqueReleaseYears": len({d[:4] for d in dates}),
        "oldestModel": dates[0] if dates else None,
        "newestModel": dates[-1] if dates else None,
    }

# --------------------------------------------------------------------------
# Rollups
# --------------------------------------------------------------------------
def _tally(db: Database, table: str, measure: str) -> Dict[int, Tuple[int, int]]:
    # table and measure are fixed by the callers below, never user input
    rows = db.fetch_all(f"""
        SELECT isassignedto AS room_id,
               SUM({measure}) AS total,
               SUM(CASE WHEN status = 'functional' THEN {measure} ELSE 0 END) AS functional
        FROM {table}
        GROUP BY isassignedto
    """)
    return {row["room_id"]: (_int(row["total"]), _int(row["functional"])) for row in rows}

def room_utilization(db: Database) -> List[Dict[str, Any]]:
    """
    Equipment totals and functional share for every room, busiest first.

    Computers and lab utilities contribute their quantity, smart boards one
    each. The full ordered list is returned; trimming to a top-N is up to
    the caller.
    """
    rooms = db.fetch_all("SELECT id, label, type FROM room ORDER BY id")
    computers = _tally(db, "computer", "quantity")
    boards = _tally(db, "smart_board", "1")
    utilities = _tally(db, "lab_utility", "quantity")

    records = []
    for room in rooms:
        c_total, c_ok = computers.get(room["id"], (0, 0))
        s_total, s_ok = boards.get(room["id"], (0, 0))
        u_total, u_ok = utilities.get(room["id"], (0, 0))
        total = c_total + s_total + u_total
        functional = c_ok + s_ok + u_ok
        records.append({
            "id": room["id"],
            "room_name": room["label"],
            "room_type": room["type"],
            "computer_count": c_total,
            "smartboard_count": s_total,
            "utility_count": u_total,
            "functional_computers": c_ok,
            "functional_smartboards": s_ok,
            "functional_utilities": u_ok,
            "total_equipment": total,
            "functional_equipment": functional,
            "functional_percentage": functional_percentage(functional, total),
            "computer_functional_percentage": functional_percentage(c_ok, c_total),
            "smartboard_functional_percentage": functional_percentage(s_ok, s_total),
            "utility_functional_percentage": functional_percentage(u_ok, u_total),
        })
    records.sort(key=lambda r: (-r["total_equipment"], r["id"]))
    return records

def installation_timeline(db: Database) -> List[Dict[str, Any]]:
    """Computer units installed per calendar month, newest month first, last 12 months with data."""
    rows = db.fetch_all("""
        SELECT install_date, quantity
        FROM computer
        WHERE install_date IS NOT NULL
    """)
    per_month: Dict[str, int] = defaultdict(int)
    for row in rows:
        per_month[_month(row["install_date"])] += _int(row["quantity"])
    months = sorted(per_month, reverse=True)[:TIMELINE_MONTHS]
    return [{"month": m, "installations": per_month[m]} for m in months]

def recent_items(db: Database, limit: int = RECENT_LIMIT) -> Dict[str, List[Dict[str, Any]]]:
    """Most recently created rows per entity, by id (ids only grow)."""
    return {
        "computers": db.fetch_all(f"{COMPUTER_SELECT} ORDER BY c.id DESC LIMIT %s", (limit,)),
        "rooms": db.fetch_all(f"{ROOM_SELECT} ORDER BY r.id DESC LIMIT %s", (limit,)),
        "smartBoards": db.fetch_all(f"{SMART_BOARD_SELECT} ORDER BY sb.id DESC LIMIT %s", (limit,)),
        "labUtilities": db.fetch_all(f"{LAB_UTILITY_SELECT} ORDER BY lu.id DESC LIMIT %s", (limit,)),
    }

def summary(db: Database) -> Dict[str, Any]:
    return {
        "computers": computer_stats(db),
        "rooms": room_stats(db),
        "smartBoards": smart_board_stats(db),
        "labUtilities": lab_utility_stats(db),
        "computerCategories": category_stats(db),
        "timeline": {"computers": installation_timeline(db)},
        "roomUtilization": room_utilization(db),
    }
